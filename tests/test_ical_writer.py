"""Tests for the iCalendar text writer."""

import datetime
import random
import re

import icalendar

from ical_writer import (CRLF, UidGenerator, fold_line, ics_datetime, ics_escape,
                         recurring_event, write_ics)

HEADER = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//Weekly Calendar Maker//EN\r\n"
    "CALSCALE:GREGORIAN\r\n"
    "METHOD:PUBLISH"
)


def test_ics_datetime_is_floating_with_zero_seconds():
    assert ics_datetime(datetime.date(2024, 3, 18), {'hour': 9, 'minute': 5}) == "20240318T090500"


def test_escape_reserved_characters():
    assert ics_escape('a,b;c\\d') == 'a\\,b\\;c\\\\d'
    assert ics_escape('one\ntwo\r\nthree\rfour') == 'one\\ntwo\\nthree\\nfour'


def test_escape_leaves_plain_text_alone():
    assert ics_escape('Team meeting: room 4') == 'Team meeting: room 4'


def test_recurring_event_field_order():
    lines = recurring_event(
        date=datetime.date(2024, 3, 18),
        code='MO',
        summary='Team meeting',
        start_time_p={'hour': 9, 'minute': 0},
        end_time_p={'hour': 10, 'minute': 0},
        uid='event-abc',
        description='Weekly sync',
    )
    assert lines == [
        'BEGIN:VEVENT',
        'UID:event-abc',
        'SUMMARY:Team meeting',
        'DTSTART:20240318T090000',
        'DTEND:20240318T100000',
        'RRULE:FREQ=WEEKLY;BYDAY=MO',
        'DESCRIPTION:Weekly sync',
        'END:VEVENT',
    ]


def test_recurring_event_omits_missing_description():
    for description in (None, ''):
        lines = recurring_event(datetime.date(2024, 3, 18), 'MO', 'Standup',
                                {'hour': 9, 'minute': 0}, {'hour': 9, 'minute': 15},
                                uid='x', description=description)
        assert not any(line.startswith('DESCRIPTION') for line in lines)
        assert lines[-2] == 'RRULE:FREQ=WEEKLY;BYDAY=MO'


def test_write_ics_empty_is_header_then_footer():
    assert write_ics([]) == HEADER + "\r\nEND:VCALENDAR"


def test_write_ics_uses_crlf_only():
    block = recurring_event(datetime.date(2024, 3, 15), 'FR', 'Yoga',
                            {'hour': 18, 'minute': 0}, {'hour': 19, 'minute': 0}, uid='u1')
    ics = write_ics([block, block])
    assert ics.startswith(HEADER + CRLF + 'BEGIN:VEVENT')
    assert ics.endswith('END:VEVENT\r\nEND:VCALENDAR')
    assert '\n' not in ics.replace('\r\n', '')
    assert ics.count('BEGIN:VEVENT') == 2


def test_fold_short_line_unchanged():
    line = 'SUMMARY:' + 'x' * 67
    assert fold_line(line) == line


def test_fold_long_line_respects_octet_limit():
    line = 'DESCRIPTION:' + 'café ' * 60
    folded = fold_line(line)
    parts = folded.split(CRLF)
    assert len(parts) > 1
    assert all(len(part.encode('utf-8')) <= 75 for part in parts)
    assert all(part.startswith(' ') for part in parts[1:])
    assert folded.replace(CRLF + ' ', '') == line


def test_folded_document_parses_back():
    title = ' '.join(['Très long titre, avec; des caractères'] * 5)
    block = recurring_event(datetime.date(2024, 3, 15), 'FR', title,
                            {'hour': 8, 'minute': 30}, {'hour': 9, 'minute': 0}, uid='u1')
    calendar = icalendar.Calendar.from_ical(write_ics([block]))
    (event,) = calendar.walk('VEVENT')
    assert str(event['SUMMARY']) == title


def test_uid_generator_format():
    next_uid = UidGenerator(rng=random.Random(0), clock=lambda: 1710460800000)
    assert re.match(r'^event-[0-9a-z]{9}-1710460800000-0$', next_uid())
    assert next_uid().endswith('-1')


def test_uid_generator_never_repeats_within_a_run():
    # Identical tokens and a frozen clock: only the sequence keeps them apart.
    class SameToken(random.Random):
        def choice(self, seq):
            return seq[0]

    next_uid = UidGenerator(rng=SameToken(), clock=lambda: 0)
    uids = [next_uid() for _ in range(100)]
    assert len(set(uids)) == 100


def test_uid_generator_default_sources():
    next_uid = UidGenerator()
    assert next_uid() != next_uid()
