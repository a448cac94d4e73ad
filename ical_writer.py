import datetime
import itertools
import random
import string
import time

PRODID = '-//Weekly Calendar Maker//EN'
CRLF = '\r\n'
MAX_LINE_OCTETS = 75

header = [
    'BEGIN:VCALENDAR',
    'VERSION:2.0',
    f'PRODID:{PRODID}',
    'CALSCALE:GREGORIAN',
    'METHOD:PUBLISH',
]

footer = ['END:VCALENDAR']

UID_ALPHABET = string.digits + string.ascii_lowercase


class UidGenerator:
    """Hands out event identifiers like ``event-k3x9q0a2b-1710460800000-0``.

    The random token comes from ``rng`` and the stamp from ``clock`` (milliseconds),
    so both can be pinned in tests. The trailing sequence number keeps ids from one
    generator distinct even when the token and the stamp repeat.
    """

    def __init__(self, rng=None, clock=None, prefix='event'):
        self.rng = rng if rng is not None else random.SystemRandom()
        self.clock = clock if clock is not None else lambda: time.time_ns() // 1_000_000
        self.prefix = prefix
        self._sequence = itertools.count()

    def __call__(self) -> str:
        token = ''.join(self.rng.choice(UID_ALPHABET) for _ in range(9))
        return f"{self.prefix}-{token}-{self.clock()}-{next(self._sequence)}"


def ics_escape(text: str) -> str:
    r"""Escape a TEXT value (RFC 5545 section 3.3.11).

    >>> print(ics_escape('Lunch; then coffee, maybe'))
    Lunch\; then coffee\, maybe
    """
    text = text.replace('\\', '\\\\').replace(';', '\\;').replace(',', '\\,')
    return text.replace('\r\n', '\\n').replace('\r', '\\n').replace('\n', '\\n')


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets, never inside a UTF-8 sequence."""
    if len(line.encode('utf-8')) <= MAX_LINE_OCTETS:
        return line
    parts = []
    current = ''
    size = 0
    for char in line:
        width = len(char.encode('utf-8'))
        if size + width > MAX_LINE_OCTETS:
            parts.append(current)
            # The leading space of a continuation line counts against the limit.
            current = ' '
            size = 1
        current += char
        size += width
    parts.append(current)
    return CRLF.join(parts)


def ics_date(date: datetime.date):
    return date.strftime("%Y%m%d")


def ics_datetime(date: datetime.date, time):
    return f"{ics_date(date)}T{time['hour']:02d}{time['minute']:02d}00"


def recurring_event(date: datetime.date, code: str, summary: str, start_time_p, end_time_p,
                    uid: str, description=None):
    """Lines of one weekly VEVENT starting on ``date``, in floating local time.

    No DTSTAMP is written, although RFC 5545 requires one: the output has to stay
    the same for the same events and day, and a creation stamp would change it on
    every call.
    """
    lines = [
        'BEGIN:VEVENT',
        f'UID:{uid}',
        f'SUMMARY:{ics_escape(summary)}',
        f'DTSTART:{ics_datetime(date, start_time_p)}',
        f'DTEND:{ics_datetime(date, end_time_p)}',
        f'RRULE:FREQ=WEEKLY;BYDAY={code}',
    ]
    if description:
        lines.append(f'DESCRIPTION:{ics_escape(description)}')
    lines.append('END:VEVENT')
    return lines


def write_ics(events):
    lines = header + [line for event in events for line in event] + footer
    return CRLF.join(fold_line(line) for line in lines)
