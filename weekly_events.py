from dataclasses import dataclass, field
import datetime
import json
import logging
import re
from typing import List, NamedTuple, Optional
from urllib.parse import quote, urlencode

import pandas as pd

from ical_writer import UidGenerator, ics_datetime, recurring_event, write_ics

logger = logging.getLogger(__name__)

# Indexed from Sunday, matching the order of the RRULE codes.
DAY_NAMES = ['sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday']
RRULE_CODES = ['SU', 'MO', 'TU', 'WE', 'TH', 'FR', 'SA']

DATE_RE = re.compile(r'\d{4}-\d{2}-\d{2}')
TIME_RE = re.compile(r'([01]\d|2[0-3]):([0-5]\d)')

GOOGLE_CALENDAR_URL = 'https://calendar.google.com/calendar/render'

# External (JSON) field names -> attribute names.
FIELD_NAMES = {
    'title': 'title',
    'day': 'day',
    'startTime': 'start_time',
    'endTime': 'end_time',
    'description': 'description',
}


class InvalidEventError(ValueError):
    """An event that cannot be put on the calendar.

    ``index`` is the event's position in the input and ``title`` its title, when known.
    """

    def __init__(self, reason: str, index: Optional[int] = None, title: Optional[str] = None):
        self.reason = reason
        self.index = index
        self.title = title
        super().__init__(str(self))

    def __str__(self):
        if self.index is None and not self.title:
            return self.reason
        where = f"Event {self.index + 1}" if self.index is not None else "Event"
        if self.title:
            where += f" ({self.title!r})"
        return f"{where}: {self.reason}"


@dataclass(frozen=True)
class WeeklyEvent:
    """
    An event that repeats every week.

    Fields:
    - title: the name of the event
    - day: a weekday name like "Monday", or a date like "2024-03-15"
    - start_time: 24-hour start time, like "09:00"
    - end_time: 24-hour end time, like "10:00"
    - description: optional notes
    """
    title: str
    day: str
    start_time: str
    end_time: str
    description: Optional[str] = None


class Occurrence(NamedTuple):
    code: str
    date: datetime.date


@dataclass
class GenerationResult:
    ics: str
    events: List[tuple] = field(default_factory=list)
    failures: List[InvalidEventError] = field(default_factory=list)


def day_index(date: datetime.date) -> int:
    '''Weekday of date, 0 = Sunday.'''
    return (date.weekday() + 1) % 7


def parse_time(x):
    """Parse 24-hour time strings like 13:05 into hour=13, min=5.

    >>> parse_time("09:00")
    {'hour': 9, 'minute': 0}
    >>> parse_time("13:05")
    {'hour': 13, 'minute': 5}
    >>> parse_time("23:59")
    {'hour': 23, 'minute': 59}
    >>> parse_time("9:00")
    Traceback (most recent call last):
        ...
    weekly_events.InvalidEventError: Invalid time '9:00', expected HH:MM
    """
    match = TIME_RE.fullmatch(x) if isinstance(x, str) else None
    if match is None:
        raise InvalidEventError(f"Invalid time {x!r}, expected HH:MM")
    hour, min = match.groups()
    return dict(hour=int(hour), minute=int(min))


def resolve_day(day: str, today: datetime.date) -> Occurrence:
    """Find the date and RRULE code for a day token.

    A date like "2024-03-15" is its own occurrence. A weekday name resolves to the
    next such weekday strictly after ``today``, so naming today's weekday gives the
    same day next week.
    """
    token = day.strip() if isinstance(day, str) else ''
    if DATE_RE.fullmatch(token):
        try:
            date = datetime.date.fromisoformat(token)
        except ValueError:
            raise InvalidEventError(f"Invalid date {day!r}") from None
        return Occurrence(RRULE_CODES[day_index(date)], date)

    try:
        target = DAY_NAMES.index(token.lower())
    except ValueError:
        raise InvalidEventError(f"Unknown day {day!r}, expected a weekday name or YYYY-MM-DD") from None
    days_ahead = target - day_index(today)
    if days_ahead <= 0:
        days_ahead += 7
    return Occurrence(RRULE_CODES[target], today + datetime.timedelta(days=days_ahead))


def validate_event(event: WeeklyEvent, today: datetime.date, index: Optional[int] = None):
    '''Check an event and resolve its day. Returns (occurrence, start_time_p, end_time_p).'''
    try:
        if not isinstance(event.title, str) or not event.title.strip():
            raise InvalidEventError("Title is empty")
        start_time_p = parse_time(event.start_time)
        end_time_p = parse_time(event.end_time)
        if (start_time_p['hour'], start_time_p['minute']) >= (end_time_p['hour'], end_time_p['minute']):
            raise InvalidEventError(f"Start time {event.start_time} is not before end time {event.end_time}")
        occurrence = resolve_day(event.day, today)
    except InvalidEventError as e:
        title = event.title if isinstance(event.title, str) and event.title.strip() else None
        raise InvalidEventError(e.reason, index=index, title=title) from None
    return occurrence, start_time_p, end_time_p


def _text(value):
    if value is None:
        return None
    if isinstance(value, datetime.time):
        return value.strftime('%H:%M')
    if isinstance(value, datetime.date):
        return value.strftime('%Y-%m-%d')
    return str(value)


def events_from_records(records) -> List[WeeklyEvent]:
    """Build events from dicts shaped like the extraction output.

    Keys may be in either form, ``startTime`` or ``start_time``.
    """
    events = []
    for i, record in enumerate(records):
        values = {}
        for external, name in FIELD_NAMES.items():
            value = record.get(external, record.get(name))
            if value is None and name != 'description':
                raise InvalidEventError(f"Missing field {external!r}", index=i, title=record.get('title'))
            values[name] = _text(value)
        values['description'] = values['description'] or None
        events.append(WeeklyEvent(**values))
    return events


def events_from_frame(data: pd.DataFrame) -> List[WeeklyEvent]:
    '''Build events from a table with title/day/startTime/endTime/description columns.'''
    data = data.rename(columns=FIELD_NAMES)
    if 'description' not in data.columns:
        data = data.assign(description='')
    missing = [col for col in ['title', 'day', 'start_time', 'end_time'] if col not in data.columns]
    if missing:
        raise ValueError(f"Missing columns: {', '.join(missing)}")
    data = data[['title', 'day', 'start_time', 'end_time', 'description']].fillna('')
    return events_from_records(
        e._asdict() for e in data.itertuples(index=False, name='WeeklyEvent')
    )


def read_events_table(source, file_name: str) -> pd.DataFrame:
    '''Read an uploaded .json, .csv or Excel file of events into a table.'''
    name = file_name.lower()
    if name.endswith('.json'):
        return pd.DataFrame(json.load(source))
    if name.endswith('.csv'):
        return pd.read_csv(source, dtype=str, na_filter=False)
    # Time and date cells come back as datetime objects; _text formats them.
    return pd.read_excel(source, na_filter=False)


def generate_ics(events, clock=datetime.date.today, next_uid=None) -> GenerationResult:
    """Turn events into an iCalendar document of weekly recurring VEVENTs.

    ``clock`` returns today's date and is read once. ``next_uid`` is any callable
    returning a fresh identifier; a new UidGenerator by default.

    Events that fail validation are left out of the document and reported in
    ``failures``; the rest are still written.
    """
    today = clock()
    if next_uid is None:
        next_uid = UidGenerator()

    blocks = []
    result = GenerationResult(ics='')
    for i, event in enumerate(events):
        try:
            occurrence, start_time_p, end_time_p = validate_event(event, today, index=i)
        except InvalidEventError as e:
            logger.warning("Skipping event: %s", e)
            result.failures.append(e)
            continue
        blocks.append(recurring_event(
            date=occurrence.date,
            code=occurrence.code,
            summary=event.title,
            start_time_p=start_time_p,
            end_time_p=end_time_p,
            uid=next_uid(),
            description=event.description,
        ))
        result.events.append((event, occurrence))

    result.ics = write_ics(blocks)
    logger.debug("Generated %d events (%d skipped) relative to %s",
                 len(blocks), len(result.failures), today)
    return result


def google_calendar_link(event: WeeklyEvent, occurrence: Occurrence) -> str:
    '''Link to Google Calendar's "add event" page, prefilled with a weekly event.'''
    start = ics_datetime(occurrence.date, parse_time(event.start_time))
    end = ics_datetime(occurrence.date, parse_time(event.end_time))
    params = {
        'action': 'TEMPLATE',
        'text': event.title,
        'details': event.description or '',
        'dates': f"{start}/{end}",
        'recur': f"RRULE:FREQ=WEEKLY;BYDAY={occurrence.code}",
    }
    return f"{GOOGLE_CALENDAR_URL}?{urlencode(params, quote_via=quote)}"
