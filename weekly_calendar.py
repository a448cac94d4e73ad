import datetime
import json
import warnings

import icalendar
import pandas as pd
import recurring_ical_events
import streamlit as st
from calendar_view.calendar import Calendar
from calendar_view.core import data as calendar_view_data
from calendar_view.core.calendar_events import CalendarEvents
from calendar_view.core.calendar_grid import CalendarGrid
from calendar_view.core.event import Event as CVEvent

from weekly_events import (InvalidEventError, events_from_frame, generate_ics,
                           google_calendar_link, read_events_table)

# Ignore warnings about missing default styles in openpyxl
# openpyxl/styles/stylesheet.py:226: UserWarning: Workbook contains no default style, apply openpyxl's default
warnings.filterwarnings('ignore', category=UserWarning, module='openpyxl')

DOWNLOAD_FILE_NAME = "weekly-events.ics"
PREVIEW_WEEKS = 4
columns = ['title', 'day', 'startTime', 'endTime', 'description']


def get_sample_week_events(scheduled, week_start: datetime.date, week_end: datetime.date):
    '''Get the events of the first week for the calendar preview.'''
    # Dated events can fall outside the first week.
    return [
        CVEvent(day=occurrence.date, start=event.start_time, end=event.end_time, title=event.title)
        for event, occurrence in scheduled
        if week_start <= occurrence.date <= week_end
    ]


st.title("Weekly Calendar Maker")
st.write("""
To use:

1. Upload a JSON, CSV or Excel file of events, or paste a JSON array below.
   Each event needs a `title`, a `day` (like `Monday` or `2024-03-15`), a `startTime` and an `endTime` (24-hour `HH:MM`), and optionally a `description`.
2. Check and fix the events in the table.
3. Click the download button to save the calendar file.
4. Double-click or drag-and-drop the file into your calendar. (For Outlook, Google Calendar, macOS Calendar, etc.)

Every event repeats weekly, starting from its next occurrence.
""")

st.header("Events")
uploaded_file = st.file_uploader("Events file", type=["json", "csv", "xlsx"])
pasted = st.text_area("...or paste JSON", placeholder='[{"title": "Team meeting", "day": "Monday", "startTime": "09:00", "endTime": "10:00"}]')

data = None
try:
    if uploaded_file is not None:
        data = read_events_table(uploaded_file, uploaded_file.name)
    elif pasted.strip():
        data = pd.DataFrame(json.loads(pasted))
except ValueError as e:
    st.error(f"Could not read the events: {e}")
    st.stop()

if data is not None:
    for col in columns:
        if col not in data.columns:
            data[col] = ''
    edited = st.data_editor(data[columns], num_rows='dynamic', hide_index=True)

    try:
        events = events_from_frame(edited)
    except (InvalidEventError, ValueError) as e:
        st.error(str(e))
        st.stop()

    result = generate_ics(events)
    for failure in result.failures:
        st.warning(f"Skipping {failure}")

    if not result.events:
        st.error("No valid events to put on the calendar.")
        st.stop()

    st.header("Download!")
    st.download_button(
        label=":calendar: :floppy_disk: Download .ics file",
        data=result.ics,
        file_name=DOWNLOAD_FILE_NAME,
        mime="text/calendar"
    )

    st.write("I recommend importing this into an unused calendar first, to test it.")

    with st.expander("Add to Google Calendar one event at a time"):
        for event, occurrence in result.events:
            st.markdown(f"- [{event.title}]({google_calendar_link(event, occurrence)})")

    # Monkey-patch the calendar view to use US-locale day names
    def _get_day_title(self, day: datetime.date) -> str:
        return day.strftime("%a")

    CalendarGrid._get_day_title = _get_day_title
    CalendarEvents._get_day_title = _get_day_title

    beginning_of_week = min(occurrence.date for event, occurrence in result.events)
    end_of_week = beginning_of_week + datetime.timedelta(days=6)
    week_events = get_sample_week_events(result.events, beginning_of_week, end_of_week)
    hours = [int(event.start_time[:2]) for event, _ in result.events] + \
        [int(event.end_time[:2]) + 1 for event, _ in result.events]

    cal_view = Calendar.build(calendar_view_data.CalendarConfig(
        lang = "en",
        dates = f"{beginning_of_week} - {end_of_week}",
        hours = f"{min(hours)} - {min(max(hours), 24)}",
    ))

    cal_view.add_events(week_events)
    cal_view.events.group_cascade_events()
    cal_view._build_image()
    st.image(cal_view.full_image)

    if st.checkbox("Show meeting calendar"):
        calendar = icalendar.Calendar.from_ical(result.ics)

        last_date = beginning_of_week + datetime.timedelta(weeks=PREVIEW_WEEKS)
        raw_events = recurring_ical_events.of(calendar).between(beginning_of_week, last_date)

        cal_events = []
        for evt in raw_events:
            begin = evt['DTSTART'].dt
            start = begin.strftime("%H:%M")
            end = evt['DTEND'].dt.strftime("%H:%M")
            cal_events.append({
                "name": str(evt["SUMMARY"]),
                "begin": begin,
                "day": begin.strftime("%a %b %d"),
                "time": f"{start} - {end}",
            })

        cal_table = pd.DataFrame(cal_events).sort_values('begin')
        st.write(cal_table[['day', 'time', 'name']].style.hide(axis="index").to_html(), unsafe_allow_html=True)
