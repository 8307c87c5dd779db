"""Calendar export formatting for a generated timetable.

Each slot becomes one weekly recurring event that starts on the slot's next
occurrence and repeats until the end of the current semester. Two formats:

* build_ics(): an iCalendar document built with icalendar, one
  RRULE:FREQ=WEEKLY;BYDAY=..;UNTIL=.. event per slot
* build_event_body(): a JSON event body with a weekly recurrence pattern, the
  shape calendar APIs take for recurring events

No network calls happen here; pushing the events is up to the caller.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event

from src.timetable.extraction import to_day_of_week
from src.timetable.logging import get_logger
from src.timetable.models import TimetableSlot
from src.timetable.utils import DAY_NAMES_LONG

log = get_logger(__name__)

PRODID = "-//Attendance Timetable//Weekly Timetable//EN"
UID_DOMAIN = "attendance-timetable"

# day_of_week (0=Sunday) -> iCalendar BYDAY code
RRULE_DAY: tuple[str, ...] = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")


def semester_end_date(today: date) -> date:
    """Last day of the semester containing today.

    Even semester runs January-April, odd semester May-November; a December
    date belongs to the even semester of the next year.
    """
    if today.month <= 4:
        return date(today.year, 4, 30)
    if today.month <= 11:
        return date(today.year, 11, 30)
    return date(today.year + 1, 4, 30)


def next_occurrence(day_of_week: int, from_date: date) -> date:
    """Return the next date falling on day_of_week (0=Sunday), from_date inclusive."""
    days_ahead = (day_of_week - to_day_of_week(from_date)) % 7
    return from_date + timedelta(days=days_ahead)


def _clock(hhmm: str) -> time:
    hours, minutes = hhmm.split(":")
    return time(int(hours), int(minutes))


def _event(
    slot: TimetableSlot,
    first: date,
    until: date,
    stamp: datetime,
    zone: ZoneInfo,
) -> Event:
    event = Event()
    event.add("uid", f"{slot.id}@{UID_DOMAIN}")
    event.add("dtstamp", stamp.astimezone(timezone.utc))
    event.add("dtstart", datetime.combine(first, _clock(slot.start_time), tzinfo=zone))
    event.add("dtend", datetime.combine(first, _clock(slot.end_time), tzinfo=zone))
    event.add(
        "rrule",
        {
            "freq": "weekly",
            "byday": RRULE_DAY[slot.day_of_week],
            "until": datetime.combine(until, time(23, 59, 59), tzinfo=timezone.utc),
        },
    )
    event.add("summary", slot.course_name)
    event.add("description", f"{slot.session_type.value} session")
    event.add("categories", [slot.session_type.value.upper()])
    return event


def build_ics(
    slots: Iterable[TimetableSlot],
    calendar_name: str,
    *,
    today: date,
    stamp: datetime | None = None,
    tz: str = "Asia/Kolkata",
) -> str:
    """Render slots as an iCalendar document with CRLF line endings.

    Args:
        slots: Timetable slots, one recurring event each.
        calendar_name: X-WR-CALNAME of the calendar.
        today: First day events may start on.
        stamp: DTSTAMP for every event; defaults to now (UTC).
        tz: IANA timezone of the slot times.
    """
    stamp = stamp or datetime.now(timezone.utc)
    until = semester_end_date(today)
    zone = ZoneInfo(tz)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", calendar_name)
    cal.add("x-wr-timezone", tz)

    exported = 0
    for slot in slots:
        first = next_occurrence(slot.day_of_week, today)
        if first > until:
            log.debug("slot_export_skipped", slot_id=slot.id, reason="after_semester_end")
            continue
        cal.add_component(_event(slot, first, until, stamp, zone))
        exported += 1

    log.info("ics_built", events=exported, until=until.isoformat())
    return cal.to_ical().decode("utf-8")


def build_event_body(slot: TimetableSlot, today: date, tz: str = "Asia/Kolkata") -> dict:
    """Build the JSON event body for one recurring class slot."""
    start_date = next_occurrence(slot.day_of_week, today)
    end_date = max(semester_end_date(today), start_date)

    return {
        "subject": slot.course_name,
        "body": {
            "contentType": "text",
            "content": f"{slot.session_type.value} session",
        },
        "start": {
            "dateTime": f"{start_date}T{slot.start_time}:00",
            "timeZone": tz,
        },
        "end": {
            "dateTime": f"{start_date}T{slot.end_time}:00",
            "timeZone": tz,
        },
        "showAs": "busy",
        "isReminderOn": False,
        "recurrence": {
            "pattern": {
                "type": "weekly",
                "interval": 1,
                "daysOfWeek": [DAY_NAMES_LONG[slot.day_of_week].lower()],
                "firstDayOfWeek": "monday",
            },
            "range": {
                "type": "endDate",
                "startDate": str(start_date),
                "endDate": str(end_date),
                "recurrenceTimeZone": tz,
            },
        },
    }
