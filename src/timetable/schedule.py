"""Read-only queries over a generated timetable (up-next, display helpers, table)."""

from collections.abc import Sequence
from datetime import datetime

from src.timetable.extraction import to_day_of_week
from src.timetable.models import TimetableSlot
from src.timetable.utils import DAY_NAMES, DAY_NAMES_LONG


def _slots_on(slots: Sequence[TimetableSlot], day_of_week: int) -> list[TimetableSlot]:
    return sorted(
        (s for s in slots if s.day_of_week == day_of_week),
        key=lambda s: (s.start_time, s.end_time, s.course_id),
    )


def current_and_next_class(
    slots: Sequence[TimetableSlot], now: datetime
) -> tuple[TimetableSlot | None, TimetableSlot | None]:
    """Find the class in progress and the next class to start.

    The next class is looked up later today first, then on the following days,
    wrapping around to today's first class next week.

    Returns:
        (current_class, next_class); either may be None.
    """
    today = to_day_of_week(now.date())
    clock = now.strftime("%H:%M")

    current: TimetableSlot | None = None
    upcoming: TimetableSlot | None = None
    for slot in _slots_on(slots, today):
        if slot.start_time <= clock < slot.end_time:
            current = current or slot
        elif clock < slot.start_time and upcoming is None:
            upcoming = slot

    if upcoming is None:
        for offset in range(1, 8):
            day_slots = _slots_on(slots, (today + offset) % 7)
            if day_slots:
                upcoming = day_slots[0]
                break

    return current, upcoming


def nearby_slots(slots: Sequence[TimetableSlot], now: datetime) -> list[TimetableSlot]:
    """Today's classes while any is still running or ahead, else the next class day's."""
    if not slots:
        return []

    today = to_day_of_week(now.date())
    clock = now.strftime("%H:%M")

    today_slots = _slots_on(slots, today)
    if any(slot.end_time > clock for slot in today_slots):
        return today_slots

    for offset in range(1, 8):
        day_slots = _slots_on(slots, (today + offset) % 7)
        if day_slots:
            return day_slots
    return []


def format_time_display(value: str) -> str:
    """'13:05' -> '1:05 PM', '00:30' -> '12:30 AM'."""
    hours, minutes = (int(part) for part in value.split(":"))
    period = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{minutes:02d} {period}"


def day_name(day_of_week: int, short: bool = True) -> str:
    return DAY_NAMES[day_of_week] if short else DAY_NAMES_LONG[day_of_week]


def format_table(slots: Sequence[TimetableSlot]) -> str:
    """Format timetable slots as a human-readable table.

    Columns: Day | Time | Course | Type | Source
    """
    if not slots:
        return "(no classes scheduled)"

    headers = ["Day", "Time", "Course", "Type", "Source"]

    rows = []
    for slot in slots:
        rows.append(
            [
                day_name(slot.day_of_week),
                f"{format_time_display(slot.start_time)} - {format_time_display(slot.end_time)}",
                slot.course_name,
                slot.session_type.value,
                slot.provenance.value,
            ]
        )

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)

    row_lines = []
    for row in rows:
        row_lines.append(
            " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip()
        )

    return "\n".join([header_line, separator, *row_lines])
