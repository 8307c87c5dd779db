"""Slot extraction from LMS attendance rows.

Attendance tables only carry a free-text date column per session, e.g.

    "Thu 1 Jan 2026 11AM - 12PM"
    "Tue 13 Jan 2026 10:00AM - 10:55AM"
    "Mon 2 February 2026 2PM – 3:50PM"

The calendar date is authoritative for the weekday: the leading weekday name
is ignored because the LMS occasionally renders it in another locale or gets
it wrong for rescheduled sessions. The time range is matched independently
and normalised to 24-hour HH:MM.

Rows that cannot be parsed are counted per failure reason and skipped; they
never stop the remaining rows from producing candidates.
"""

import re
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, time

from src.timetable.logging import get_logger
from src.timetable.models import (
    AttendanceRecord,
    ExtractedSlotCandidate,
    ExtractionReport,
    SessionType,
)
from src.timetable.utils import minutes_to_time

log = get_logger(__name__)

MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

DEFAULT_LAB_MIN_DURATION_MINUTES = 110

# Failure reasons reported in ExtractionReport.failures
MISSING_DATE = "missing_date"
INVALID_MONTH = "invalid_month"
INVALID_DATE = "invalid_date"
MISSING_TIME_RANGE = "missing_time_range"
INVALID_TIME_RANGE = "invalid_time_range"

_DATE_RE = re.compile(r"\b(\d{1,2})\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})\b")
_TIME_RANGE_RE = re.compile(
    r"(\d{1,2}(?::\d{2})?\s*[AP]M)\s*[-–]\s*(\d{1,2}(?::\d{2})?\s*[AP]M)",
    re.IGNORECASE,
)
_CLOCK_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([AP]M)$", re.IGNORECASE)

_MAX_FAILURE_SAMPLES = 5


def parse_clock_time(value: str) -> int | None:
    """Parse a 12-hour clock string ('11AM', '9:05 pm') to minutes since midnight.

    Follows the standard convention: 12AM is midnight, 12PM is noon.

    Returns:
        Minutes since midnight, or None if the value is not a valid 12-hour time.
    """
    match = _CLOCK_RE.match(value.strip())
    if not match:
        return None

    hours12 = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    if hours12 < 1 or hours12 > 12 or minutes > 59:
        return None

    hours24 = hours12 % 12
    if match.group(3).upper() == "PM":
        hours24 += 12
    return hours24 * 60 + minutes


def parse_session_date(text: str) -> tuple[date | None, str | None]:
    """Find the 'D Mon YYYY' date in an attendance date string.

    Returns:
        (date, None) on success, (None, failure_reason) otherwise.
    """
    match = _DATE_RE.search(text)
    if not match:
        return None, MISSING_DATE

    month = MONTHS.get(match.group(2)[:3].lower())
    if month is None:
        return None, INVALID_MONTH

    try:
        return date(int(match.group(3)), month, int(match.group(1))), None
    except ValueError:
        return None, INVALID_DATE


def parse_time_range(text: str) -> tuple[tuple[int, int] | None, str | None]:
    """Find the 'H(:MM)AM - H(:MM)PM' range in an attendance date string.

    Returns:
        ((start_minutes, end_minutes), None) on success,
        (None, failure_reason) otherwise.
    """
    match = _TIME_RANGE_RE.search(text)
    if not match:
        return None, MISSING_TIME_RANGE

    start = parse_clock_time(match.group(1))
    end = parse_clock_time(match.group(2))
    if start is None or end is None or end <= start:
        return None, INVALID_TIME_RANGE
    return (start, end), None


def infer_session_type(
    description: str,
    start_minutes: int,
    end_minutes: int,
    lab_min_duration_minutes: int = DEFAULT_LAB_MIN_DURATION_MINUTES,
) -> SessionType:
    """Classify a session as lab, tutorial or regular.

    An explicit keyword in the description wins over the duration heuristic,
    so a two-hour "Maths Tutorial" stays a tutorial.
    """
    lower = description.lower()
    if "lab" in lower:
        return SessionType.LAB
    if "tutorial" in lower:
        return SessionType.TUTORIAL
    if end_minutes - start_minutes >= lab_min_duration_minutes:
        return SessionType.LAB
    return SessionType.REGULAR


def to_day_of_week(value: date) -> int:
    """Map a date to day_of_week with 0=Sunday (Python's weekday() has 0=Monday)."""
    return (value.weekday() + 1) % 7


def extract_slot(
    course_id: str,
    record: AttendanceRecord,
    *,
    lab_min_duration_minutes: int = DEFAULT_LAB_MIN_DURATION_MINUTES,
) -> tuple[ExtractedSlotCandidate | None, str | None]:
    """Extract the weekly slot of one attendance row.

    Returns:
        (candidate, None) on success, (None, failure_reason) if the row's date
        string has no usable date or time range.
    """
    session_date, reason = parse_session_date(record.date)
    if session_date is None:
        return None, reason

    time_range, reason = parse_time_range(record.date)
    if time_range is None:
        return None, reason

    start, end = time_range
    candidate = ExtractedSlotCandidate(
        course_id=course_id,
        day_of_week=to_day_of_week(session_date),
        start_time=minutes_to_time(start),
        end_time=minutes_to_time(end),
        session_date=session_date,
        session_type=infer_session_type(
            record.description, start, end, lab_min_duration_minutes
        ),
    )
    return candidate, None


def session_end(candidate: ExtractedSlotCandidate) -> datetime:
    """Naive local datetime at which the session ended."""
    hours, minutes = candidate.end_time.split(":")
    return datetime.combine(candidate.session_date, time(int(hours), int(minutes)))


def extract_candidates(
    course_id: str,
    records: Iterable[AttendanceRecord],
    *,
    lab_min_duration_minutes: int = DEFAULT_LAB_MIN_DURATION_MINUTES,
    now: datetime | None = None,
) -> tuple[list[ExtractedSlotCandidate], ExtractionReport]:
    """Extract slot candidates from all attendance rows of a course.

    Args:
        course_id: Course the rows belong to.
        records: Attendance rows in LMS order.
        lab_min_duration_minutes: Duration from which a session counts as a lab.
        now: If given, sessions ending after this moment are upcoming rather than
             observed and are left out, unless no session has ended yet.

    Returns:
        (candidates in row order, extraction report).
    """
    failures: Counter[str] = Counter()
    samples: list[dict[str, str]] = []
    parsed: list[ExtractedSlotCandidate] = []
    total = 0

    for record in records:
        total += 1
        candidate, reason = extract_slot(
            course_id, record, lab_min_duration_minutes=lab_min_duration_minutes
        )
        if candidate is not None:
            parsed.append(candidate)
            continue
        failures[reason] += 1
        if len(samples) < _MAX_FAILURE_SAMPLES:
            samples.append({"reason": reason, "date": record.date})

    if failures:
        log.info(
            "attendance_rows_skipped",
            course_id=course_id,
            total_rows=total,
            parsed_rows=len(parsed),
            failures=dict(sorted(failures.items())),
            samples=samples,
        )

    report = ExtractionReport(
        course_id=course_id,
        total_rows=total,
        parsed_rows=len(parsed),
        failures=dict(sorted(failures.items())),
    )

    if now is None or not parsed:
        return parsed, report

    observed = [c for c in parsed if session_end(c) <= now]
    if not observed:
        log.debug(
            "no_completed_sessions",
            course_id=course_id,
            parseable_rows=len(parsed),
        )
        return parsed, report
    return observed, report
