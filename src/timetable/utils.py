"""Shared helpers for time arithmetic, content-derived IDs and course names."""

import hashlib
import re

# Weekday names indexed by day_of_week (0=Sunday)
DAY_NAMES: tuple[str, ...] = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
DAY_NAMES_LONG: tuple[str, ...] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

LAST_MINUTE_OF_DAY = 23 * 60 + 59

# Leading course code patterns, tried in order:
# "CS101 - Data Structures", "CS101: Data Structures", "ICS221  Compilers",
# "CS101 Data Structures" (single space, code must contain a digit)
_COURSE_CODE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^([\w]+)\s*[-:]\s*"),
    re.compile(r"^([\w]+)\s{2,}"),
    re.compile(r"^([A-Za-z]*\d[\w]*)\s+"),
)

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


def time_to_minutes(value: str) -> int:
    """Convert an 'HH:MM' string to minutes since midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to 'HH:MM', clamped to the same day."""
    clamped = max(0, min(LAST_MINUTE_OF_DAY, minutes))
    return f"{clamped // 60:02d}:{clamped % 60:02d}"


def is_valid_time(value: str) -> bool:
    """True if value is a zero-padded 24-hour 'HH:MM' string."""
    match = _TIME_RE.match(value)
    if not match:
        return False
    return int(match.group(1)) < 24 and int(match.group(2)) < 60


def times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Check if two half-open time ranges overlap (back-to-back does not count)."""
    return start1 < end2 and start2 < end1


def content_id(prefix: str, *parts: object) -> str:
    """Derive a stable identifier from semantic key parts.

    The same parts always yield the same ID across runs and processes.
    """
    raw = "|".join(str(part) for part in parts)
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}-{digest}"


def extract_course_name(course_name: str) -> str:
    """Strip a leading course code from an LMS course name.

    "CS101 - Data Structures" -> "Data Structures". Names without a
    recognisable code are returned trimmed but otherwise unchanged.
    """
    trimmed = course_name.strip()
    for pattern in _COURSE_CODE_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            stripped = trimmed[match.end():].strip()
            return stripped or trimmed
    return trimmed
