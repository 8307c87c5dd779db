from datetime import date, datetime

import pytest

from src.timetable.extraction import (
    INVALID_DATE,
    INVALID_MONTH,
    INVALID_TIME_RANGE,
    MISSING_DATE,
    MISSING_TIME_RANGE,
    extract_candidates,
    extract_slot,
    infer_session_type,
    parse_clock_time,
    parse_session_date,
    parse_time_range,
    to_day_of_week,
)
from src.timetable.models import AttendanceRecord, SessionType
from tests.builders import FIRST_TUESDAY, record, weekly


@pytest.mark.parametrize(
    "value, expected",
    [
        ("12AM", 0),
        ("12:30AM", 30),
        ("1AM", 60),
        ("11AM", 660),
        ("12PM", 720),
        ("12:05PM", 725),
        ("1PM", 780),
        ("9:05 pm", 21 * 60 + 5),
        ("11:59PM", 23 * 60 + 59),
    ],
)
def test_parse_clock_time(value, expected):
    assert parse_clock_time(value) == expected


@pytest.mark.parametrize("value", ["0AM", "13PM", "10:60AM", "10:00", "noon"])
def test_parse_clock_time_rejects_invalid(value):
    assert parse_clock_time(value) is None


def test_parse_session_date_formats():
    assert parse_session_date("Thu 1 Jan 2026 11AM - 12PM") == (date(2026, 1, 1), None)
    assert parse_session_date("Mon 2 February 2026 2PM - 3:50PM") == (date(2026, 2, 2), None)
    assert parse_session_date("Fri 6 Mar. 2026 9AM - 10AM") == (date(2026, 3, 6), None)


@pytest.mark.parametrize(
    "text, reason",
    [
        ("", MISSING_DATE),
        ("Tomorrow 11AM - 12PM", MISSING_DATE),
        ("Thu 1 Foo 2026 11AM - 12PM", INVALID_MONTH),
        ("Sat 31 Feb 2026 11AM - 12PM", INVALID_DATE),
    ],
)
def test_parse_session_date_failures(text, reason):
    assert parse_session_date(text) == (None, reason)


def test_parse_time_range():
    assert parse_time_range("Thu 1 Jan 2026 11AM - 12PM") == ((660, 720), None)
    assert parse_time_range("Tue 13 Jan 2026 10:00AM - 10:55AM") == ((600, 655), None)
    # En dash and lower case, as some LMS themes render them
    assert parse_time_range("Mon 2 Feb 2026 2pm – 3:50pm") == ((840, 950), None)


def test_parse_time_range_day_boundaries():
    assert parse_time_range("Thu 1 Jan 2026 12AM - 12:30AM") == ((0, 30), None)
    assert parse_time_range("Thu 1 Jan 2026 11PM - 11:59PM") == ((1380, 1439), None)
    assert parse_time_range("Thu 1 Jan 2026 11:30AM - 12:30PM") == ((690, 750), None)


@pytest.mark.parametrize(
    "text, reason",
    [
        ("Thu 1 Jan 2026", MISSING_TIME_RANGE),
        ("Thu 1 Jan 2026 11:00 - 12:00", MISSING_TIME_RANGE),
        ("Thu 1 Jan 2026 12PM - 11AM", INVALID_TIME_RANGE),
        ("Thu 1 Jan 2026 11AM - 11AM", INVALID_TIME_RANGE),
        ("Thu 1 Jan 2026 13PM - 2PM", INVALID_TIME_RANGE),
    ],
)
def test_parse_time_range_failures(text, reason):
    assert parse_time_range(text) == (None, reason)


@pytest.mark.parametrize(
    "day, expected",
    [
        (date(2026, 1, 4), 0),  # Sunday
        (date(2026, 1, 5), 1),
        (date(2026, 1, 6), 2),
        (date(2026, 1, 7), 3),
        (date(2026, 1, 8), 4),
        (date(2026, 1, 9), 5),
        (date(2026, 1, 10), 6),  # Saturday
    ],
)
def test_to_day_of_week_sunday_is_zero(day, expected):
    assert to_day_of_week(day) == expected


def test_calendar_date_wins_over_weekday_label():
    # 13 Jan 2026 is a Tuesday whatever the label says
    candidate, reason = extract_slot("cs101", AttendanceRecord(date="Mon 13 Jan 2026 10AM - 10:55AM"))
    assert reason is None
    assert candidate.day_of_week == 2
    assert (candidate.start_time, candidate.end_time) == ("10:00", "10:55")
    assert candidate.session_date == date(2026, 1, 13)


def test_week_key_is_iso_week():
    candidate, _ = extract_slot("cs101", record(date(2026, 1, 6)))
    assert candidate.week_key == "2026-W02"


@pytest.mark.parametrize(
    "description, start, end, expected",
    [
        ("", 600, 655, SessionType.REGULAR),
        ("DS Lab", 600, 655, SessionType.LAB),
        ("Maths Tutorial", 600, 720, SessionType.TUTORIAL),
        ("", 600, 710, SessionType.LAB),
        ("", 600, 709, SessionType.REGULAR),
    ],
)
def test_infer_session_type(description, start, end, expected):
    assert infer_session_type(description, start, end, 110) == expected


def test_extract_candidates_skips_bad_rows_and_reports_them():
    records = [
        *weekly(FIRST_TUESDAY, 3),
        AttendanceRecord(date="Cancelled"),
        AttendanceRecord(date="Tue 27 Jan 2026"),
        AttendanceRecord(date="Tue 3 Feb 2026 11AM - 10AM"),
    ]

    candidates, report = extract_candidates("cs101", records)

    assert len(candidates) == 3
    assert report.total_rows == 6
    assert report.parsed_rows == 3
    assert report.skipped_rows == 3
    assert report.failures == {
        INVALID_TIME_RANGE: 1,
        MISSING_DATE: 1,
        MISSING_TIME_RANGE: 1,
    }


def test_extract_candidates_empty():
    candidates, report = extract_candidates("cs101", [])
    assert candidates == []
    assert report.total_rows == 0
    assert report.failures == {}


def test_extract_candidates_leaves_out_upcoming_sessions():
    records = weekly(FIRST_TUESDAY, 4)
    # Second Tuesday's class (13 Jan) is still running
    now = datetime(2026, 1, 13, 10, 30)

    candidates, report = extract_candidates("cs101", records, now=now)

    assert [c.session_date for c in candidates] == [FIRST_TUESDAY]
    assert report.parsed_rows == 4


def test_extract_candidates_keeps_everything_before_first_session():
    records = weekly(FIRST_TUESDAY, 4)
    candidates, _ = extract_candidates("cs101", records, now=datetime(2025, 12, 1))
    assert len(candidates) == 4
