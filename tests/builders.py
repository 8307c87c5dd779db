"""Builders for attendance rows and courses shaped like the LMS export."""

from datetime import date, timedelta

from src.timetable.models import AttendanceRecord, AttendanceStatus, CourseInput, ManualSlot

# 2026-01-06 is a Tuesday, 2026-01-07 a Wednesday
FIRST_TUESDAY = date(2026, 1, 6)
FIRST_WEDNESDAY = date(2026, 1, 7)


def lms_date(day: date, start: str, end: str) -> str:
    """Render a session the way the LMS attendance table does: 'Tue 13 Jan 2026 10AM - 10:55AM'."""
    return f"{day:%a} {day.day} {day:%b %Y} {start} - {end}"


def record(day: date, start: str = "10AM", end: str = "10:55AM", description: str = "") -> AttendanceRecord:
    return AttendanceRecord(
        date=lms_date(day, start, end),
        status=AttendanceStatus.PRESENT,
        points="1 / 1",
        description=description,
    )


def weekly(first: date, weeks: int, start: str = "10AM", end: str = "10:55AM", description: str = "") -> list[AttendanceRecord]:
    return [record(first + timedelta(weeks=i), start, end, description) for i in range(weeks)]


def course(course_id: str, records=(), manual_slots=(), **kwargs) -> CourseInput:
    return CourseInput(
        course_id=course_id,
        course_name=kwargs.pop("course_name", f"{course_id.upper()} - Course {course_id}"),
        records=list(records),
        manual_slots=list(manual_slots),
        **kwargs,
    )


def manual(course_id: str, day_of_week: int, start: str, end: str) -> ManualSlot:
    return ManualSlot.create(course_id, day_of_week, start, end)
