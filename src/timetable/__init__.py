"""Weekly timetable inference from LMS attendance history.

Derives recurring class slots from per-session attendance rows, detects
conflicts with manual slots and between courses, and applies the user's
stored conflict choices.
"""

from src.timetable.engine import TimetableEngine
from src.timetable.models import (
    AttendanceRecord,
    CourseInput,
    CustomCourseInput,
    ManualSlot,
    ResolutionState,
    SlotConflict,
    TimetableResult,
    TimetableSlot,
)
from src.timetable.state import load_resolutions, save_resolutions

__all__ = [
    "TimetableEngine",
    "AttendanceRecord",
    "CourseInput",
    "CustomCourseInput",
    "ManualSlot",
    "ResolutionState",
    "SlotConflict",
    "TimetableResult",
    "TimetableSlot",
    "load_resolutions",
    "save_resolutions",
]
