"""Timetable assembly: merge manual, custom-course and surviving auto slots.

Every call builds the slot list from scratch. Manual and custom-course slots
come through verbatim from the course configuration; auto slots are only the
ones that survived conflict resolution.
"""

from collections.abc import Iterable

from src.timetable.logging import get_logger
from src.timetable.models import (
    AggregatedSlot,
    CourseInput,
    ManualSlot,
    TimetableSlot,
)
from src.timetable.utils import content_id

log = get_logger(__name__)


def auto_slot_id(course_id: str, day_of_week: int, start_time: str, end_time: str) -> str:
    return content_id("slot", course_id, day_of_week, start_time, end_time)


def build_auto_slot(course: CourseInput, aggregate: AggregatedSlot) -> TimetableSlot:
    """TimetableSlot for an attendance-derived candidate."""
    return TimetableSlot(
        id=auto_slot_id(
            course.course_id,
            aggregate.day_of_week,
            aggregate.start_time,
            aggregate.end_time,
        ),
        course_id=course.course_id,
        course_name=course.display_name,
        day_of_week=aggregate.day_of_week,
        start_time=aggregate.start_time,
        end_time=aggregate.end_time,
        session_type=aggregate.session_type,
        is_manual=False,
        is_custom_course=False,
    )


def build_manual_slot(course: CourseInput, manual: ManualSlot) -> TimetableSlot:
    """TimetableSlot for a user-declared slot, keeping its stored ID."""
    return TimetableSlot(
        id=manual.id,
        course_id=course.course_id,
        course_name=course.display_name,
        day_of_week=manual.day_of_week,
        start_time=manual.start_time,
        end_time=manual.end_time,
        session_type=manual.session_type,
        is_manual=True,
        is_custom_course=course.is_custom_course,
    )


def sort_key(slot: TimetableSlot) -> tuple:
    return (slot.day_of_week, slot.start_time, slot.end_time, slot.course_id, slot.id)


def assemble_timetable(
    courses: Iterable[CourseInput],
    accepted_auto_slots: Iterable[TimetableSlot],
) -> list[TimetableSlot]:
    """Build the final slot list.

    Args:
        courses: All courses, including custom ones; their manual slots are
                 included without any confidence filtering.
        accepted_auto_slots: Auto slots that survived resolution.

    Returns:
        Slots sorted by day, start, end, course and ID. A slot ID that appears
        twice (same manual slot stored twice) is kept once.
    """
    slots: list[TimetableSlot] = []
    seen: set[tuple[str, str]] = set()

    manual_count = 0
    for course in courses:
        for manual in course.manual_slots:
            key = (course.course_id, manual.id)
            if key in seen:
                log.debug("duplicate_manual_slot", course_id=course.course_id, slot_id=manual.id)
                continue
            seen.add(key)
            slots.append(build_manual_slot(course, manual))
            manual_count += 1

    auto_count = 0
    for slot in accepted_auto_slots:
        key = (slot.course_id, slot.id)
        if key in seen:
            continue
        seen.add(key)
        slots.append(slot)
        auto_count += 1

    slots.sort(key=sort_key)
    log.debug("timetable_assembled", manual=manual_count, auto=auto_count)
    return slots
