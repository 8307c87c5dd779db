from datetime import datetime, timedelta

import pytest

from src.timetable.engine import TimetableEngine
from src.timetable.errors import ConflictNotFoundError, InvalidChoiceError
from src.timetable.models import (
    CustomCourseInput,
    ManualSlotInput,
    Provenance,
    ResolutionState,
    SessionType,
)
from tests.builders import FIRST_TUESDAY, FIRST_WEDNESDAY, course, manual, record, weekly


def _times(slots):
    return [(s.course_id, s.day_of_week, s.start_time, s.end_time) for s in slots]


def test_empty_input(config):
    result = TimetableEngine([], config=config).generate()
    assert result.slots == []
    assert result.conflicts == []


def test_course_without_records_produces_nothing(config):
    result = TimetableEngine([course("cs101")], config=config).generate()
    assert result.slots == []
    assert result.extraction == []


def test_rescheduled_double_period_default_and_override(config, rescheduled_tuesday_records):
    engine = TimetableEngine([course("cs101", rescheduled_tuesday_records)], config=config)

    result = engine.generate()
    assert _times(result.slots) == [("cs101", 2, "10:00", "10:55")]
    assert result.slots[0].session_type == SessionType.REGULAR
    assert len(result.conflicts) == 1
    conflict_id = result.conflicts[0].conflict_id

    result = engine.resolve_conflict(0, "alternative")
    assert _times(result.slots) == [("cs101", 2, "10:00", "11:50")]
    assert result.slots[0].session_type == SessionType.LAB
    assert result.conflicts[0].resolved_choice == "alternative"
    assert conflict_id in engine.resolutions.auto_conflicts

    # A fresh run with the stored state keeps the choice
    rerun = TimetableEngine(
        [course("cs101", rescheduled_tuesday_records)],
        resolutions=engine.resolutions,
        config=config,
    ).generate()
    assert _times(rerun.slots) == [("cs101", 2, "10:00", "11:50")]
    assert rerun.conflicts[0].conflict_id == conflict_id


def test_manual_slot_replaces_auto_slot(config):
    cs101 = course(
        "cs101",
        weekly(FIRST_WEDNESDAY, 6, "2PM", "2:55PM"),
        manual_slots=[manual("cs101", 3, "14:00", "15:00")],
    )

    result = TimetableEngine([cs101], config=config).generate()

    assert [c.type for c in result.conflicts] == ["manual-auto"]
    assert _times(result.slots) == [("cs101", 3, "14:00", "15:00")]
    assert result.slots[0].provenance == Provenance.MANUAL


def test_acknowledging_manual_conflict_keeps_manual(config):
    cs101 = course(
        "cs101",
        weekly(FIRST_WEDNESDAY, 6, "2PM", "2:55PM"),
        manual_slots=[manual("cs101", 3, "14:00", "15:00")],
    )
    engine = TimetableEngine([cs101], config=config)
    engine.generate()

    result = engine.resolve_conflict(0, "manual")

    assert engine.resolutions.is_empty()
    assert _times(result.slots) == [("cs101", 3, "14:00", "15:00")]
    with pytest.raises(InvalidChoiceError):
        engine.resolve_conflict(0, "auto")


def test_regeneration_is_idempotent(config, rescheduled_tuesday_records):
    courses = [
        course("cs101", rescheduled_tuesday_records),
        course("ma201", weekly(FIRST_TUESDAY, 4, "10:30AM", "11:25AM")),
        course(
            "ph110",
            [*weekly(FIRST_WEDNESDAY, 3, "9AM", "9:55AM"), record(FIRST_WEDNESDAY, "4PM", "4:55PM")],
            manual_slots=[manual("ph110", 4, "12:00", "12:55")],
        ),
    ]
    engine = TimetableEngine(courses, config=config)

    first = engine.generate().model_dump_json(by_alias=True)
    second = engine.generate().model_dump_json(by_alias=True)
    reordered = TimetableEngine(list(reversed(courses)), config=config).generate()

    assert first == second
    assert reordered.model_dump_json(by_alias=True) == first


def test_resolve_out_of_range(config, rescheduled_tuesday_records):
    engine = TimetableEngine([course("cs101", rescheduled_tuesday_records)], config=config)
    engine.generate()

    with pytest.raises(ConflictNotFoundError):
        engine.resolve_conflict(1, "preferred")
    with pytest.raises(IndexError):
        engine.resolve_conflict(-1, "preferred")


def test_resolve_all_and_revert(config, rescheduled_tuesday_records):
    wednesday_records = [
        *weekly(FIRST_WEDNESDAY, 8, "2PM", "2:55PM"),
        record(FIRST_WEDNESDAY + timedelta(weeks=8), "2PM", "3:50PM"),
    ]
    engine = TimetableEngine(
        [course("cs101", rescheduled_tuesday_records), course("ma201", wednesday_records)],
        config=config,
    )
    engine.generate()

    result = engine.resolve_all_auto_conflicts("alternative")

    assert _times(result.slots) == [
        ("cs101", 2, "10:00", "11:50"),
        ("ma201", 3, "14:00", "15:50"),
    ]
    assert len(engine.resolutions.auto_conflicts) == 2

    reverted = engine.revert_conflict_resolution(result.conflicts[0].conflict_id)

    assert _times(reverted.slots) == [
        ("cs101", 2, "10:00", "10:55"),
        ("ma201", 3, "14:00", "15:50"),
    ]
    assert reverted.conflicts[0].resolved_choice is None


def test_revert_unknown_id_is_a_no_op(config, rescheduled_tuesday_records):
    engine = TimetableEngine([course("cs101", rescheduled_tuesday_records)], config=config)
    before = engine.generate()

    after = engine.revert_conflict_resolution("auto-auto-doesnotexist")

    assert after == before


def test_stale_resolutions_are_kept_and_ignored(config, rescheduled_tuesday_records):
    stale = ResolutionState(
        auto_conflicts={"auto-auto-0000000000000000": "cs101|2|08:00|08:55"},
        outliers={"outlier-0000000000000000": "ignore"},
    )
    engine = TimetableEngine(
        [course("cs101", rescheduled_tuesday_records)], resolutions=stale, config=config
    )

    result = engine.generate()

    assert _times(result.slots) == [("cs101", 2, "10:00", "10:55")]
    assert engine.resolutions == stale


def test_caller_state_is_not_mutated(config, rescheduled_tuesday_records):
    state = ResolutionState()
    engine = TimetableEngine(
        [course("cs101", rescheduled_tuesday_records)], resolutions=state, config=config
    )
    engine.generate()
    engine.resolve_conflict(0, "alternative")

    assert state.is_empty()
    assert not engine.resolutions.is_empty()


def test_ignoring_an_outlier_removes_it(config):
    records = [*weekly(FIRST_TUESDAY, 3), record(FIRST_TUESDAY + timedelta(weeks=3), "2PM", "2:55PM")]
    engine = TimetableEngine([course("cs101", records)], config=config)

    result = engine.generate()
    assert [c.type for c in result.conflicts] == ["outlier-review"]
    assert len(result.slots) == 2

    result = engine.resolve_conflict(0, "ignore")
    assert _times(result.slots) == [("cs101", 2, "10:00", "10:55")]
    assert result.conflicts[0].resolved_choice == "ignore"

    result = engine.clear_resolutions()
    assert len(result.slots) == 2


def test_custom_course_slots_pass_through(config):
    custom = CustomCourseInput(
        course_name="Music Club",
        slots=[ManualSlotInput(day_of_week=5, start_time="16:00", end_time="17:00")],
    )

    result = TimetableEngine([], custom_courses=[custom], config=config).generate()

    assert len(result.slots) == 1
    assert result.slots[0].provenance == Provenance.CUSTOM_COURSE
    assert result.conflicts == []


def test_override_lms_slots_ignores_attendance(config, rescheduled_tuesday_records):
    cs101 = course(
        "cs101",
        rescheduled_tuesday_records,
        manual_slots=[manual("cs101", 1, "09:00", "09:55")],
        override_lms_slots=True,
    )

    result = TimetableEngine([cs101], config=config).generate()

    assert _times(result.slots) == [("cs101", 1, "09:00", "09:55")]
    assert result.conflicts == []


def test_unparseable_rows_are_reported_not_raised(config):
    records = [*weekly(FIRST_TUESDAY, 3), record(FIRST_TUESDAY).model_copy(update={"date": "TBA"})]

    result = TimetableEngine([course("cs101", records)], config=config).generate()

    assert len(result.slots) == 1
    assert result.extraction[0].skipped_rows == 1


def test_sessions_after_now_are_not_observed(config):
    records = weekly(FIRST_TUESDAY, 4)
    engine = TimetableEngine(
        [course("cs101", records)], config=config, now=datetime(2026, 1, 14, 12, 0)
    )

    result = engine.generate()

    assert _times(result.slots) == [("cs101", 2, "10:00", "10:55")]
    assert result.extraction[0].parsed_rows == 4


def test_result_is_generated_lazily(config, rescheduled_tuesday_records):
    engine = TimetableEngine([course("cs101", rescheduled_tuesday_records)], config=config)
    assert len(engine.conflicts) == 1
    assert len(engine.slots) == 1


def test_manual_slot_of_another_course_drops_the_clashing_auto_slot(config):
    cs101 = course("cs101", weekly(FIRST_TUESDAY, 4))
    ma201 = course("ma201", manual_slots=[manual("ma201", 2, "10:00", "10:55")])
    engine = TimetableEngine([cs101, ma201], config=config)

    result = engine.generate()

    assert [c.type for c in result.conflicts] == ["time-overlap"]
    overlap = result.conflicts[0]
    assert overlap.preferred_slot.course_id == "ma201"
    assert overlap.alternative_slot.course_id == "cs101"
    assert _times(result.slots) == [("ma201", 2, "10:00", "10:55")]

    with pytest.raises(InvalidChoiceError):
        engine.resolve_conflict(0, "alternative")
    assert engine.resolve_all_auto_conflicts("alternative") == result
    assert engine.resolutions.is_empty()


def test_slot_that_only_lost_to_a_dropped_slot_is_kept(config):
    cs101 = course("cs101", weekly(FIRST_TUESDAY, 4))
    ma201 = course(
        "ma201",
        [
            *weekly(FIRST_TUESDAY, 3, "10:30AM", "11:25AM"),
            record(FIRST_TUESDAY + timedelta(weeks=3), "3PM", "3:55PM"),
        ],
    )
    ph110 = course(
        "ph110",
        [
            *weekly(FIRST_TUESDAY, 2, "11AM", "11:55AM"),
            *weekly(FIRST_TUESDAY + timedelta(weeks=2), 2, "4PM", "4:55PM"),
        ],
    )

    result = TimetableEngine([cs101, ma201, ph110], config=config).generate()

    overlaps = [c for c in result.conflicts if c.type == "time-overlap"]
    assert [(c.preferred_slot.course_id, c.alternative_slot.course_id) for c in overlaps] == [
        ("cs101", "ma201"),
        ("ma201", "ph110"),
    ]
    assert _times(result.slots) == [
        ("cs101", 2, "10:00", "10:55"),
        ("ph110", 2, "11:00", "11:55"),
        ("ma201", 2, "15:00", "15:55"),
        ("ph110", 2, "16:00", "16:55"),
    ]


def test_every_rival_can_be_brought_back(config):
    records = [
        *weekly(FIRST_TUESDAY, 6),
        *weekly(FIRST_TUESDAY, 3, "10:30AM", "11:25AM"),
        *weekly(FIRST_TUESDAY, 2, "9:30AM", "10:10AM"),
    ]
    engine = TimetableEngine([course("cs101", records)], config=config)

    result = engine.generate()
    assert [c.type for c in result.conflicts] == ["auto-auto", "auto-auto"]
    assert _times(result.slots) == [("cs101", 2, "10:00", "10:55")]
    assert result.conflicts[0].alternative_slot.start_time == "09:30"

    result = engine.resolve_conflict(0, "alternative")

    assert _times(result.slots) == [
        ("cs101", 2, "09:30", "10:10"),
        ("cs101", 2, "10:30", "11:25"),
    ]
    assert [c.resolved_choice for c in result.conflicts] == ["alternative", None]
