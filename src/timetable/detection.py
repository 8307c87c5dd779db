"""Conflict detection over aggregated candidates and manual slots.

Passes, in order:

1. manual-auto: a manual slot overlaps an auto candidate of the same course
   (partial overlap counts). The manual slot wins; the conflict is reported
   for visibility.
2. auto-auto: two remaining candidates of one course overlap on the same day.
   Candidates are paired in rank order: the current winner meets each
   overlapping rival in turn, and a rival chosen over it takes its place.
   Every candidate that loses is part of a conflict, so any of them can be
   brought back by a choice.
3. time-overlap: accepted auto slots and declared manual slots of different
   courses overlap. A manual side is always preferred; between two auto
   slots the higher score is preferred, ties go to the slot detected first.
   Two manual slots are never paired.
4. outlier-review: an unconflicted candidate scores below the outlier
   threshold. Soft flag, the slot is kept unless the user ignores it.

Courses are visited in course ID order and slots in (day, start, end) order,
so two runs over the same data produce the same conflicts in the same order
whatever order the caller listed the courses in. Stored choices are only read
here (to fill resolved_choice and to know which slot won a pair before the
cross-course pass); they are written by the resolution mutators alone.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from src.timetable.assembly import build_auto_slot, build_manual_slot, sort_key
from src.timetable.logging import get_logger
from src.timetable.models import (
    AggregatedSlot,
    AutoAutoConflict,
    CourseInput,
    ManualAutoConflict,
    OutlierConflict,
    ResolutionChoice,
    ResolutionState,
    SlotConflict,
    SlotKey,
    SlotOccurrenceStats,
    TimeOverlapConflict,
    TimetableSlot,
)
from src.timetable.resolution import kept_slot, resolve_conflicts, stored_pair_choice
from src.timetable.utils import content_id, times_overlap

log = get_logger(__name__)

DEFAULT_OUTLIER_THRESHOLD = 0.5

Candidate = tuple[TimetableSlot, AggregatedSlot]


@dataclass(frozen=True)
class DetectionResult:
    """Conflicts plus everything the resolver needs to apply them."""

    candidates: list[Candidate] = field(default_factory=list)
    conflicts: list[SlotConflict] = field(default_factory=list)


def _overlaps(a: TimetableSlot, b: TimetableSlot) -> bool:
    return a.day_of_week == b.day_of_week and times_overlap(
        a.start_time, a.end_time, b.start_time, b.end_time
    )


def _time_range(slot: TimetableSlot) -> str:
    return f"{slot.start_time}-{slot.end_time}"


def rank_key(candidate: Candidate) -> tuple:
    """Sort key putting the strongest candidate first.

    Score, then raw occurrence count, then recency (most recently seen wins),
    then earlier start and end so the order is total.
    """
    slot, aggregate = candidate
    return (
        -aggregate.stats.score,
        -aggregate.stats.occurrence_count,
        -aggregate.last_seen.toordinal(),
        slot.start_time,
        slot.end_time,
    )


def manual_auto_conflict_id(manual: TimetableSlot, auto: TimetableSlot) -> str:
    return content_id(
        "manual-auto",
        manual.course_id,
        manual.id,
        auto.day_of_week,
        _time_range(auto),
    )


def auto_conflict_id(course_id: str, day_of_week: int, a: TimetableSlot, b: TimetableSlot) -> str:
    ranges = sorted([_time_range(a), _time_range(b)])
    return content_id("auto-auto", course_id, day_of_week, *ranges)


def time_overlap_conflict_id(a: TimetableSlot, b: TimetableSlot) -> str:
    keys = sorted([a.slot_key, b.slot_key])
    return content_id("time-overlap", *keys)


def outlier_conflict_id(slot: TimetableSlot) -> str:
    return content_id("outlier", slot.course_id, slot.day_of_week, _time_range(slot))


def _detect_manual_auto(
    course: CourseInput,
    candidates: list[Candidate],
) -> tuple[list[ManualAutoConflict], set[str]]:
    conflicts: list[ManualAutoConflict] = []
    suppressed: set[str] = set()

    manual_slots = sorted(
        (build_manual_slot(course, manual) for manual in course.manual_slots),
        key=sort_key,
    )
    for manual in manual_slots:
        for auto, aggregate in candidates:
            if not _overlaps(manual, auto):
                continue
            suppressed.add(auto.id)
            conflicts.append(
                ManualAutoConflict(
                    conflict_id=manual_auto_conflict_id(manual, auto),
                    manual_slot=manual,
                    auto_slot=auto,
                    auto_stats=aggregate.stats,
                )
            )
    return conflicts, suppressed


def _auto_auto_conflict(
    course: CourseInput,
    day_of_week: int,
    first: Candidate,
    second: Candidate,
    resolutions: ResolutionState,
) -> AutoAutoConflict:
    (preferred_slot, preferred), (alternative_slot, alternative) = sorted(
        (first, second), key=rank_key
    )
    conflict_id = auto_conflict_id(
        course.course_id, day_of_week, preferred_slot, alternative_slot
    )
    return AutoAutoConflict(
        conflict_id=conflict_id,
        preferred_slot=preferred_slot,
        alternative_slot=alternative_slot,
        preferred_stats=preferred.stats,
        alternative_stats=alternative.stats,
        resolved_choice=stored_pair_choice(
            resolutions.auto_conflicts.get(conflict_id),
            preferred_slot,
            alternative_slot,
        ),
    )


def _detect_auto_auto(
    course: CourseInput,
    candidates: list[Candidate],
    resolutions: ResolutionState,
    outlier_threshold: float,
) -> tuple[list[AutoAutoConflict], list[OutlierConflict]]:
    auto_conflicts: list[AutoAutoConflict] = []
    outliers: list[OutlierConflict] = []

    by_day: dict[int, list[Candidate]] = {}
    for candidate in candidates:
        by_day.setdefault(candidate[0].day_of_week, []).append(candidate)

    for day_of_week in sorted(by_day):
        remaining = sorted(by_day[day_of_week], key=rank_key)
        paired: set[str] = set()
        seen: set[frozenset[str]] = set()
        winners: list[Candidate] = []

        while remaining:
            winner = remaining.pop(0)
            beaten: list[Candidate] = []
            while True:
                rival = next(
                    (
                        c
                        for c in remaining
                        if _overlaps(winner[0], c[0])
                        and frozenset((winner[0].id, c[0].id)) not in seen
                    ),
                    None,
                )
                if rival is None:
                    break

                remaining.remove(rival)
                seen.add(frozenset((winner[0].id, rival[0].id)))
                paired.update((winner[0].id, rival[0].id))
                conflict = _auto_auto_conflict(
                    course, day_of_week, winner, rival, resolutions
                )
                auto_conflicts.append(conflict)

                if kept_slot(conflict).id == winner[0].id:
                    beaten.append(rival)
                    continue

                # The rival takes over; whatever the old winner beat competes again
                log.debug(
                    "auto_candidate_overturned",
                    course_id=course.course_id,
                    day_of_week=day_of_week,
                    slot=_time_range(winner[0]),
                    by=_time_range(rival[0]),
                )
                remaining = sorted([*remaining, *beaten], key=rank_key)
                beaten = [winner]
                winner = rival
            winners.append(winner)

        singles = [c for c in winners if c[0].id not in paired]
        for slot, aggregate in sorted(singles, key=lambda c: sort_key(c[0])):
            if aggregate.stats.score >= outlier_threshold:
                continue
            conflict_id = outlier_conflict_id(slot)
            outliers.append(
                OutlierConflict(
                    conflict_id=conflict_id,
                    slot=slot,
                    stats=aggregate.stats,
                    resolved_choice=resolutions.outliers.get(conflict_id),
                )
            )

    auto_conflicts.sort(
        key=lambda c: (sort_key(c.preferred_slot), sort_key(c.alternative_slot))
    )
    return auto_conflicts, outliers


def _detect_time_overlaps(
    accepted: list[tuple[TimetableSlot, SlotOccurrenceStats]],
    manual_slots: list[TimetableSlot],
    resolutions: ResolutionState,
) -> list[TimeOverlapConflict]:
    conflicts: list[TimeOverlapConflict] = []
    entries: list[tuple[TimetableSlot, SlotOccurrenceStats | None]] = [
        *accepted,
        *((slot, None) for slot in manual_slots),
    ]
    ordered = sorted(entries, key=lambda item: sort_key(item[0]))

    for i, (slot_a, stats_a) in enumerate(ordered):
        for slot_b, stats_b in ordered[i + 1:]:
            if slot_a.course_id == slot_b.course_id or not _overlaps(slot_a, slot_b):
                continue
            # Two declared slots are the user's own business
            if stats_a is None and stats_b is None:
                continue

            if stats_a is None:
                preferred, alternative = (slot_a, stats_a), (slot_b, stats_b)
            elif stats_b is None:
                preferred, alternative = (slot_b, stats_b), (slot_a, stats_a)
            # Ties stay with the slot detected first
            elif stats_b.score > stats_a.score:
                preferred, alternative = (slot_b, stats_b), (slot_a, stats_a)
            else:
                preferred, alternative = (slot_a, stats_a), (slot_b, stats_b)

            conflict_id = time_overlap_conflict_id(slot_a, slot_b)
            resolved_choice = stored_pair_choice(
                resolutions.time_overlaps.get(conflict_id),
                preferred[0],
                alternative[0],
            )
            if preferred[1] is None and resolved_choice == ResolutionChoice.ALTERNATIVE.value:
                resolved_choice = None

            conflicts.append(
                TimeOverlapConflict(
                    conflict_id=conflict_id,
                    preferred_slot=preferred[0],
                    alternative_slot=alternative[0],
                    preferred_stats=preferred[1],
                    alternative_stats=alternative[1],
                    resolved_choice=resolved_choice,
                )
            )
    return conflicts


def detect_conflicts(
    courses: Sequence[CourseInput],
    aggregated: Mapping[str, Mapping[SlotKey, AggregatedSlot]],
    resolutions: ResolutionState | None = None,
    *,
    outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
) -> DetectionResult:
    """Detect all conflicts for one generation run.

    Args:
        courses: All courses with their manual slots.
        aggregated: Aggregated candidates per course ID. Courses missing here
                    contribute no auto candidates.
        resolutions: Stored choices, read-only.
        outlier_threshold: Unconflicted candidates scoring below this are flagged.

    Returns:
        DetectionResult with conflicts ordered manual-auto, auto-auto,
        time-overlap, outlier-review.
    """
    resolutions = resolutions or ResolutionState()

    all_candidates: list[Candidate] = []
    manual_slots: dict[str, TimetableSlot] = {}
    manual_auto: list[ManualAutoConflict] = []
    auto_auto: list[AutoAutoConflict] = []
    outliers: list[OutlierConflict] = []

    for course in sorted(courses, key=lambda c: c.course_id):
        for manual in course.manual_slots:
            manual_slots.setdefault(manual.id, build_manual_slot(course, manual))

        course_aggregates = aggregated.get(course.course_id) or {}
        candidates = [
            (build_auto_slot(course, aggregate), aggregate)
            for _, aggregate in sorted(course_aggregates.items())
        ]
        if not candidates:
            continue
        all_candidates.extend(candidates)

        course_manual, suppressed = _detect_manual_auto(course, candidates)
        manual_auto.extend(course_manual)

        remaining = [c for c in candidates if c[0].id not in suppressed]
        course_auto, course_outliers = _detect_auto_auto(
            course, remaining, resolutions, outlier_threshold
        )
        auto_auto.extend(course_auto)
        outliers.extend(course_outliers)

    accepted = resolve_conflicts(all_candidates, [*manual_auto, *auto_auto, *outliers])
    time_overlaps = _detect_time_overlaps(accepted, list(manual_slots.values()), resolutions)

    conflicts: list[SlotConflict] = [*manual_auto, *auto_auto, *time_overlaps, *outliers]
    log.debug(
        "conflicts_detected",
        manual_auto=len(manual_auto),
        auto_auto=len(auto_auto),
        time_overlap=len(time_overlaps),
        outlier_review=len(outliers),
    )
    return DetectionResult(candidates=all_candidates, conflicts=conflicts)
