"""Occurrence aggregation: turn per-session candidates into scored weekly slots.

Candidates of one course are grouped by exact (day, start, end). Groups on the
same day whose start and end both lie within the merge tolerance are folded
into one cluster first (scraped times drift by a few minutes), keyed by the
cluster's most frequent range. Each cluster is then scored by how many of the
weeks observed for its weekday it appeared in:

    score = day_active_week_count / max(total_week_span_count, 1)

A slot seen on 9 of 10 observed Tuesdays scores 0.9, a one-off rescheduling
scores 0.1.
"""

from collections import Counter, defaultdict
from collections.abc import Sequence

from src.timetable.logging import get_logger
from src.timetable.models import (
    AggregatedSlot,
    ExtractedSlotCandidate,
    SessionType,
    SlotKey,
    SlotOccurrenceStats,
)
from src.timetable.utils import time_to_minutes

log = get_logger(__name__)

DEFAULT_TOLERANCE_MINUTES = 5

# Tie-break when two session types are voted equally often
SESSION_TYPE_PRIORITY: dict[SessionType, int] = {
    SessionType.REGULAR: 1,
    SessionType.TUTORIAL: 2,
    SessionType.LAB: 3,
}


def compute_score(day_active_week_count: int, total_week_span_count: int) -> float:
    """Share of observed weeks for the weekday in which the slot appeared, in [0, 1]."""
    ratio = day_active_week_count / max(total_week_span_count, 1)
    return min(1.0, max(0.0, ratio))


def _is_near(a: SlotKey, b: SlotKey, tolerance_minutes: int) -> bool:
    return (
        a[0] == b[0]
        and abs(time_to_minutes(a[1]) - time_to_minutes(b[1])) <= tolerance_minutes
        and abs(time_to_minutes(a[2]) - time_to_minutes(b[2])) <= tolerance_minutes
    )


def merge_near_duplicates(
    groups: dict[SlotKey, list[ExtractedSlotCandidate]],
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
) -> list[tuple[SlotKey, list[ExtractedSlotCandidate]]]:
    """Fold exact-range groups that differ by at most tolerance_minutes.

    Groups are visited most frequent first (ties: earlier start, earlier end),
    so the first group of every cluster is its mode and becomes the cluster key.
    Later groups are compared against that key only, which keeps clusters from
    creeping across the day one small step at a time.

    Returns:
        (cluster_key, members) pairs sorted by cluster key.
    """
    ordered = sorted(
        groups.items(),
        key=lambda item: (item[0][0], -len(item[1]), item[0][1], item[0][2]),
    )

    clusters: list[tuple[SlotKey, list[ExtractedSlotCandidate]]] = []
    for key, members in ordered:
        for cluster_key, cluster_members in clusters:
            if _is_near(cluster_key, key, tolerance_minutes):
                cluster_members.extend(members)
                log.debug("slot_merged", into=cluster_key, merged=key, rows=len(members))
                break
        else:
            clusters.append((key, list(members)))

    clusters.sort(key=lambda cluster: cluster[0])
    return clusters


def vote_session_type(members: Sequence[ExtractedSlotCandidate]) -> SessionType:
    counts = Counter(member.session_type for member in members)
    return max(counts, key=lambda st: (counts[st], SESSION_TYPE_PRIORITY[st]))


def aggregate_candidates(
    candidates: Sequence[ExtractedSlotCandidate],
    *,
    tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
) -> dict[SlotKey, AggregatedSlot]:
    """Group one course's candidates into scored slots.

    Args:
        candidates: Extracted candidates of a single course.
        tolerance_minutes: Near-duplicate merge tolerance for start and end times.

    Returns:
        {(day_of_week, start_time, end_time): AggregatedSlot}, in key order.
        Empty if there are no candidates.
    """
    if not candidates:
        return {}

    groups: dict[SlotKey, list[ExtractedSlotCandidate]] = defaultdict(list)
    day_weeks: dict[int, set[str]] = defaultdict(set)
    day_rows: Counter[int] = Counter()

    for candidate in candidates:
        groups[candidate.slot_key].append(candidate)
        day_weeks[candidate.day_of_week].add(candidate.week_key)
        day_rows[candidate.day_of_week] += 1

    aggregated: dict[SlotKey, AggregatedSlot] = {}
    for key, members in merge_near_duplicates(groups, tolerance_minutes):
        day_of_week, start_time, end_time = key
        active_weeks = len({member.week_key for member in members})
        total_weeks = len(day_weeks[day_of_week])

        stats = SlotOccurrenceStats(
            occurrence_count=len(members),
            day_active_week_count=active_weeks,
            total_week_span_count=total_weeks,
            day_observation_count=day_rows[day_of_week],
            score=compute_score(active_weeks, total_weeks),
        )
        aggregated[key] = AggregatedSlot(
            course_id=members[0].course_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            session_type=vote_session_type(members),
            stats=stats,
            last_seen=max(member.session_date for member in members),
        )

    log.debug(
        "candidates_aggregated",
        course_id=candidates[0].course_id,
        rows=len(candidates),
        slots=len(aggregated),
    )
    return aggregated
