from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from src.timetable.aggregation import aggregate_candidates, compute_score, vote_session_type
from src.timetable.extraction import extract_candidates
from src.timetable.models import SessionType, SlotOccurrenceStats
from tests.builders import FIRST_TUESDAY, record, weekly


def _aggregate(records, tolerance_minutes=5):
    candidates, _ = extract_candidates("cs101", records)
    return aggregate_candidates(candidates, tolerance_minutes=tolerance_minutes)


def test_rescheduled_session_scores_low(rescheduled_tuesday_records):
    aggregated = _aggregate(rescheduled_tuesday_records)

    assert list(aggregated) == [(2, "10:00", "10:55"), (2, "10:00", "11:50")]

    regular = aggregated[(2, "10:00", "10:55")]
    assert regular.session_type == SessionType.REGULAR
    assert regular.stats.occurrence_count == 8
    assert regular.stats.day_active_week_count == 8
    assert regular.stats.total_week_span_count == 9
    assert regular.stats.day_observation_count == 9
    assert regular.stats.score == pytest.approx(8 / 9)
    assert regular.last_seen == FIRST_TUESDAY + timedelta(weeks=7)

    double = aggregated[(2, "10:00", "11:50")]
    assert double.session_type == SessionType.LAB
    assert double.stats.occurrence_count == 1
    assert double.stats.score == pytest.approx(1 / 9)


def test_near_duplicates_merge_into_most_frequent_range():
    records = [
        *weekly(FIRST_TUESDAY, 5),
        *weekly(FIRST_TUESDAY + timedelta(weeks=5), 2, "10:02AM", "10:57AM"),
    ]

    aggregated = _aggregate(records)

    assert list(aggregated) == [(2, "10:00", "10:55")]
    stats = aggregated[(2, "10:00", "10:55")].stats
    assert stats.occurrence_count == 7
    assert stats.day_active_week_count == 7
    assert stats.score == 1.0


def test_merge_key_follows_the_mode():
    records = [
        *weekly(FIRST_TUESDAY, 2),
        *weekly(FIRST_TUESDAY + timedelta(weeks=2), 5, "10:03AM", "10:58AM"),
    ]
    assert list(_aggregate(records)) == [(2, "10:03", "10:58")]


def test_ranges_beyond_tolerance_stay_apart():
    records = [
        *weekly(FIRST_TUESDAY, 3),
        *weekly(FIRST_TUESDAY + timedelta(weeks=3), 3, "10:10AM", "11:05AM"),
    ]
    assert len(_aggregate(records)) == 2


def test_zero_tolerance_disables_merging():
    records = [
        *weekly(FIRST_TUESDAY, 3),
        record(FIRST_TUESDAY + timedelta(weeks=3), "10:02AM", "10:57AM"),
    ]
    assert len(_aggregate(records, tolerance_minutes=0)) == 2


def test_same_start_different_end_is_not_merged(rescheduled_tuesday_records):
    # Matching start alone is not enough: the end differs by 55 minutes
    assert len(_aggregate(rescheduled_tuesday_records)) == 2


def test_two_classes_on_one_weekday_both_score_full():
    records = [
        *weekly(FIRST_TUESDAY, 4),
        *weekly(FIRST_TUESDAY, 4, "2PM", "2:55PM"),
    ]

    aggregated = _aggregate(records)

    assert len(aggregated) == 2
    for slot in aggregated.values():
        assert slot.stats.score == 1.0
        assert slot.stats.occurrence_count == 4
        assert slot.stats.day_observation_count == 8
        assert slot.stats.total_week_span_count == 4


def test_weekday_spans_are_counted_separately():
    wednesday = FIRST_TUESDAY + timedelta(days=1)
    records = [
        *weekly(FIRST_TUESDAY, 6),
        *weekly(wednesday, 2, "2PM", "2:55PM"),
    ]

    aggregated = _aggregate(records)

    assert aggregated[(2, "10:00", "10:55")].stats.total_week_span_count == 6
    assert aggregated[(3, "14:00", "14:55")].stats.total_week_span_count == 2
    assert aggregated[(3, "14:00", "14:55")].stats.score == 1.0


def test_score_grows_with_occurrences():
    base = [
        *weekly(FIRST_TUESDAY, 3),
        *weekly(FIRST_TUESDAY + timedelta(weeks=3), 3, "2PM", "2:55PM"),
    ]
    more = [*base, record(FIRST_TUESDAY + timedelta(weeks=6))]

    before = _aggregate(base)[(2, "10:00", "10:55")].stats.score
    after = _aggregate(more)[(2, "10:00", "10:55")].stats.score

    assert after > before


def test_aggregate_without_candidates():
    assert aggregate_candidates([]) == {}


@pytest.mark.parametrize(
    "active, total, expected",
    [(0, 0, 0.0), (0, 5, 0.0), (1, 9, 1 / 9), (9, 9, 1.0), (3, 0, 1.0)],
)
def test_compute_score_is_bounded(active, total, expected):
    assert compute_score(active, total) == pytest.approx(expected)


def test_vote_session_type_tie_prefers_lab():
    candidates, _ = extract_candidates(
        "cs101",
        [
            record(date(2026, 1, 6), description="Lecture"),
            record(date(2026, 1, 13), description="Lab"),
        ],
    )
    assert vote_session_type(candidates) == SessionType.LAB


def test_stats_reject_inconsistent_counts():
    with pytest.raises(ValidationError):
        SlotOccurrenceStats(
            occurrence_count=5,
            day_active_week_count=1,
            total_week_span_count=1,
            day_observation_count=4,
            score=1.0,
        )
    with pytest.raises(ValidationError):
        SlotOccurrenceStats(
            occurrence_count=1,
            day_active_week_count=3,
            total_week_span_count=2,
            day_observation_count=3,
            score=1.0,
        )
