from datetime import timedelta

import pytest

from src.timetable.config import TimetableConfig
from tests.builders import FIRST_TUESDAY, record, weekly


@pytest.fixture
def config():
    return TimetableConfig(
        _env_file=None,
        near_duplicate_tolerance_minutes=5,
        outlier_score_threshold=0.5,
        lab_min_duration_minutes=110,
        timezone="Asia/Kolkata",
        calendar_name="Timetable",
    )


@pytest.fixture
def rescheduled_tuesday_records():
    """8 Tuesdays at 10:00-10:55 and a 9th at 10:00-11:50 (double period)."""
    return [
        *weekly(FIRST_TUESDAY, 8),
        record(FIRST_TUESDAY + timedelta(weeks=8), "10AM", "11:50AM"),
    ]
