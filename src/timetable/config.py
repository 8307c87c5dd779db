"""Timetable engine configuration loaded from environment variables.

The inference heuristics (merge tolerance, outlier threshold, lab duration) are
tunable here rather than hard-coded, so they can be validated against real
scraped datasets without touching the engine.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Timetable configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Inference heuristics
    near_duplicate_tolerance_minutes: int = Field(
        default=5,
        ge=0,
        description="Max start/end drift (minutes) for two time ranges to be merged",
    )
    outlier_score_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Candidates scoring below this are flagged for outlier review",
    )
    lab_min_duration_minutes: int = Field(
        default=110,
        gt=0,
        description="Sessions at least this long are classified as labs",
    )

    # Calendar export
    timezone: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone written into exported calendar events",
    )
    calendar_name: str = Field(
        default="Timetable",
        description="Calendar name used for ICS export",
    )

    # Paths
    state_dir: str = Field(
        default="data/state",
        description="Directory holding the persisted conflict resolutions",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Get the timetable configuration singleton.

    Returns:
        TimetableConfig: Timetable configuration instance
    """
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config
