"""Local JSON files: course input and the conflict resolutions kept between runs.

The resolution maps are the only state that survives a regeneration. They
are written to a JSON state file (default: data/state/resolutions.json):

    {
      "saved_at": "2026-02-03T10:15:00+00:00",
      "version": 1,
      "resolutions": {
        "autoConflictResolutions": {"auto-auto-3f2a...": "cs101|2|10:00|11:50"},
        "timeOverlapResolutions": {},
        "outlierResolutions": {"outlier-9b1c...": "ignore"}
      }
    }
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from src.timetable.errors import CourseInputError, ResolutionStateError
from src.timetable.logging import get_logger
from src.timetable.models import CourseInput, CustomCourseInput, ResolutionState

log = get_logger(__name__)

STATE_FILE_NAME = "resolutions.json"
STATE_VERSION = 1


def state_path(state_dir: str | Path) -> Path:
    return Path(state_dir) / STATE_FILE_NAME


def load_resolutions(path: str | Path) -> ResolutionState:
    """Load stored resolutions.

    Returns:
        The stored state, or an empty state if no state file exists.

    Raises:
        ResolutionStateError: If the file exists but cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        log.debug("resolution_state_missing", path=str(path))
        return ResolutionState()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ResolutionStateError(f"Cannot read resolution state {path}: {e}") from e

    if not isinstance(data, dict):
        raise ResolutionStateError(f"Resolution state {path} is not a JSON object")

    try:
        state = ResolutionState.model_validate(data.get("resolutions", {}))
    except ValidationError as e:
        raise ResolutionStateError(f"Invalid resolution state {path}: {e}") from e

    log.info(
        "resolution_state_loaded",
        path=str(path),
        auto=len(state.auto_conflicts),
        time_overlap=len(state.time_overlaps),
        outlier=len(state.outliers),
    )
    return state


def load_courses(path: str | Path) -> tuple[list[CourseInput], list[CustomCourseInput]]:
    """Load the course export handed over by the LMS / configuration layers.

    Expected shape (camelCase, as the app stores it):
        {"courses": [{"courseId": ..., "courseName": ..., "records": [...],
                      "manualSlots": [...], "alias": ..., "overrideLmsSlots": ...}],
         "customCourses": [{"courseName": ..., "slots": [...]}]}

    Raises:
        CourseInputError: If the file is missing, unreadable, not valid JSON or
                          does not match the shape.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CourseInputError(f"Cannot read course file {path}: {e}") from e

    if not isinstance(data, dict):
        raise CourseInputError(f"Course file {path} is not a JSON object")

    try:
        courses = [CourseInput.model_validate(item) for item in data.get("courses", [])]
        custom = [
            CustomCourseInput.model_validate(item)
            for item in data.get("customCourses", [])
        ]
    except ValidationError as e:
        raise CourseInputError(f"Invalid course file {path}: {e}") from e

    log.info("courses_loaded", path=str(path), courses=len(courses), custom=len(custom))
    return courses, custom


def save_resolutions(path: str | Path, state: ResolutionState) -> Path:
    """Write resolutions to disk, creating the parent directory if needed.

    Returns:
        Path to the written state file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "version": STATE_VERSION,
        "resolutions": state.model_dump(by_alias=True),
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, sort_keys=True)
    log.info("resolution_state_saved", path=str(path))
    return path
