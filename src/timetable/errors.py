"""Error hierarchy for the timetable engine.

Malformed attendance data is never raised: it degrades to "no candidate" and
is reported through the extraction summary. Exceptions here are reserved for
misuse of the resolution API and for unreadable input or state files.

Example usage:
    try:
        engine.resolve_conflict(index, "alternative")
    except ConflictNotFoundError:
        engine.generate()  # conflict list was stale, rebuild it
"""


class TimetableError(Exception):
    """Base exception for all timetable engine errors."""

    pass


class ResolutionError(TimetableError):
    """A resolve/revert call could not be applied."""

    pass


class ConflictNotFoundError(ResolutionError, IndexError):
    """Conflict index does not point into the current conflict list.

    Usually means the caller held on to a conflict list from an older run.
    """

    pass


class InvalidChoiceError(ResolutionError, ValueError):
    """Choice is not valid for the conflict type.

    Examples: "ignore" on an auto-auto conflict, "auto" on a manual-auto
    conflict (manual slots are only removed through course configuration).
    """

    pass


class ResolutionStateError(TimetableError):
    """Persisted resolution state could not be read.

    Requires human intervention (corrupt or hand-edited file), retrying the
    read will not help.
    """

    pass


class CourseInputError(TimetableError):
    """Course export file is missing, not JSON, or does not match the expected shape."""

    pass
