"""Pydantic models for attendance input, inferred slots, conflicts and output.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Fields are snake_case in Python and camelCase on the wire (``by_alias=True``),
which is the shape the UI and export collaborators consume.
"""

from datetime import date
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.timetable.utils import content_id, extract_course_name, is_valid_time

# (day_of_week, start_time, end_time) within one course
SlotKey = tuple[int, str, str]

DayOfWeek = Annotated[int, Field(ge=0, le=6)]  # 0=Sunday ... 6=Saturday


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AttendanceStatus(str, Enum):
    PRESENT = "Present"
    ABSENT = "Absent"
    LATE = "Late"
    EXCUSED = "Excused"
    UNKNOWN = "Unknown"


class SessionType(str, Enum):
    REGULAR = "regular"
    LAB = "lab"
    TUTORIAL = "tutorial"


class Provenance(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    CUSTOM_COURSE = "custom-course"


class ResolutionChoice(str, Enum):
    """Choices accepted by the resolve operations, per conflict type."""

    MANUAL = "manual"  # manual-auto
    PREFERRED = "preferred"  # auto-auto, time-overlap
    ALTERNATIVE = "alternative"  # auto-auto, time-overlap
    KEEP = "keep"  # outlier-review
    IGNORE = "ignore"  # outlier-review


OutlierChoice = Literal["keep", "ignore"]
PairChoice = Literal["preferred", "alternative"]


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------
class AttendanceRecord(_Model):
    """One row of an LMS attendance table.

    The date field is free text as scraped, e.g. "Thu 1 Jan 2026 11AM - 12PM".
    """

    date: str
    status: AttendanceStatus = AttendanceStatus.UNKNOWN
    points: str = ""  # "1 / 1"
    description: str = ""  # Session description column, e.g. "DS Lab"


class ManualSlotInput(_Model):
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    session_type: SessionType = SessionType.REGULAR

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not is_valid_time(value):
            raise ValueError(f"expected zero-padded HH:MM, got {value!r}")
        return value


class ManualSlot(ManualSlotInput):
    """A user-declared recurring slot. Authoritative, never scored."""

    id: str

    @classmethod
    def create(
        cls,
        course_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        session_type: SessionType = SessionType.REGULAR,
    ) -> "ManualSlot":
        """Build a manual slot with an ID derived from its content."""
        return cls(
            id=content_id("manual", course_id, day_of_week, start_time, end_time, session_type.value),
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            session_type=session_type,
        )


class CourseInput(_Model):
    """One course as handed over by the LMS and course-configuration layers."""

    course_id: str
    course_name: str
    alias: str = ""
    records: list[AttendanceRecord] = Field(default_factory=list)
    manual_slots: list[ManualSlot] = Field(default_factory=list)
    override_lms_slots: bool = False  # Ignore attendance-derived slots entirely
    is_custom_course: bool = False

    @property
    def display_name(self) -> str:
        return self.alias.strip() or extract_course_name(self.course_name)


class CustomCourseInput(_Model):
    """A course created by the user that does not exist on the LMS."""

    course_name: str
    alias: str = ""
    credits: int = 0
    color: str = ""
    slots: list[ManualSlotInput] = Field(default_factory=list)
    course_id: str | None = None

    def to_course_input(self) -> CourseInput:
        course_id = self.course_id or content_id("custom", self.course_name.strip())
        return CourseInput(
            course_id=course_id,
            course_name=self.course_name,
            alias=self.alias,
            manual_slots=[
                ManualSlot.create(
                    course_id,
                    slot.day_of_week,
                    slot.start_time,
                    slot.end_time,
                    slot.session_type,
                )
                for slot in self.slots
            ],
            override_lms_slots=True,
            is_custom_course=True,
        )


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------
class ExtractedSlotCandidate(_Model):
    """One parsed attendance row, reduced to its weekly slot."""

    course_id: str
    day_of_week: DayOfWeek
    start_time: str  # "HH:MM", 24-hour
    end_time: str
    session_date: date
    session_type: SessionType = SessionType.REGULAR

    @property
    def week_key(self) -> str:
        iso = self.session_date.isocalendar()
        return f"{iso[0]}-W{iso[1]:02d}"

    @property
    def slot_key(self) -> SlotKey:
        return (self.day_of_week, self.start_time, self.end_time)


class SlotOccurrenceStats(_Model):
    occurrence_count: int = Field(ge=0)
    day_active_week_count: int = Field(ge=0)
    total_week_span_count: int = Field(ge=0)
    day_observation_count: int = Field(ge=0)
    score: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_counts(self) -> "SlotOccurrenceStats":
        if self.occurrence_count > self.day_observation_count:
            raise ValueError("occurrence_count exceeds day_observation_count")
        if self.day_active_week_count > self.total_week_span_count:
            raise ValueError("day_active_week_count exceeds total_week_span_count")
        return self


class AggregatedSlot(_Model):
    """A candidate slot after grouping, with its occurrence statistics."""

    course_id: str
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    session_type: SessionType
    stats: SlotOccurrenceStats
    last_seen: date

    @property
    def slot_key(self) -> SlotKey:
        return (self.day_of_week, self.start_time, self.end_time)


class ExtractionReport(_Model):
    """How many attendance rows of a course produced a candidate."""

    course_id: str
    total_rows: int = 0
    parsed_rows: int = 0
    failures: dict[str, int] = Field(default_factory=dict)  # reason -> count

    @property
    def skipped_rows(self) -> int:
        return self.total_rows - self.parsed_rows


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
class TimetableSlot(_Model):
    id: str
    course_id: str
    course_name: str
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    session_type: SessionType
    is_manual: bool
    is_custom_course: bool

    @property
    def provenance(self) -> Provenance:
        if self.is_custom_course:
            return Provenance.CUSTOM_COURSE
        if self.is_manual:
            return Provenance.MANUAL
        return Provenance.AUTO

    @property
    def slot_key(self) -> str:
        """Course-qualified content key, used to store time-overlap choices."""
        return f"{self.course_id}|{self.day_of_week}|{self.start_time}|{self.end_time}"


class ManualAutoConflict(_Model):
    type: Literal["manual-auto"] = "manual-auto"
    conflict_id: str
    manual_slot: TimetableSlot
    auto_slot: TimetableSlot
    auto_stats: SlotOccurrenceStats


class AutoAutoConflict(_Model):
    type: Literal["auto-auto"] = "auto-auto"
    conflict_id: str
    preferred_slot: TimetableSlot
    alternative_slot: TimetableSlot
    preferred_stats: SlotOccurrenceStats
    alternative_stats: SlotOccurrenceStats
    resolved_choice: PairChoice | None = None


class TimeOverlapConflict(_Model):
    """Slots of two different courses overlap.

    When one side is a manual or custom-course slot it is always the preferred
    slot and carries no stats; only the auto side can be dropped.
    """

    type: Literal["time-overlap"] = "time-overlap"
    conflict_id: str
    preferred_slot: TimetableSlot
    alternative_slot: TimetableSlot
    preferred_stats: SlotOccurrenceStats | None = None
    alternative_stats: SlotOccurrenceStats
    resolved_choice: PairChoice | None = None

    @property
    def is_manual_anchored(self) -> bool:
        return self.preferred_slot.is_manual


class OutlierConflict(_Model):
    type: Literal["outlier-review"] = "outlier-review"
    conflict_id: str
    slot: TimetableSlot
    stats: SlotOccurrenceStats
    resolved_choice: OutlierChoice | None = None


SlotConflict = Annotated[
    Union[ManualAutoConflict, AutoAutoConflict, TimeOverlapConflict, OutlierConflict],
    Field(discriminator="type"),
]


class ResolutionState(BaseModel):
    """The persisted resolution maps, keyed by stable conflict ID.

    auto_conflicts / time_overlaps store the content key of the chosen slot so a
    choice keeps pointing at the same slot if the preferred/alternative order
    flips between runs. outliers store "keep" or "ignore".
    """

    model_config = ConfigDict(populate_by_name=True)

    auto_conflicts: dict[str, str] = Field(
        default_factory=dict, alias="autoConflictResolutions"
    )
    time_overlaps: dict[str, str] = Field(
        default_factory=dict, alias="timeOverlapResolutions"
    )
    outliers: dict[str, OutlierChoice] = Field(
        default_factory=dict, alias="outlierResolutions"
    )

    def is_empty(self) -> bool:
        return not (self.auto_conflicts or self.time_overlaps or self.outliers)


class TimetableResult(_Model):
    """Output of one generation run."""

    slots: list[TimetableSlot]
    conflicts: list[SlotConflict]
    extraction: list[ExtractionReport] = Field(default_factory=list)
