"""TimetableEngine - derives a weekly timetable from attendance history.

Pipeline for one generate() call:

    attendance rows -> extraction -> aggregation -> detection
        -> resolution (stored choices) -> assembly -> TimetableResult

The engine holds no global state. It is constructed with the courses, the
previously stored resolution maps and a config, and every run recomputes the
whole result from those inputs. The only thing that changes between runs is
the resolution state, and only through resolve_conflict(),
resolve_all_auto_conflicts() and revert_conflict_resolution(). Persisting the
state is the caller's job (see src.timetable.state).
"""

from collections.abc import Iterable
from datetime import datetime

from src.timetable.aggregation import aggregate_candidates
from src.timetable.assembly import assemble_timetable
from src.timetable.config import TimetableConfig, get_config
from src.timetable.detection import detect_conflicts
from src.timetable.errors import ConflictNotFoundError
from src.timetable.extraction import extract_candidates
from src.timetable.logging import course_context, get_logger
from src.timetable.models import (
    AggregatedSlot,
    CourseInput,
    CustomCourseInput,
    ExtractionReport,
    ResolutionChoice,
    ResolutionState,
    SlotConflict,
    SlotKey,
    TimetableResult,
    TimetableSlot,
)
from src.timetable.resolution import (
    record_bulk_choice,
    record_choice,
    resolve_conflicts,
    revert_choice,
)

log = get_logger(__name__)


class TimetableEngine:
    """Weekly timetable inference with persistent conflict choices.

    Example:
        engine = TimetableEngine(courses, resolutions=load_resolutions(path))
        result = engine.generate()
        result = engine.resolve_conflict(0, "alternative")
        save_resolutions(path, engine.resolutions)
    """

    def __init__(
        self,
        courses: Iterable[CourseInput],
        custom_courses: Iterable[CustomCourseInput] = (),
        resolutions: ResolutionState | None = None,
        config: TimetableConfig | None = None,
        now: datetime | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            courses: LMS courses with attendance rows and configured manual slots.
            custom_courses: User-created courses; their slots are always kept.
            resolutions: Previously stored choices. Copied, never shared.
            config: Heuristic thresholds; defaults to the environment config.
            now: Naive local time. When given, sessions that have not ended yet
                 are not counted as observations.
        """
        self.config = config or get_config()
        self.courses: list[CourseInput] = [
            *courses,
            *(custom.to_course_input() for custom in custom_courses),
        ]
        self.resolutions = (
            resolutions.model_copy(deep=True) if resolutions else ResolutionState()
        )
        self.now = now
        self._result: TimetableResult | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def result(self) -> TimetableResult:
        """Result of the last run, generating one if none exists yet."""
        if self._result is None:
            return self.generate()
        return self._result

    @property
    def slots(self) -> list[TimetableSlot]:
        return self.result.slots

    @property
    def conflicts(self) -> list[SlotConflict]:
        return self.result.conflicts

    def _aggregate(
        self,
    ) -> tuple[dict[str, dict[SlotKey, AggregatedSlot]], list[ExtractionReport]]:
        aggregated: dict[str, dict[SlotKey, AggregatedSlot]] = {}
        reports: list[ExtractionReport] = []

        for course in sorted(self.courses, key=lambda c: c.course_id):
            if course.is_custom_course or course.override_lms_slots:
                continue
            if not course.records:
                continue

            with course_context(course.course_id):
                candidates, report = extract_candidates(
                    course.course_id,
                    course.records,
                    lab_min_duration_minutes=self.config.lab_min_duration_minutes,
                    now=self.now,
                )
                reports.append(report)
                aggregated[course.course_id] = aggregate_candidates(
                    candidates,
                    tolerance_minutes=self.config.near_duplicate_tolerance_minutes,
                )
                if not aggregated[course.course_id]:
                    log.info("no_schedule_discovered")

        return aggregated, reports

    def generate(self) -> TimetableResult:
        """Run the full pipeline and replace the previous result.

        Running twice with unchanged inputs and resolution state yields an
        identical result.
        """
        # Resolution maps are read once, at the start of the run
        resolutions = self.resolutions.model_copy(deep=True)

        aggregated, reports = self._aggregate()
        detection = detect_conflicts(
            self.courses,
            aggregated,
            resolutions,
            outlier_threshold=self.config.outlier_score_threshold,
        )
        accepted = resolve_conflicts(detection.candidates, detection.conflicts)
        slots = assemble_timetable(self.courses, [slot for slot, _ in accepted])

        self._result = TimetableResult(
            slots=slots,
            conflicts=detection.conflicts,
            extraction=reports,
        )
        log.info(
            "timetable_generated",
            courses=len(self.courses),
            slots=len(slots),
            conflicts=len(detection.conflicts),
        )
        return self._result

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    def resolve_conflict(
        self, conflict_index: int, choice: str | ResolutionChoice
    ) -> TimetableResult:
        """Store a choice for the conflict at conflict_index and regenerate.

        Args:
            conflict_index: Index into the current conflict list.
            choice: "manual" (manual-auto), "preferred" / "alternative"
                    (auto-auto, time-overlap) or "keep" / "ignore" (outlier-review).

        Raises:
            ConflictNotFoundError: If the index is outside the current list.
            InvalidChoiceError: If the choice does not fit the conflict type.
        """
        conflicts = self.conflicts
        if not 0 <= conflict_index < len(conflicts):
            raise ConflictNotFoundError(
                f"No conflict at index {conflict_index} ({len(conflicts)} conflicts)"
            )

        record_choice(self.resolutions, conflicts[conflict_index], choice)
        return self.generate()

    def resolve_all_auto_conflicts(
        self, keep: str | ResolutionChoice = ResolutionChoice.PREFERRED
    ) -> TimetableResult:
        """Apply one choice to every auto-auto and time-overlap conflict.

        Manual-auto and outlier-review conflicts are not touched.
        """
        count = record_bulk_choice(self.resolutions, self.conflicts, keep)
        if count == 0:
            return self.result
        log.info("conflicts_bulk_resolved", count=count, keep=ResolutionChoice(keep).value)
        return self.generate()

    def revert_conflict_resolution(self, conflict_id: str) -> TimetableResult:
        """Drop a stored choice so the default policy applies again.

        Unknown IDs are ignored.
        """
        if revert_choice(self.resolutions, conflict_id):
            return self.generate()
        return self.result

    def clear_resolutions(self) -> TimetableResult:
        """Forget every stored choice and regenerate."""
        self.resolutions = ResolutionState()
        log.info("conflict_resolutions_cleared")
        return self.generate()
