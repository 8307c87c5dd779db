"""Conflict resolution policy and the resolution-map mutators.

Default policy, applied whenever no choice is stored for a conflict:

    manual-auto     manual wins, the auto candidate is suppressed
    auto-auto       keep the preferred (higher ranked) candidate
    time-overlap    keep the preferred (higher scoring, or manual) slot
    outlier-review  keep the low-confidence slot

Stored choices live in ResolutionState keyed by the content-derived conflict
ID. Entries whose conflict is no longer detected are left in place: the same
attendance pattern can come back, and a stale entry never matches anything.

Manual and custom-course slots are never dropped by any policy or choice.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence

from src.timetable.errors import InvalidChoiceError
from src.timetable.logging import get_logger
from src.timetable.models import (
    AggregatedSlot,
    AutoAutoConflict,
    ManualAutoConflict,
    OutlierConflict,
    ResolutionChoice,
    ResolutionState,
    SlotConflict,
    SlotOccurrenceStats,
    TimeOverlapConflict,
    TimetableSlot,
)

log = get_logger(__name__)

PairConflict = AutoAutoConflict | TimeOverlapConflict

_VALID_CHOICES: dict[str, frozenset[ResolutionChoice]] = {
    "manual-auto": frozenset({ResolutionChoice.MANUAL}),
    "auto-auto": frozenset({ResolutionChoice.PREFERRED, ResolutionChoice.ALTERNATIVE}),
    "time-overlap": frozenset({ResolutionChoice.PREFERRED, ResolutionChoice.ALTERNATIVE}),
    "outlier-review": frozenset({ResolutionChoice.KEEP, ResolutionChoice.IGNORE}),
}


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------
def stored_pair_choice(
    stored_slot_key: str | None,
    preferred: TimetableSlot,
    alternative: TimetableSlot,
) -> str | None:
    """Translate a stored slot key back into 'preferred' / 'alternative'.

    Returns None when nothing is stored or the stored key matches neither slot.
    """
    if stored_slot_key is None:
        return None
    if stored_slot_key == alternative.slot_key:
        return ResolutionChoice.ALTERNATIVE.value
    if stored_slot_key == preferred.slot_key:
        return ResolutionChoice.PREFERRED.value
    return None


def kept_slot(conflict: PairConflict) -> TimetableSlot:
    """The slot that survives a pair conflict under its current choice."""
    if conflict.resolved_choice == ResolutionChoice.ALTERNATIVE.value:
        return conflict.alternative_slot
    return conflict.preferred_slot


def dropped_slot(conflict: PairConflict) -> TimetableSlot:
    if conflict.resolved_choice == ResolutionChoice.ALTERNATIVE.value:
        return conflict.preferred_slot
    return conflict.alternative_slot


def keeps_outlier(conflict: OutlierConflict) -> bool:
    return conflict.resolved_choice != ResolutionChoice.IGNORE.value


def pair_exclusions(
    pairs: Iterable[PairConflict],
    excluded: Iterable[str] = (),
) -> set[str]:
    """Slot IDs dropped by pair conflicts.

    A slot is dropped when it loses a pair to a slot that survives. Losing
    only to slots that are dropped themselves leaves it in place, so in a
    chain A > B > C where A does not overlap C, C is kept once B is gone.
    Manual slots are never dropped. Slots caught in a cycle of choices are
    dropped.

    Args:
        pairs: Auto-auto or time-overlap conflicts with resolved_choice filled in.
        excluded: Slot IDs already out for other reasons; they never win.
    """
    excluded = set(excluded)
    winners_over: dict[str, set[str]] = defaultdict(set)
    for conflict in pairs:
        loser = dropped_slot(conflict)
        if loser.is_manual or loser.id in excluded:
            continue
        winners_over[loser.id].add(kept_slot(conflict).id)

    dropped: set[str] = set()
    survivors: set[str] = set()

    def survives(slot_id: str) -> bool:
        if slot_id in excluded or slot_id in dropped:
            return False
        return slot_id in survivors or slot_id not in winners_over

    undecided = sorted(winners_over)
    changed = True
    while undecided and changed:
        changed = False
        for slot_id in list(undecided):
            winners = winners_over[slot_id]
            if any(survives(winner) for winner in winners):
                dropped.add(slot_id)
            elif all(winner in excluded or winner in dropped for winner in winners):
                survivors.add(slot_id)
            else:
                continue
            undecided.remove(slot_id)
            changed = True

    if undecided:
        log.debug("resolution_cycle", slots=undecided)
        dropped.update(undecided)
    return dropped


def resolve_conflicts(
    candidates: Sequence[tuple[TimetableSlot, AggregatedSlot]],
    conflicts: Iterable[SlotConflict],
) -> list[tuple[TimetableSlot, SlotOccurrenceStats]]:
    """Apply the resolution policy and return the surviving auto slots.

    Same-course decisions come first: manual-auto suppression, ignored
    outliers and auto-auto pairs. Time-overlap pairs are then settled among
    the slots still standing, so a cross-course loss never brings back a
    candidate that lost within its own course.

    Args:
        candidates: Every auto candidate, as (slot, aggregate), in detection order.
        conflicts: Detected conflicts with their resolved_choice filled in.

    Returns:
        Accepted (slot, stats) pairs, in candidate order.
    """
    conflicts = list(conflicts)
    excluded: set[str] = set()
    for conflict in conflicts:
        if isinstance(conflict, ManualAutoConflict):
            excluded.add(conflict.auto_slot.id)
        elif isinstance(conflict, OutlierConflict) and not keeps_outlier(conflict):
            excluded.add(conflict.slot.id)

    excluded |= pair_exclusions(
        (c for c in conflicts if isinstance(c, AutoAutoConflict)), excluded
    )
    excluded |= pair_exclusions(
        (c for c in conflicts if isinstance(c, TimeOverlapConflict)), excluded
    )

    return [
        (slot, aggregate.stats)
        for slot, aggregate in candidates
        if slot.id not in excluded
    ]



# ---------------------------------------------------------------------------
# Mutators
# ---------------------------------------------------------------------------
def parse_choice(conflict: SlotConflict, choice: str | ResolutionChoice) -> ResolutionChoice:
    """Validate a choice for a conflict type.

    Raises:
        InvalidChoiceError: If the choice is unknown or not valid for the type.
    """
    try:
        parsed = ResolutionChoice(choice)
    except ValueError:
        raise InvalidChoiceError(f"Unknown resolution choice {choice!r}") from None

    valid = _VALID_CHOICES[conflict.type]
    if parsed not in valid:
        raise InvalidChoiceError(
            f"Choice {parsed.value!r} is not valid for a {conflict.type} conflict. "
            f"Valid: {sorted(c.value for c in valid)}"
        )
    if (
        isinstance(conflict, TimeOverlapConflict)
        and conflict.is_manual_anchored
        and parsed is ResolutionChoice.ALTERNATIVE
    ):
        raise InvalidChoiceError(
            f"Conflict {conflict.conflict_id} is against a manual slot; "
            "only 'preferred' can be chosen"
        )
    return parsed


def record_choice(
    state: ResolutionState,
    conflict: SlotConflict,
    choice: str | ResolutionChoice,
) -> None:
    """Store the user's choice for one conflict.

    Choosing "manual" on a manual-auto conflict is accepted but stores nothing:
    the manual slot already wins, and there is no way to keep the auto slot
    short of removing the manual slot from the course configuration.

    Raises:
        InvalidChoiceError: If the choice is not valid for the conflict type.
    """
    parsed = parse_choice(conflict, choice)

    if isinstance(conflict, ManualAutoConflict):
        log.debug("manual_conflict_acknowledged", conflict_id=conflict.conflict_id)
        return

    if isinstance(conflict, OutlierConflict):
        state.outliers[conflict.conflict_id] = parsed.value
    else:
        chosen = (
            conflict.alternative_slot
            if parsed is ResolutionChoice.ALTERNATIVE
            else conflict.preferred_slot
        )
        target = (
            state.auto_conflicts
            if isinstance(conflict, AutoAutoConflict)
            else state.time_overlaps
        )
        target[conflict.conflict_id] = chosen.slot_key

    log.info(
        "conflict_resolved",
        conflict_id=conflict.conflict_id,
        type=conflict.type,
        choice=parsed.value,
    )


def record_bulk_choice(
    state: ResolutionState,
    conflicts: Iterable[SlotConflict],
    keep: str | ResolutionChoice,
) -> int:
    """Store the same pair choice for every auto-auto and time-overlap conflict.

    Manual-auto and outlier-review conflicts are left untouched, and so are
    time overlaps against a manual slot, which always keeps the manual side.

    Returns:
        Number of conflicts a choice was stored for.

    Raises:
        InvalidChoiceError: If keep is not "preferred" or "alternative".
    """
    try:
        parsed = ResolutionChoice(keep)
    except ValueError:
        raise InvalidChoiceError(f"Unknown resolution choice {keep!r}") from None
    if parsed not in (ResolutionChoice.PREFERRED, ResolutionChoice.ALTERNATIVE):
        raise InvalidChoiceError(
            f"Bulk resolution takes 'preferred' or 'alternative', got {parsed.value!r}"
        )

    count = 0
    for conflict in conflicts:
        if isinstance(conflict, TimeOverlapConflict) and conflict.is_manual_anchored:
            continue
        if isinstance(conflict, (AutoAutoConflict, TimeOverlapConflict)):
            record_choice(state, conflict, parsed)
            count += 1
    return count


def revert_choice(state: ResolutionState, conflict_id: str) -> bool:
    """Forget any stored choice for a conflict so the default policy applies again.

    Returns:
        True if an entry was removed from any of the maps.
    """
    removed = False
    for mapping in (state.auto_conflicts, state.time_overlaps, state.outliers):
        if conflict_id in mapping:
            del mapping[conflict_id]
            removed = True

    if removed:
        log.info("conflict_resolution_reverted", conflict_id=conflict_id)
    else:
        log.debug("conflict_revert_skipped", conflict_id=conflict_id, reason="not_stored")
    return removed
