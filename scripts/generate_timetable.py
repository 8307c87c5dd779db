"""Generate the weekly timetable from exported LMS attendance as JSON, table or ICS.

Standalone CLI script around TimetableEngine. Reads a course export, applies
the conflict choices stored in the state file, optionally records a new
choice, and prints the result.

Run with: python scripts/generate_timetable.py --input data/courses.json
Table:    python scripts/generate_timetable.py --input data/courses.json --table
ICS:      python scripts/generate_timetable.py --input data/courses.json --ics data/timetable.ics
Resolve:  python scripts/generate_timetable.py --input data/courses.json --resolve 0 alternative
Bulk:     python scripts/generate_timetable.py --input data/courses.json --resolve-all preferred
Revert:   python scripts/generate_timetable.py --input data/courses.json --revert auto-auto-3f2a...
As of:    python scripts/generate_timetable.py --input data/courses.json --as-of 2026-02-03T09:00

Conflicts are listed on stderr with the index --resolve expects.

Exit codes:
  0 = success (JSON or table on stdout, or file written for --ics)
  1 = error (message on stderr)
"""

import argparse
import json
import os
import sys
from datetime import date, datetime
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.config import get_config  # noqa: E402
from src.timetable.engine import TimetableEngine  # noqa: E402
from src.timetable.export import build_ics  # noqa: E402
from src.timetable.logging import setup_logging  # noqa: E402
from src.timetable.models import (  # noqa: E402
    ManualAutoConflict,
    OutlierConflict,
    SlotConflict,
    TimetableSlot,
)
from src.timetable.schedule import day_name, format_table  # noqa: E402
from src.timetable.state import (  # noqa: E402
    load_courses,
    load_resolutions,
    save_resolutions,
    state_path,
)


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Generate the weekly timetable from LMS attendance history.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Course export JSON (courses with attendance rows, custom courses).",
    )
    parser.add_argument(
        "--state",
        type=str,
        default=None,
        help="Resolution state file. Default: {STATE_DIR}/resolutions.json",
    )
    parser.add_argument(
        "--as-of",
        type=str,
        default=None,
        help=(
            "Local time (ISO format) before which sessions count as observed. "
            "Default: now. Use 'all' to count every row."
        ),
    )

    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument(
        "--resolve",
        nargs=2,
        metavar=("INDEX", "CHOICE"),
        help="Store a choice for the conflict at INDEX (manual/preferred/alternative/keep/ignore).",
    )
    action_group.add_argument(
        "--resolve-all",
        choices=["preferred", "alternative"],
        default=None,
        help="Apply one choice to every auto-auto and time-overlap conflict.",
    )
    action_group.add_argument(
        "--revert",
        type=str,
        metavar="CONFLICT_ID",
        default=None,
        help="Drop the stored choice for a conflict ID.",
    )
    action_group.add_argument(
        "--clear",
        action="store_true",
        help="Drop every stored choice.",
    )

    output_group = parser.add_mutually_exclusive_group()
    output_group.add_argument(
        "--table",
        action="store_true",
        help="Output a human-readable table to stdout.",
    )
    output_group.add_argument(
        "--ics",
        type=str,
        default=None,
        metavar="PATH",
        help="Write an iCalendar file with one weekly event per slot.",
    )
    return parser.parse_args()


def _parse_as_of(value: str | None) -> datetime | None:
    if value is None:
        return datetime.now()
    if value.lower() == "all":
        return None
    return datetime.fromisoformat(value)


def _describe_slot(slot: TimetableSlot) -> str:
    return (
        f"{slot.course_name} {day_name(slot.day_of_week)} "
        f"{slot.start_time}-{slot.end_time} ({slot.session_type.value})"
    )


def _describe_conflict(index: int, conflict: SlotConflict) -> str:
    if isinstance(conflict, ManualAutoConflict):
        detail = (
            f"manual {_describe_slot(conflict.manual_slot)} "
            f"vs auto {_describe_slot(conflict.auto_slot)}"
        )
    elif isinstance(conflict, OutlierConflict):
        detail = f"{_describe_slot(conflict.slot)} score={conflict.stats.score:.2f}"
    else:
        preferred_score = (
            "manual"
            if conflict.preferred_stats is None
            else f"score={conflict.preferred_stats.score:.2f}"
        )
        detail = (
            f"preferred {_describe_slot(conflict.preferred_slot)} {preferred_score} "
            f"vs alternative {_describe_slot(conflict.alternative_slot)} "
            f"score={conflict.alternative_stats.score:.2f}"
        )
    choice = getattr(conflict, "resolved_choice", None) or "default"
    return f"  [{index}] {conflict.type} {conflict.conflict_id} [{choice}]: {detail}"


def main(args: argparse.Namespace) -> None:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    resolution_file = Path(args.state) if args.state else state_path(config.state_dir)

    _log(f"generate_timetable: starting (input={args.input})")

    courses, custom_courses = load_courses(args.input)
    engine = TimetableEngine(
        courses,
        custom_courses,
        resolutions=load_resolutions(resolution_file),
        config=config,
        now=_parse_as_of(args.as_of),
    )
    result = engine.generate()

    changed = True
    if args.resolve:
        index, choice = args.resolve
        result = engine.resolve_conflict(int(index), choice)
    elif args.resolve_all:
        result = engine.resolve_all_auto_conflicts(args.resolve_all)
    elif args.revert:
        result = engine.revert_conflict_resolution(args.revert)
    elif args.clear:
        result = engine.clear_resolutions()
    else:
        changed = False

    if changed:
        save_resolutions(resolution_file, engine.resolutions)
        _log(f"  Resolutions saved -> {resolution_file}")

    _log(f"  {len(result.slots)} slots, {len(result.conflicts)} conflicts")
    for index, conflict in enumerate(result.conflicts):
        _log(_describe_conflict(index, conflict))

    if args.ics:
        output_file = Path(args.ics)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        ics = build_ics(
            result.slots,
            config.calendar_name,
            today=date.today(),
            tz=config.timezone,
        )
        # newline="" keeps the CRLF line endings iCalendar requires
        with open(output_file, "w", encoding="utf-8", newline="") as f:
            f.write(ics)
        _log(f"  ICS calendar -> {output_file}")
    elif args.table:
        print(format_table(result.slots))
    else:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))

    _log("generate_timetable: done")


if __name__ == "__main__":
    args = _parse_args()
    try:
        main(args)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
