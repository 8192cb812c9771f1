"""
Command-line client for the daily log.

Runs an AttendanceTracker against the configured database (and sheet
webhook, if PUNCHLOG_MIRROR_WEBHOOK_URL is set).

Usage:
    python -m punchlog show [--date YYYY-MM-DD]
    python -m punchlog punch [amIn|amOut|pmIn|pmOut]   # default: next slot
    python -m punchlog clear amOut [--yes]
    python -m punchlog report --activity "..." --accomplished "..."
    uvicorn punchlog.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

_SLOT_CHOICES = ["amIn", "amOut", "pmIn", "pmOut"]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="punchlog", description="Daily attendance log")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Show one day's log and lock state")
    show.add_argument("--date", help="Day key (YYYY-MM-DD); defaults to today")

    punch = sub.add_parser("punch", help="Record the current time")
    punch.add_argument("slot", nargs="?", choices=_SLOT_CHOICES)

    clear = sub.add_parser("clear", help="Clear a recorded time (today, within the edit window)")
    clear.add_argument("slot", choices=_SLOT_CHOICES)
    clear.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    report = sub.add_parser("report", help="Submit today's end-of-day report")
    report.add_argument("--activity", default="")
    report.add_argument("--accomplished", default="")

    return parser


def _confirm_clear() -> bool:
    answer = input("Are you sure you want to clear this time? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _print_day(tracker, day_key) -> None:
    from punchlog.engine import punch as punch_engine
    from punchlog.engine.lock import locked_fields
    from punchlog.mirror.formatter import format_clock_time
    from punchlog.models.log import PUNCH_SLOTS, REPORT_FIELDS

    entry = tracker.entry(day_key)
    now = tracker.clock()
    locked = set(locked_fields(entry, day_key, now, tracker.tz, tracker.lock_threshold))
    upcoming = punch_engine.next_slot(entry)

    print(day_key.strftime("%A, %B %d %Y"))
    for slot in PUNCH_SLOTS:
        shown = format_clock_time(entry.get(slot), tracker.tz) or "--:--"
        marker = " (locked)" if entry.get(slot) and slot in locked else ""
        if slot is upcoming and day_key == tracker.today(now):
            marker = " <- next"
        print(f"  {slot.value:<6} {shown}{marker}")
    for field in REPORT_FIELDS:
        print(f"  {field.value}: {entry.get(field) or ''}")


async def _run(args: argparse.Namespace) -> int:
    from punchlog.config import ConfigurationError, get_settings
    from punchlog.db.engine import get_engine
    from punchlog.engine import punch as punch_engine
    from punchlog.engine.days import parse_day_key
    from punchlog.engine.lock import EditNotAllowed
    from punchlog.models.log import LogField
    from punchlog.sync.coordinator import SyncError
    from punchlog.tracker import open_tracker

    settings = get_settings()
    try:
        tracker = await open_tracker(get_engine(), settings)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    today = tracker.today()
    try:
        if args.command == "show":
            day_key = parse_day_key(args.date) if args.date else today
            _print_day(tracker, day_key)
            return 0

        if args.command == "punch":
            slot = LogField(args.slot) if args.slot else punch_engine.next_slot(tracker.entry(today))
            if slot is None:
                print("Day complete: all four times are recorded.")
                return 0
            done = asyncio.Event()
            result = await tracker.punch(today, slot, on_day_complete=done.set)
            if punch_engine.is_terminal(slot):
                await done.wait()
                print("Workday finished. Submit your report with `python -m punchlog report`.")
            _print_day(tracker, today)
            _print_status(result)
            return 0

        if args.command == "clear":
            confirm = None if args.yes else _confirm_clear
            result = await tracker.clear(today, LogField(args.slot), confirm=confirm)
            if result is None:
                print("Cancelled.")
                return 0
            _print_day(tracker, today)
            _print_status(result)
            return 0

        if args.command == "report":
            result = await tracker.submit_report(today, args.activity, args.accomplished)
            _print_status(result)
            return 0

    except (punch_engine.PunchNotAllowed, EditNotAllowed) as exc:
        print(f"Not allowed: {exc}", file=sys.stderr)
        return 1
    except SyncError as exc:
        print(f"Error saving: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 1


def _print_status(result) -> None:
    status = result.status.as_dict()
    print(f"database: {status['db']}  sheet: {status['sheet']}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
