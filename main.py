#!/usr/bin/env python3
"""
FocusLight - Main Entry Point

Runs a timed focus session that dims the screen and blocks distracting
apps, then records the session in the daily statistics.

Usage:
    python main.py                 # 25 minute session
    python main.py --minutes 50    # Custom length
    python main.py --stats 7       # Show the last 7 days
    python main.py --blocked       # List blocked apps
"""

import argparse
import logging
import sys
import threading
from typing import List

import config
from instance_lock import check_single_instance, read_lock_pid
from core.engine import FocusEngine
from core.events import PermissionLost, SessionFinalized, SessionRecordFailed, SessionTick

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Format seconds as MM:SS, or H:MM:SS past an hour."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ConsoleView:
    """Prints session events to the terminal and signals when the session ends."""

    def __init__(self) -> None:
        self.finished = threading.Event()
        self._last_shown = None

    def __call__(self, event: object) -> None:
        if isinstance(event, SessionTick):
            # One line per minute keeps the terminal readable
            minutes_left = (event.remaining_seconds + 59) // 60
            if minutes_left != self._last_shown:
                self._last_shown = minutes_left
                print(f"⏳ {format_duration(event.remaining_seconds)} remaining")
        elif isinstance(event, SessionFinalized):
            mark = "✓" if event.outcome == "completed" else "■"
            print(f"{mark} Session {event.outcome}: {event.minutes} min recorded")
            self.finished.set()
        elif isinstance(event, SessionRecordFailed):
            print(f"⚠ Session ended but its {event.minutes} min could not be saved: {event.error}")
            self.finished.set()
        elif isinstance(event, PermissionLost):
            print("⚠ Cannot see the foreground app any more - blocking is paused, timer continues.")


def run_session(engine: FocusEngine, minutes: float) -> int:
    """Run one session in the foreground. Ctrl+C aborts it. Returns an exit code."""
    view = ConsoleView()
    engine.subscribe(view)

    result = engine.start_session(minutes)
    if not result["success"]:
        print(f"❌ {result['error']}")
        return 1

    print(f"🎯 Focus mode on for {format_duration(int(minutes * 60))}. Press Ctrl+C to stop early.")
    try:
        while not view.finished.wait(0.5):
            pass
    except KeyboardInterrupt:
        print()
        result = engine.stop_session()
        if not result["success"] and result["error_type"] != "no_active_session":
            print(f"❌ {result['error']}")
            return 1
    finally:
        engine.events.flush(timeout=2.0)
    return 0


def show_stats(engine: FocusEngine, days: int) -> None:
    rows = engine.get_daily_stats(days)
    print(f"\n📊 Focus sessions, last {days} day(s)")
    print("-" * 36)
    for row in rows:
        day = f"{row['day'][:4]}-{row['day'][4:6]}-{row['day'][6:]}"
        print(f"{day}   {row['sessions']:>3} sessions   {row['minutes']:>5} min")
    print("-" * 36)
    total_minutes = sum(r["minutes"] for r in rows)
    total_sessions = sum(r["sessions"] for r in rows)
    print(f"Total        {total_sessions:>3} sessions   {total_minutes:>5} min\n")


def show_blocked(engine: FocusEngine) -> None:
    targets: List[str] = sorted(engine.blocklist.targets, key=str.casefold)
    print(f"\n🚫 {len(targets)} blocked target(s):")
    for target in targets:
        print(f"  • {target}")
    print()


def main() -> None:
    """Main entry point - parses arguments and runs the requested command."""
    parser = argparse.ArgumentParser(
        description="FocusLight - dim the screen and block distractions for a focus session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                 25 minute focus session
  python main.py --minutes 50    50 minute focus session
  python main.py --stats 7       Show the last week of sessions
        """
    )
    parser.add_argument(
        "--minutes",
        type=float,
        default=config.DEFAULT_SESSION_MINUTES,
        help=f"Session length in minutes (default: {config.DEFAULT_SESSION_MINUTES})",
    )
    parser.add_argument(
        "--stats",
        type=int,
        nargs="?",
        const=7,
        metavar="DAYS",
        help="Show daily statistics for the last DAYS days (default: 7) and exit",
    )
    parser.add_argument(
        "--blocked",
        action="store_true",
        help="List blocked targets and exit",
    )
    args = parser.parse_args()

    if args.stats is not None and args.stats <= 0:
        parser.error("--stats needs a positive number of days")
    if args.minutes <= 0:
        parser.error("--minutes must be positive")

    # Single instance enforcement: one controller owns the stats file.
    # Read-only commands can run next to a session.
    read_only = args.stats is not None or args.blocked
    if not read_only and not check_single_instance():
        existing_pid = read_lock_pid()
        pid_info = f" (PID: {existing_pid})" if existing_pid else ""
        print(f"\nFocusLight is already running{pid_info}.")
        print("Only one instance can run at a time.\n")
        sys.exit(1)

    engine = FocusEngine()
    try:
        if args.stats is not None:
            show_stats(engine, args.stats)
            exit_code = 0
        elif args.blocked:
            show_blocked(engine)
            exit_code = 0
        else:
            exit_code = run_session(engine, args.minutes)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        exit_code = 1
    finally:
        engine.cleanup()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
