"""
FocusEngine: headless focus-mode engine for FocusLight.

Wires the SessionController, EnforcementLoop, StatsStore and BlockList to
the platform collaborators and exposes a UI-friendly API. Like the other
control surfaces in this app, public methods return result dicts instead of
raising, so a menu bar or CLI can show the error text directly.

This module has ZERO UI dependencies. A UI subscribes to session events
via subscribe() and polls get_status() on its own schedule.
"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional

import config
from core.controller import SessionController
from core.enforcement import EnforcementLoop
from core.errors import FocusError, StatsWriteFailed
from core.events import EventBus
from screen.blocklist import BlockList, BlocklistManager
from screen.foreground import ForegroundDetector, WindowForegroundDetector
from screen.overlay import LoggingOverlaySink, OverlaySink
from tracking.daily_stats import StatsStore, get_stats_store

logger = logging.getLogger(__name__)


class FocusEngine:
    """
    Owns one controller and one enforcement loop for the lifetime of the process.

    Handles:
    - Session lifecycle (start, stop, auto-expiry via the loop)
    - Foreground enforcement against the blocklist
    - Daily statistics queries
    - Blocklist reloads
    """

    def __init__(
        self,
        stats_store: Optional[StatsStore] = None,
        blocklist_manager: Optional[BlocklistManager] = None,
        detector: Optional[ForegroundDetector] = None,
        overlay: Optional[OverlaySink] = None,
        events: Optional[EventBus] = None,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
        dim_when_unblocked: bool = config.DIM_WHEN_UNBLOCKED,
    ) -> None:
        """Initialise the engine; collaborators default to the platform implementations."""
        self.events = events if events is not None else EventBus(threaded=True)
        self.stats_store = stats_store if stats_store is not None else get_stats_store()
        self.blocklist_manager = blocklist_manager or BlocklistManager(config.BLOCKLIST_FILE)
        self.blocklist: BlockList = self.blocklist_manager.load()
        self.detector = detector or WindowForegroundDetector()
        self.overlay = overlay or LoggingOverlaySink()

        self.controller = SessionController(self.stats_store, self.events)
        self.loop = EnforcementLoop(
            self.controller,
            self.blocklist,
            self.detector,
            self.overlay,
            tick_interval=tick_interval,
            dim_when_unblocked=dim_when_unblocked,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[object], None]) -> None:
        """Register a callback for SessionStarted/Tick/Finalized/PermissionLost events."""
        self.events.subscribe(callback)

    def start_session(self, minutes: float = config.DEFAULT_SESSION_MINUTES) -> Dict:
        """
        Start a focus session and the enforcement loop.

        Returns:
            {"success": bool, "session_id": str | None, "error": str | None,
             "error_type": str | None}
            error_type values: "invalid_duration", "already_running"
        """
        try:
            planned_seconds = int(round(minutes * 60))
        except (TypeError, ValueError, OverflowError):
            planned_seconds = 0
        try:
            session_id = self.controller.start(planned_seconds)
        except FocusError as e:
            return {"success": False, "session_id": None, "error": str(e), "error_type": e.error_type}

        self.loop.start()
        logger.info(f"Focus session {session_id[:8]} started for {planned_seconds}s")
        return {"success": True, "session_id": session_id, "error": None, "error_type": None}

    def stop_session(self) -> Dict:
        """
        Stop the running session early (or on time) and record it.

        Returns:
            {"success": bool, "session": FinalizedSession | None,
             "error": str | None, "error_type": str | None}
            error_type values: "no_active_session", "stats_write_failed".
            On "stats_write_failed" the session is closed and "session" is
            set, but its minutes are still pending retry.
        """
        # Closing ticks run after any in-flight tick, so the overlay ends released
        try:
            finalized = self.controller.stop()
        except StatsWriteFailed as e:
            self.loop.tick()
            return {"success": False, "session": e.session, "error": str(e), "error_type": e.error_type}
        except FocusError as e:
            return {"success": False, "session": None, "error": str(e), "error_type": e.error_type}

        self.loop.tick()
        return {"success": True, "session": finalized, "error": None, "error_type": None}

    def get_status(self) -> Dict:
        """
        Get current engine status (polled by the UI).

        Returns:
            dict with keys: is_active, session_id, state, remaining_seconds,
            elapsed_seconds, planned_seconds, permission_lost, unrecorded.
        """
        status = self.controller.current_status()
        return {
            "is_active": status.is_active,
            "session_id": status.session_id,
            "state": status.state.value,
            "remaining_seconds": status.remaining_seconds,
            "elapsed_seconds": int(status.elapsed_seconds),
            "planned_seconds": status.planned_duration_seconds,
            "permission_lost": self.loop.permission_lost,
            "unrecorded": len(self.controller.unrecorded),
        }

    def get_daily_stats(self, days: int = 7, today: Optional[date] = None) -> List[Dict]:
        """Last ``days`` days of counters, oldest first, as plain dicts."""
        return [
            {"day": stat.day_key, "sessions": stat.session_count, "minutes": stat.total_minutes}
            for stat in self.stats_store.recent(days, today=today)
        ]

    def retry_unrecorded(self) -> Dict:
        """Retry saving sessions whose stats write failed earlier."""
        try:
            recorded = self.controller.retry_unrecorded()
        except StatsWriteFailed as e:
            return {"success": False, "recorded": 0, "error": str(e), "error_type": e.error_type}
        return {"success": True, "recorded": len(recorded), "error": None, "error_type": None}

    def reload_blocklist(self) -> None:
        """Re-read blocklist settings from disk and apply them between ticks."""
        fresh = self.blocklist_manager.load()
        self.loop.reconfigure(fresh.targets)
        logger.info("Blocklist reloaded on engine")

    def cleanup(self) -> None:
        """Stop the loop (aborting any running session) and the event worker."""
        if self.controller.current_status().is_active:
            result = self.stop_session()
            if not result["success"]:
                logger.error(f"Could not close session on shutdown: {result['error']}")
        self.loop.stop()
        self.events.close()
