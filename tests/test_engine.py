"""
Tests for core/engine.py - verifies the FocusEngine works
independently of any UI framework.
"""

import logging
import sys
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.engine import FocusEngine
from core.events import EventBus, SessionFinalized, SessionStarted
from screen.blocklist import BlocklistManager
from screen.foreground import ForegroundDetector
from screen.overlay import OVERLAY_RELEASED, LoggingOverlaySink
from tracking.daily_stats import InMemoryCounterStore, StatsStore
from tracking.session import FinalizedSession, SessionState

logger = logging.getLogger(__name__)


class FlakyCounterStore(InMemoryCounterStore):
    """Backend that can be switched into failure mode."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, stat):
        if self.fail:
            raise OSError("disk full")
        super().save(stat)


class EngineTestCase(unittest.TestCase):
    """Engine with in-memory stats, a temp blocklist file and mocked platform."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.blocklist_path = Path(self._tmp.name) / "blocklist.json"

        self.backend = FlakyCounterStore()
        self.detector = MagicMock(spec=ForegroundDetector)
        self.detector.current_foreground_target.return_value = "com.instagram.android"
        self.overlay = LoggingOverlaySink()
        self.received = []
        events = EventBus()
        events.subscribe(self.received.append)

        self.engine = FocusEngine(
            stats_store=StatsStore(self.backend),
            blocklist_manager=BlocklistManager(self.blocklist_path),
            detector=self.detector,
            overlay=self.overlay,
            events=events,
            tick_interval=0.01,
        )
        self.addCleanup(self.engine.cleanup)


class TestEngineLifecycle(EngineTestCase):
    """Start/stop through the result-dict API."""

    def test_get_status_idle(self):
        """get_status() reports an idle engine."""
        status = self.engine.get_status()
        self.assertFalse(status["is_active"])
        self.assertIsNone(status["session_id"])
        self.assertEqual(status["state"], "idle")
        self.assertEqual(status["remaining_seconds"], 0)
        self.assertFalse(status["permission_lost"])
        self.assertEqual(status["unrecorded"], 0)

    def test_start_then_stop(self):
        """A started session runs the loop; stopping aborts and records it."""
        result = self.engine.start_session(25)
        self.assertTrue(result["success"])
        self.assertIsNone(result["error"])
        self.assertTrue(self.engine.loop.is_running)

        status = self.engine.get_status()
        self.assertTrue(status["is_active"])
        self.assertEqual(status["planned_seconds"], 1500)
        self.assertIsInstance(self.received[0], SessionStarted)

        result = self.engine.stop_session()
        self.assertTrue(result["success"])
        finalized = result["session"]
        self.assertIsInstance(finalized, FinalizedSession)
        self.assertEqual(finalized.outcome, SessionState.ABORTED)
        self.assertEqual(finalized.minutes, 0)
        self.assertEqual(self.overlay.state, OVERLAY_RELEASED)
        self.assertTrue(any(isinstance(e, SessionFinalized) for e in self.received))

        stats = self.engine.get_daily_stats(1)
        self.assertEqual(stats[-1]["sessions"], 1)

    def test_invalid_minutes(self):
        """Non-positive or non-numeric lengths return invalid_duration."""
        for bad in (0, -10, None, float("inf"), float("nan")):
            result = self.engine.start_session(bad)
            self.assertFalse(result["success"])
            self.assertEqual(result["error_type"], "invalid_duration")
        self.assertFalse(self.engine.loop.is_running)

    def test_double_start_returns_error(self):
        """Starting while running returns already_running."""
        self.assertTrue(self.engine.start_session(10)["success"])
        result = self.engine.start_session(10)
        self.assertFalse(result["success"])
        self.assertEqual(result["error_type"], "already_running")

    def test_stop_when_not_running(self):
        """Stopping with nothing running returns no_active_session."""
        result = self.engine.stop_session()
        self.assertFalse(result["success"])
        self.assertIsNone(result["session"])
        self.assertEqual(result["error_type"], "no_active_session")

    def test_cleanup_aborts_running_session(self):
        """cleanup() closes an open session and stops the loop."""
        self.engine.start_session(10)
        self.engine.cleanup()
        self.assertFalse(self.engine.get_status()["is_active"])
        self.assertFalse(self.engine.loop.is_running)
        self.assertEqual(self.engine.get_daily_stats(1)[-1]["sessions"], 1)


class TestEngineStatsFailure(EngineTestCase):
    """Storage failures surface through the result dicts."""

    def test_stop_reports_write_failure_and_retry_recovers(self):
        """stats_write_failed keeps the session pending until retried."""
        self.engine.start_session(10)
        self.backend.fail = True
        result = self.engine.stop_session()
        self.assertFalse(result["success"])
        self.assertEqual(result["error_type"], "stats_write_failed")
        self.assertIsInstance(result["session"], FinalizedSession)
        self.assertEqual(self.engine.get_status()["unrecorded"], 1)

        self.assertFalse(self.engine.retry_unrecorded()["success"])

        self.backend.fail = False
        retry = self.engine.retry_unrecorded()
        self.assertTrue(retry["success"])
        self.assertEqual(retry["recorded"], 1)
        self.assertEqual(self.engine.get_status()["unrecorded"], 0)
        self.assertEqual(self.engine.get_daily_stats(1)[-1]["sessions"], 1)


class TestEngineBlocklistAndStats(EngineTestCase):
    """Blocklist reload and stats queries."""

    def test_reload_blocklist(self):
        """reload_blocklist() applies settings saved to disk."""
        self.assertFalse(self.engine.blocklist.is_blocked("Steam"))
        self.engine.blocklist_manager.save(["gaming"], [])
        self.engine.reload_blocklist()
        self.assertTrue(self.engine.blocklist.is_blocked("Steam"))
        self.assertFalse(self.engine.blocklist.is_blocked("com.instagram.android"))

    def test_get_daily_stats_shape(self):
        """Daily stats come back oldest first as plain dicts."""
        self.engine.stats_store.record("20260117", 25)
        rows = self.engine.get_daily_stats(2, today=date(2026, 1, 18))
        self.assertEqual(rows, [
            {"day": "20260117", "sessions": 1, "minutes": 25},
            {"day": "20260118", "sessions": 0, "minutes": 0},
        ])


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    unittest.main()
