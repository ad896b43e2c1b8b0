"""
EnforcementLoop: periodic focus-mode enforcement.

Every tick:
    1. controller.tick(now); inactive -> overlay.release(), done
    2. ask the foreground detector for the current target
    3. blocked -> overlay.engage(block=True)
       not blocked -> overlay.engage(block=False) if dim_when_unblocked,
                      else overlay.release()

Detector failures (ForegroundUnavailable or any other exception) skip
steps 2-3 for that tick and are retried on the next one. After
PERMISSION_LOST_THRESHOLD consecutive failures a PermissionLost event is
published (once per failure streak). The session timer keeps running
throughout.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Iterable, Optional

import config
from core.controller import SessionController
from core.errors import ForegroundUnavailable
from core.events import PermissionLost
from screen.blocklist import BlockList
from screen.foreground import ForegroundDetector
from screen.overlay import OverlaySink

logger = logging.getLogger(__name__)


class TickDecision(Enum):
    """What a single enforcement tick commanded."""
    IDLE = "idle"  # No session running; overlay released
    BLOCKED = "blocked"  # Foreground target blocked; overlay engaged with blocking
    DIMMED = "dimmed"  # Not blocked, but dimming stays on (dim_when_unblocked)
    ALLOWED = "allowed"  # Not blocked; overlay released
    SKIPPED = "skipped"  # Foreground detector failed; nothing commanded


class EnforcementLoop:
    """
    Drives SessionController.tick and overlay commands on a fixed interval.

    tick() can be called directly (tests, external schedulers). start()
    runs it on a background daemon thread until stop().
    """

    def __init__(
        self,
        controller: SessionController,
        blocklist: BlockList,
        detector: ForegroundDetector,
        overlay: OverlaySink,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
        dim_when_unblocked: bool = config.DIM_WHEN_UNBLOCKED,
        failure_threshold: int = config.PERMISSION_LOST_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        if tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {tick_interval}")
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got {failure_threshold}")

        self.controller = controller
        self.blocklist = blocklist
        self.detector = detector
        self.overlay = overlay
        self.tick_interval = tick_interval
        self.dim_when_unblocked = dim_when_unblocked
        self.failure_threshold = failure_threshold
        self._clock = clock

        self.consecutive_failures = 0
        self.permission_lost = False
        self.last_decision: Optional[TickDecision] = None

        # Held for the whole of a tick so the blocklist cannot change mid-decision
        self._tick_lock = threading.Lock()
        self.should_stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> TickDecision:
        """Run one enforcement pass and return what it decided."""
        now = self._clock() if now is None else now
        with self._tick_lock:
            decision = self._tick_locked(now)
            if decision != self.last_decision:
                logger.debug(f"Enforcement decision: {decision.value}")
            self.last_decision = decision
            return decision

    def _tick_locked(self, now: float) -> TickDecision:
        status = self.controller.tick(now)
        if not status.is_active:
            self.consecutive_failures = 0
            self.permission_lost = False
            self.overlay.release()
            return TickDecision.IDLE

        try:
            target = self.detector.current_foreground_target()
        except ForegroundUnavailable as e:
            self._record_detector_failure(e)
            return TickDecision.SKIPPED
        except Exception as e:
            # Detector bugs or revoked APIs count the same as ForegroundUnavailable
            logger.debug("Unexpected foreground detector error", exc_info=True)
            self._record_detector_failure(e)
            return TickDecision.SKIPPED

        if self.consecutive_failures:
            logger.info(f"Foreground detection recovered after "
                        f"{self.consecutive_failures} failed tick(s)")
        self.consecutive_failures = 0
        self.permission_lost = False

        if self.blocklist.is_blocked(target):
            self.overlay.engage(block=True)
            return TickDecision.BLOCKED
        if self.dim_when_unblocked:
            self.overlay.engage(block=False)
            return TickDecision.DIMMED
        self.overlay.release()
        return TickDecision.ALLOWED

    def _record_detector_failure(self, error: Exception) -> None:
        self.consecutive_failures += 1
        logger.warning(f"Foreground detection failed "
                       f"({self.consecutive_failures} in a row): {error}")
        if self.consecutive_failures >= self.failure_threshold and not self.permission_lost:
            self.permission_lost = True
            logger.error("Foreground detection keeps failing, reporting permission lost")
            self.controller.events.publish(PermissionLost())

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, targets: Iterable[str]) -> None:
        """Replace the blocked targets between ticks, never during one."""
        with self._tick_lock:
            self.blocklist.configure(targets)

    # ------------------------------------------------------------------
    # Background thread
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking on a daemon thread. No-op if already running."""
        if self.is_running:
            return
        self.should_stop.clear()
        self._thread = threading.Thread(target=self._run, name="focus-enforcement", daemon=True)
        self._thread.start()
        logger.info(f"Enforcement loop started (every {self.tick_interval}s)")

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the thread to stop, wait for it, and release the overlay."""
        self.should_stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Enforcement thread did not stop within timeout")
        self._thread = None
        self.overlay.release()
        logger.info("Enforcement loop stopped")

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self.should_stop.is_set():
            try:
                self.tick()
            except Exception as e:
                # Keep enforcing; one bad tick must not end focus mode
                logger.error(f"Enforcement tick error: {e}", exc_info=True)
            next_tick += self.tick_interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind (suspend or slow tick); resume from now
                next_tick = time.monotonic()
                delay = 0
            self.should_stop.wait(delay)
