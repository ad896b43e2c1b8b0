"""
Session events published by the focus core.

Events are notifications for the presentation layer, never requests:
a subscriber that raises is logged and skipped, and with threaded=True the
publisher never waits for subscribers at all.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    planned_duration_seconds: int


@dataclass(frozen=True)
class SessionTick:
    session_id: str
    remaining_seconds: int


@dataclass(frozen=True)
class SessionFinalized:
    session_id: str
    outcome: str  # "completed" or "aborted"
    minutes: int


@dataclass(frozen=True)
class PermissionLost:
    """The foreground detector failed repeatedly; blocking is not effective."""


@dataclass(frozen=True)
class SessionRecordFailed:
    """A finalized session's minutes could not be written to the stats store."""
    session_id: str
    minutes: int
    day_key: str
    error: str


Subscriber = Callable[[object], None]

_STOP = object()


class EventBus:
    """
    Fan-out of session events to subscribers.

    Delivery is synchronous by default (deterministic, used by tests).
    With threaded=True events are queued and delivered from a daemon
    worker thread, in publish order.
    """

    def __init__(self, threaded: bool = False):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._queue: Optional["queue.Queue[object]"] = None
        self._worker: Optional[threading.Thread] = None
        if threaded:
            self._queue = queue.Queue()
            self._worker = threading.Thread(
                target=self._delivery_loop, args=(self._queue,), name="focus-events", daemon=True
            )
            self._worker.start()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, event: object) -> None:
        pending = self._queue
        if pending is not None:
            pending.put(event)
        else:
            self._deliver(event)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued event has been delivered.

        Returns:
            True if the queue drained, False on timeout. Always True when synchronous.
        """
        pending = self._queue
        if pending is None:
            return True
        done = threading.Event()
        pending.put(done)
        return done.wait(timeout)

    def close(self) -> None:
        """
        Stop the delivery worker after it drains pending events.

        Events published afterwards are delivered synchronously.
        """
        pending, self._queue = self._queue, None
        if pending is None or self._worker is None:
            return
        pending.put(_STOP)
        self._worker.join(timeout=2.0)
        if self._worker.is_alive():
            logger.warning("Event delivery thread did not stop within timeout")
        self._worker = None

    def _delivery_loop(self, pending: "queue.Queue[object]") -> None:
        while True:
            event = pending.get()
            if event is _STOP:
                return
            if isinstance(event, threading.Event):
                event.set()
                continue
            self._deliver(event)

    def _deliver(self, event: object) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.debug(f"Event subscriber error for {type(event).__name__}: {e}")
