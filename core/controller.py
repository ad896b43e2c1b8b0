"""
SessionController: the focus-session state machine.

Owns the current Session and is the only code that mutates it. Two actors
call in: the control surface (start/stop) and the enforcement loop (tick).
Both are serialized by one lock, and both close a session through the same
finalize guard, so a stop racing an auto-expiring tick finalizes exactly once.

Finalize sequence:
    1. under the lock: check/mark the session id in the finalized set,
       freeze elapsed time, move to COMPLETED/ABORTED, snapshot the result
    2. lock released: StatsStore.record(day_of_finalize, elapsed // 60)
    3. publish SessionFinalized

Step 2 runs outside the lock so slow storage never stalls tick().
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Set

from core.errors import AlreadyRunning, InvalidDuration, NoActiveSession, StatsWriteFailed
from core.events import EventBus, SessionFinalized, SessionRecordFailed, SessionStarted, SessionTick
from tracking.daily_stats import StatsStore, day_key
from tracking.session import FinalizedSession, Session, SessionState, SessionStatus

logger = logging.getLogger(__name__)

_IDLE_STATUS = SessionStatus(is_active=False, remaining_seconds=0)


class SessionController:
    """
    Start/stop/tick state machine for one focus session at a time.

    Timestamps are POSIX seconds. Every public method takes an optional
    ``now``; when omitted the injected clock (time.time by default) is used.
    Wall-clock time is used, so time spent suspended still
    counts towards the session.
    """

    def __init__(
        self,
        stats_store: StatsStore,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.stats_store = stats_store
        self.events = events if events is not None else EventBus()
        self._clock = clock
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._finalized_ids: Set[str] = set()
        self._unrecorded: List[FinalizedSession] = []

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start(self, planned_duration_seconds: int, now: Optional[float] = None) -> str:
        """
        Start a new session.

        Args:
            planned_duration_seconds: Positive whole number of seconds.
            now: Start timestamp (defaults to the clock).

        Returns:
            The new session's id.

        Raises:
            InvalidDuration: If the duration is not a positive int.
            AlreadyRunning: If a session is already running.
        """
        if (isinstance(planned_duration_seconds, bool)
                or not isinstance(planned_duration_seconds, int)
                or planned_duration_seconds <= 0):
            raise InvalidDuration(
                f"Planned duration must be a positive number of seconds, got {planned_duration_seconds!r}"
            )
        now = self._now(now)

        with self._lock:
            if self._session is not None and self._session.state == SessionState.RUNNING:
                raise AlreadyRunning(f"Session {self._session.session_id} is already running")
            session = Session(planned_duration_seconds)
            session.start(now)
            self._session = session

        self.events.publish(SessionStarted(session.session_id, planned_duration_seconds))
        return session.session_id

    def stop(self, now: Optional[float] = None) -> FinalizedSession:
        """
        Stop the running session and record it.

        Elapsed time is first brought up to ``now``. The outcome is ABORTED
        if the planned duration was not reached, COMPLETED otherwise.

        Raises:
            NoActiveSession: If no session is running (including a second stop).
            StatsWriteFailed: If the session closed but its minutes could not
                be saved. The session stays queued for retry_unrecorded().
        """
        now = self._now(now)
        with self._lock:
            session = self._session
            if session is None or session.state != SessionState.RUNNING:
                raise NoActiveSession("No focus session is running")
            session.advance(now)
            outcome = SessionState.COMPLETED if session.is_expired else SessionState.ABORTED
            # RUNNING implies the finalize guard is still free for this id
            finalized = self._close_locked(session, outcome, now)

        return self._commit(finalized)

    # ------------------------------------------------------------------
    # Enforcement-loop surface
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> SessionStatus:
        """
        Advance the running session to ``now`` and auto-complete on expiry.

        Never raises for "nothing running"; it just reports is_active=False.
        A storage failure during auto-completion is logged and published as
        SessionRecordFailed instead of being raised into the loop.
        """
        now = self._now(now)
        finalized = None
        with self._lock:
            session = self._session
            if session is None:
                return _IDLE_STATUS
            if session.state != SessionState.RUNNING:
                return session.status()
            session.advance(now)
            if session.is_expired:
                finalized = self._close_locked(session, SessionState.COMPLETED, now)
            status = session.status()

        if finalized is None:
            if status.is_active:
                self.events.publish(SessionTick(status.session_id, status.remaining_seconds))
            return status

        try:
            self._commit(finalized)
        except StatsWriteFailed as e:
            self.events.publish(SessionRecordFailed(
                finalized.session_id, finalized.minutes, finalized.day_key, str(e)
            ))
        return status

    def current_status(self) -> SessionStatus:
        """Snapshot of the current session. Read-only."""
        with self._lock:
            if self._session is None:
                return _IDLE_STATUS
            return self._session.status()

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    @property
    def unrecorded(self) -> List[FinalizedSession]:
        """Finalized sessions whose stats write failed and is still pending."""
        with self._lock:
            return list(self._unrecorded)

    def retry_unrecorded(self) -> List[FinalizedSession]:
        """
        Re-attempt the stats write for sessions whose write failed.

        Returns:
            Sessions recorded by this call.

        Raises:
            StatsWriteFailed: On the first failure; it and the remaining
                sessions stay queued.
        """
        with self._lock:
            pending, self._unrecorded = self._unrecorded, []

        recorded: List[FinalizedSession] = []
        for index, finalized in enumerate(pending):
            try:
                self.stats_store.record(finalized.day_key, finalized.minutes)
            except StatsWriteFailed as e:
                e.session = finalized
                with self._lock:
                    self._unrecorded = pending[index:] + self._unrecorded
                raise
            recorded.append(finalized)
            self._publish_finalized(finalized)
        return recorded

    # ------------------------------------------------------------------
    # Finalize path
    # ------------------------------------------------------------------

    def _close_locked(
        self, session: Session, outcome: SessionState, now: float
    ) -> Optional[FinalizedSession]:
        """
        Claim the finalize guard for a session and close it.

        Caller must hold self._lock. Returns None if the id was already finalized.
        """
        if session.session_id in self._finalized_ids:
            return None
        self._finalized_ids.add(session.session_id)
        session.close(outcome, now)
        return FinalizedSession(
            session_id=session.session_id,
            outcome=outcome,
            planned_duration_seconds=session.planned_duration_seconds,
            elapsed_seconds=session.elapsed_seconds,
            minutes=session.closed_minutes,
            day_key=day_key(now),
            started_at=session.started_at,
            ended_at=session.ended_at,
        )

    def _commit(self, finalized: FinalizedSession) -> FinalizedSession:
        """Write a closed session's contribution. Must be called without the lock."""
        try:
            self.stats_store.record(finalized.day_key, finalized.minutes)
        except StatsWriteFailed as e:
            e.session = finalized
            with self._lock:
                self._unrecorded.append(finalized)
            logger.error(f"Session {finalized.session_id[:8]} closed as "
                         f"{finalized.outcome.value} but its {finalized.minutes} min "
                         f"were not recorded: {e}")
            raise
        self._publish_finalized(finalized)
        return finalized

    def _publish_finalized(self, finalized: FinalizedSession) -> None:
        logger.info(f"Session {finalized.session_id[:8]} {finalized.outcome.value}: "
                    f"{finalized.minutes} min credited to {finalized.day_key}")
        self.events.publish(SessionFinalized(
            finalized.session_id, finalized.outcome.value, finalized.minutes
        ))

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now
