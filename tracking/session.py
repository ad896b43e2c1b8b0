"""Focus session data model."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of a focus session."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"  # Ran for the full planned duration
    ABORTED = "aborted"  # Stopped early by the user

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


@dataclass(frozen=True)
class SessionStatus:
    """Snapshot of the controller's current session, safe to hand to other threads."""
    is_active: bool
    remaining_seconds: int
    session_id: Optional[str] = None
    state: SessionState = SessionState.IDLE
    elapsed_seconds: float = 0.0
    planned_duration_seconds: int = 0


@dataclass(frozen=True)
class FinalizedSession:
    """Immutable record of a closed session and its statistics contribution."""
    session_id: str
    outcome: SessionState
    planned_duration_seconds: int
    elapsed_seconds: float
    minutes: int
    day_key: str
    started_at: Optional[datetime]
    ended_at: datetime


class Session:
    """
    A single timed focus attempt.

    Mutable fields are owned by SessionController and only changed while
    holding its lock. Elapsed time is accumulated from wall-clock deltas
    so missed ticks (e.g. after the machine sleeps) are caught up.
    """

    def __init__(self, planned_duration_seconds: int, session_id: Optional[str] = None):
        """
        Initialize a new idle session.

        Args:
            planned_duration_seconds: Length of the session, fixed at creation.
            session_id: Optional custom session ID. If None, a random one is generated.
        """
        self.session_id = session_id or uuid.uuid4().hex
        self.planned_duration_seconds = planned_duration_seconds
        self.state = SessionState.IDLE
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.elapsed_seconds: float = 0.0
        self.last_tick: Optional[float] = None

    def __repr__(self) -> str:
        return (f"Session(id={self.session_id[:8]}, state={self.state.value}, "
                f"elapsed={self.elapsed_seconds:.1f}/{self.planned_duration_seconds})")

    def start(self, now: float) -> None:
        """Transition Idle -> Running at timestamp ``now``."""
        self.state = SessionState.RUNNING
        self.started_at = datetime.fromtimestamp(now)
        self.last_tick = now
        logger.info(f"Session {self.session_id[:8]} started "
                    f"({self.planned_duration_seconds}s planned)")

    def advance(self, now: float) -> None:
        """
        Add the wall-clock time since the last tick to elapsed_seconds.

        A clock that moved backwards contributes nothing, and elapsed time
        never passes the planned duration.
        """
        if self.state != SessionState.RUNNING or self.last_tick is None:
            return
        delta = now - self.last_tick
        if delta < 0:
            logger.warning(f"Clock moved backwards by {-delta:.3f}s, ignoring delta")
            delta = 0.0
        else:
            self.last_tick = now
        self.elapsed_seconds = min(float(self.planned_duration_seconds),
                                   self.elapsed_seconds + delta)

    @property
    def is_expired(self) -> bool:
        return self.elapsed_seconds >= self.planned_duration_seconds

    @property
    def remaining_seconds(self) -> int:
        return max(0, int(self.planned_duration_seconds - self.elapsed_seconds))

    @property
    def closed_minutes(self) -> int:
        """Whole minutes credited to the daily stats (rounded down)."""
        return int(self.elapsed_seconds // 60)

    def close(self, outcome: SessionState, now: float) -> None:
        """Freeze elapsed time and move into a terminal state."""
        if not outcome.is_terminal:
            raise ValueError(f"Not a terminal state: {outcome}")
        self.state = outcome
        self.ended_at = datetime.fromtimestamp(now)

    def status(self) -> SessionStatus:
        return SessionStatus(
            is_active=self.state == SessionState.RUNNING,
            remaining_seconds=self.remaining_seconds if self.state == SessionState.RUNNING else 0,
            session_id=self.session_id,
            state=self.state,
            elapsed_seconds=self.elapsed_seconds,
            planned_duration_seconds=self.planned_duration_seconds,
        )
