"""
Error taxonomy for the focus session core.

Caller-misuse errors (AlreadyRunning, NoActiveSession, InvalidDuration) are
raised synchronously from start/stop. ForegroundUnavailable is a transient
collaborator failure that the enforcement loop retries. StatsWriteFailed is
raised whenever a finalized session could not be durably recorded.
"""

from typing import Optional


class FocusError(Exception):
    """Base class for all focus-mode errors."""

    error_type = "focus_error"


class AlreadyRunning(FocusError):
    """A session is already running on this controller."""

    error_type = "already_running"


class NoActiveSession(FocusError):
    """There is no running session to act on."""

    error_type = "no_active_session"


class InvalidDuration(FocusError):
    """Planned duration was not a positive whole number of seconds."""

    error_type = "invalid_duration"


class ForegroundUnavailable(FocusError):
    """The foreground target could not be determined (permission, platform)."""

    error_type = "foreground_unavailable"


class StatsWriteFailed(FocusError):
    """
    A session's statistics could not be durably committed.

    Attributes:
        day_key: Day the contribution was meant for.
        minutes: Minutes that were not recorded.
        session: The FinalizedSession, when raised from the finalize path.
    """

    error_type = "stats_write_failed"

    def __init__(self, message: str, day_key: str, minutes: int, session: Optional[object] = None):
        super().__init__(message)
        self.day_key = day_key
        self.minutes = minutes
        self.session = session
