"""
Core focus-mode package for FocusLight.

Contains the session state machine, the enforcement loop, session events
and the headless FocusEngine (core.engine). Zero UI dependencies.
"""

from core.errors import (
    AlreadyRunning,
    FocusError,
    ForegroundUnavailable,
    InvalidDuration,
    NoActiveSession,
    StatsWriteFailed,
)

__all__ = [
    "AlreadyRunning",
    "FocusError",
    "ForegroundUnavailable",
    "InvalidDuration",
    "NoActiveSession",
    "StatsWriteFailed",
]
