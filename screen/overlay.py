"""Overlay sink: the dimming layer and target blocking, seen from the core."""

import logging
import threading
from abc import ABC, abstractmethod

import config

logger = logging.getLogger(__name__)

OVERLAY_RELEASED = "released"
OVERLAY_DIMMED = "dimmed"  # Dimming layer shown, foreground app allowed
OVERLAY_BLOCKING = "blocking"  # Dimming layer shown and foreground app suppressed


class OverlaySink(ABC):
    """
    Commands for the external presentation layer. Both calls must be
    idempotent: the enforcement loop repeats them every tick.
    """

    @abstractmethod
    def engage(self, block: bool = True) -> None:
        """Show the dimming layer; with block=True also suppress the foreground target."""

    @abstractmethod
    def release(self) -> None:
        """Hide the dimming layer and stop suppressing anything."""


class LoggingOverlaySink(OverlaySink):
    """
    Default sink for headless runs: tracks the overlay state and logs
    transitions. Repeated commands for the current state are no-ops.
    """

    def __init__(self) -> None:
        self.state = OVERLAY_RELEASED
        self.transitions = 0
        self._lock = threading.Lock()

    def engage(self, block: bool = True) -> None:
        self._set(OVERLAY_BLOCKING if block else OVERLAY_DIMMED)

    def release(self) -> None:
        self._set(OVERLAY_RELEASED)

    def _set(self, new_state: str) -> None:
        with self._lock:
            if new_state == self.state:
                return
            old_state, self.state = self.state, new_state
            self.transitions += 1
        if new_state == OVERLAY_RELEASED:
            logger.info(f"Overlay released (was {old_state})")
        else:
            alpha, red, green, blue = config.OVERLAY_COLOR_ARGB
            logger.info(f"Overlay {new_state} (argb={alpha},{red},{green},{blue})")
