"""
Daily statistics store for FocusLight.

Keeps one DailyStat per local calendar day (key "YYYYMMDD") with the number
of sessions finalized that day and the whole minutes they contributed.

ATTRIBUTION RULE:
    A session is counted on the day it is FINALIZED (stopped or expired),
    not the day it started. A session running across midnight therefore
    lands entirely on the later day.

DURABILITY:
    record() is write-through. When it returns, the new counters are on disk
    (temp file + fsync + atomic rename). When the write fails it raises
    StatsWriteFailed and the in-memory counters are left untouched, so a
    retry cannot double count.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import config
from core.errors import StatsWriteFailed

logger = logging.getLogger(__name__)

DAY_KEY_FORMAT = "%Y%m%d"
_FILE_VERSION = 1


def day_key(timestamp: Optional[float] = None) -> str:
    """
    Local-date key for a POSIX timestamp (now if None).

    Returns:
        Day key string such as "20260118".
    """
    moment = datetime.now() if timestamp is None else datetime.fromtimestamp(timestamp)
    return moment.strftime(DAY_KEY_FORMAT)


def parse_day_key(key: str) -> date:
    """Parse a "YYYYMMDD" key, raising ValueError on anything else."""
    if not isinstance(key, str) or len(key) != 8 or not key.isdigit():
        raise ValueError(f"Invalid day key: {key!r}")
    return datetime.strptime(key, DAY_KEY_FORMAT).date()


@dataclass(frozen=True)
class DailyStat:
    """Aggregate counters for one calendar day."""
    day_key: str
    session_count: int = 0
    total_minutes: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"session_count": self.session_count, "total_minutes": self.total_minutes}


class DurableCounterStore(ABC):
    """
    Persistence backing for StatsStore.

    Implementations must make save() durable before returning and raise
    (OSError or similar) rather than report success on failure. StatsStore
    reports any exception from save() as StatsWriteFailed.
    """

    @abstractmethod
    def load(self, key: str) -> Optional[DailyStat]:
        """Return the stored counters for a day, or None if absent."""

    @abstractmethod
    def save(self, stat: DailyStat) -> None:
        """Durably store counters for stat.day_key, replacing any previous value."""

    @abstractmethod
    def load_all(self) -> Dict[str, DailyStat]:
        """Return every stored day."""


class InMemoryCounterStore(DurableCounterStore):
    """Non-persistent store, for tests and throwaway runs."""

    def __init__(self) -> None:
        self._days: Dict[str, DailyStat] = {}

    def load(self, key: str) -> Optional[DailyStat]:
        return self._days.get(key)

    def save(self, stat: DailyStat) -> None:
        self._days[stat.day_key] = stat

    def load_all(self) -> Dict[str, DailyStat]:
        return dict(self._days)


class JsonFileCounterStore(DurableCounterStore):
    """
    Counters kept in a single JSON document, rewritten atomically on every save.

    File layout:
        {"version": 1, "days": {"20260118": {"session_count": 2, "total_minutes": 50}}}
    """

    def __init__(self, data_file: Path):
        """
        Initialize the store and load existing data.

        Args:
            data_file: Path of the JSON document. Parent directories are created.
        """
        self.data_file = Path(data_file)
        self._days: Dict[str, DailyStat] = self._load_data()

    def _load_data(self) -> Dict[str, DailyStat]:
        """
        Load stored days from disk.

        A missing file is an empty store. An unreadable or malformed file is
        moved aside to "<name>.corrupt" so it can be inspected later.
        """
        if not self.data_file.exists():
            return {}
        try:
            with open(self.data_file, 'r') as f:
                raw = json.load(f)
            days = {}
            for key, counters in raw.get("days", {}).items():
                parse_day_key(key)
                days[key] = DailyStat(
                    day_key=key,
                    session_count=int(counters.get("session_count", 0)),
                    total_minutes=int(counters.get("total_minutes", 0)),
                )
            logger.debug(f"Loaded daily stats for {len(days)} day(s) from {self.data_file}")
            return days
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            corrupt_path = self.data_file.with_suffix(self.data_file.suffix + ".corrupt")
            logger.warning(f"Daily stats file is malformed ({e}). "
                           f"Moving it to {corrupt_path} and starting fresh.")
            os.replace(self.data_file, corrupt_path)
            return {}

    def _write_atomic(self, days: Dict[str, DailyStat]) -> None:
        """
        Write the document atomically: temp file in the same directory,
        fsync, then rename over the target.

        Raises:
            OSError: If any step fails. The temp file is removed.
        """
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": _FILE_VERSION,
            "days": {key: stat.to_dict() for key, stat in sorted(days.items())},
        }
        temp_fd, temp_path = tempfile.mkstemp(
            suffix='.tmp',
            prefix='daily_stats_',
            dir=self.data_file.parent
        )
        try:
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.data_file)
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def load(self, key: str) -> Optional[DailyStat]:
        return self._days.get(key)

    def save(self, stat: DailyStat) -> None:
        updated = dict(self._days)
        updated[stat.day_key] = stat
        self._write_atomic(updated)
        # Only publish in memory once the disk write succeeded
        self._days = updated

    def load_all(self) -> Dict[str, DailyStat]:
        return dict(self._days)


class StatsStore:
    """
    Per-day session counters with append/merge semantics.

    The only writer of durable counters. Thread-safe: record() holds an
    internal lock across the full read-modify-write, so concurrent sessions
    finalizing at once never lose an update.
    """

    def __init__(self, backend: Optional[DurableCounterStore] = None):
        """
        Args:
            backend: Persistence backing. Defaults to the JSON file at config.STATS_FILE.
        """
        self.backend = backend if backend is not None else JsonFileCounterStore(config.STATS_FILE)
        self._lock = threading.Lock()

    def record(self, key: str, minutes: int) -> DailyStat:
        """
        Add one session and its minutes to a day, creating the day if needed.

        Args:
            key: Day key ("YYYYMMDD").
            minutes: Whole minutes to add (non-negative).

        Returns:
            The day's counters after the update.

        Raises:
            ValueError: If the key is malformed or minutes is negative.
            StatsWriteFailed: If the durable write did not complete.
        """
        parse_day_key(key)
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            raise ValueError(f"minutes must be a non-negative int, got {minutes!r}")

        with self._lock:
            current = self.backend.load(key) or DailyStat(day_key=key)
            updated = DailyStat(
                day_key=key,
                session_count=current.session_count + 1,
                total_minutes=current.total_minutes + minutes,
            )
            try:
                self.backend.save(updated)
            except Exception as e:
                logger.error(f"Failed to record {minutes} min for {key}: {e}")
                raise StatsWriteFailed(
                    f"Could not save statistics for {key}: {e}", day_key=key, minutes=minutes
                ) from e

        logger.info(f"Recorded session for {key}: +{minutes} min "
                    f"(day total {updated.total_minutes} min, {updated.session_count} sessions)")
        return updated

    def query(self, key: str) -> DailyStat:
        """Counters for one day, zeroed if nothing was recorded."""
        parse_day_key(key)
        with self._lock:
            return self.backend.load(key) or DailyStat(day_key=key)

    def query_range(self, start_key: str, end_key: str) -> List[DailyStat]:
        """
        Counters for every day from start_key to end_key inclusive, ascending.

        Days without sessions are included as zeroed entries so callers can
        render a continuous calendar. An inverted range returns an empty list.
        """
        start = parse_day_key(start_key)
        end = parse_day_key(end_key)
        if end < start:
            return []

        with self._lock:
            stored = self.backend.load_all()

        result = []
        current = start
        while current <= end:
            key = current.strftime(DAY_KEY_FORMAT)
            result.append(stored.get(key) or DailyStat(day_key=key))
            current += timedelta(days=1)
        return result

    def recent(self, days: int, today: Optional[date] = None) -> List[DailyStat]:
        """The last ``days`` days ending today, ascending."""
        if days <= 0:
            return []
        end = today or date.today()
        start = end - timedelta(days=days - 1)
        return self.query_range(start.strftime(DAY_KEY_FORMAT), end.strftime(DAY_KEY_FORMAT))


# Global instance for easy access (thread-safe singleton)
_stats_store_instance: Optional[StatsStore] = None
_stats_store_lock = threading.Lock()


def get_stats_store() -> StatsStore:
    """
    Get the global StatsStore backed by config.STATS_FILE.

    Thread-safe: Uses double-check locking so only one store (and one
    in-memory view of the file) exists per process.
    """
    global _stats_store_instance
    if _stats_store_instance is None:
        with _stats_store_lock:
            if _stats_store_instance is None:
                _stats_store_instance = StatsStore()
    return _stats_store_instance
