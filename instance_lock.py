"""
Instance Lock - Prevents multiple FocusLight processes from running at once.

Only one process may own the session controller and the daily stats file,
otherwise two controllers could each think they hold the only running
session. Cross-platform file locking:
- Unix (macOS/Linux): fcntl.flock()
- Windows: msvcrt.locking()

The OS releases the lock when the process terminates, even on crashes.
"""

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import IO, Optional

import config

logger = logging.getLogger(__name__)

_LOCK_BYTES = 32


def _is_process_running(pid: int) -> bool:
    """
    Check if a process with the given PID is currently running.

    Args:
        pid: Process ID to check.

    Returns:
        True if the process is running, False otherwise.
    """
    if pid <= 0:
        return False

    if sys.platform == 'win32':
        import ctypes
        kernel32 = ctypes.windll.kernel32
        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if handle:
            kernel32.CloseHandle(handle)
            return True
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


class InstanceLock:
    """
    Cross-platform instance lock using file locking.

    Usage:
        lock = InstanceLock()
        if not lock.acquire():
            print("FocusLight is already running")
            sys.exit(1)
        # ... run application ...
        lock.release()  # Optional - released automatically on exit
    """

    def __init__(self, lock_file: Optional[Path] = None):
        """
        Initialize instance lock.

        Args:
            lock_file: Path to lock file (default: config.LOCK_FILE)
        """
        self.lock_file = Path(lock_file) if lock_file else config.LOCK_FILE
        self._lock_handle: Optional[IO] = None

    def _try_acquire_lock(self) -> bool:
        """
        Attempt a non-blocking exclusive lock and write our PID into the file.

        Returns:
            True if lock acquired, False if another process holds it.
        """
        if sys.platform == 'win32':
            import msvcrt
            mode = 'r+b' if self.lock_file.exists() else 'w+b'
            handle = open(self.lock_file, mode)
            try:
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, _LOCK_BYTES)
            except OSError:
                handle.close()
                return False
            handle.seek(0)
            handle.truncate()
            handle.write(str(os.getpid()).encode('utf-8').ljust(_LOCK_BYTES, b'\0'))
            handle.flush()
        else:
            import fcntl
            handle = open(self.lock_file, 'a+')
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                handle.close()
                return False
            handle.seek(0)
            handle.truncate()
            handle.write(str(os.getpid()))
            handle.flush()

        self._lock_handle = handle
        return True

    def _clean_stale_lock(self) -> bool:
        """
        Remove the lock file if the PID inside it is no longer running.

        Returns:
            True if a stale lock was removed.
        """
        pid = read_lock_pid(self.lock_file)
        if pid is None or pid == os.getpid() or _is_process_running(pid):
            return False
        logger.info(f"Removing stale lock from dead process {pid}")
        try:
            self.lock_file.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove stale lock file: {e}")
            return False
        return True

    def acquire(self) -> bool:
        """
        Try to acquire the instance lock, cleaning up a stale lock once.

        Returns:
            True if acquired, False if another instance is running.
        """
        if self._lock_handle is not None:
            return True
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        if self._try_acquire_lock():
            logger.debug(f"Instance lock acquired (PID: {os.getpid()})")
            return True

        if self._clean_stale_lock() and self._try_acquire_lock():
            logger.info("Instance lock acquired after cleaning stale lock")
            return True

        return False

    def release(self) -> None:
        """Release the lock and remove the lock file."""
        if self._lock_handle is None:
            return
        try:
            if sys.platform == 'win32':
                import msvcrt
                self._lock_handle.seek(0)
                msvcrt.locking(self._lock_handle.fileno(), msvcrt.LK_UNLCK, _LOCK_BYTES)
            self._lock_handle.close()
        except OSError as e:
            logger.warning(f"Error releasing instance lock: {e}")
        finally:
            self._lock_handle = None

        try:
            self.lock_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not delete lock file: {e}")
        logger.debug("Instance lock released")

    def is_acquired(self) -> bool:
        """Check if lock is currently held by this instance."""
        return self._lock_handle is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def read_lock_pid(lock_file: Optional[Path] = None) -> Optional[int]:
    """
    Read the PID stored in a lock file.

    Returns:
        PID, or None if the file is missing or does not contain one.
    """
    path = Path(lock_file) if lock_file else config.LOCK_FILE
    try:
        content = path.read_bytes().rstrip(b'\0').decode('utf-8', errors='ignore').strip()
    except OSError:
        return None
    return int(content) if content.isdigit() else None


# Global instance for module-level functions
_instance_lock: Optional[InstanceLock] = None


def check_single_instance() -> bool:
    """
    Check if this is the only running instance of FocusLight.

    The lock is released automatically at exit.

    Returns:
        True if this is the only instance (safe to proceed)
    """
    global _instance_lock

    if _instance_lock is not None:
        return _instance_lock.is_acquired()

    _instance_lock = InstanceLock()
    acquired = _instance_lock.acquire()
    if acquired:
        atexit.register(release_instance_lock)
    return acquired


def release_instance_lock() -> None:
    """Release the global instance lock (also registered with atexit)."""
    global _instance_lock
    if _instance_lock is not None:
        _instance_lock.release()
        _instance_lock = None
