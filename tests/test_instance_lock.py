"""
Tests for instance_lock.py - single-instance protection.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from instance_lock import InstanceLock, read_lock_pid


@unittest.skipIf(sys.platform == "win32", "flock semantics are Unix-only")
class TestInstanceLock(unittest.TestCase):
    """Lock file acquisition and release."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.lock_file = Path(self._tmp.name) / "run" / ".focuslight.lock"

    def test_acquire_writes_pid(self):
        lock = InstanceLock(self.lock_file)
        self.addCleanup(lock.release)
        self.assertTrue(lock.acquire())
        self.assertTrue(lock.is_acquired())
        self.assertEqual(read_lock_pid(self.lock_file), os.getpid())

    def test_second_lock_is_refused(self):
        """A second holder cannot take the lock while the first has it."""
        first = InstanceLock(self.lock_file)
        second = InstanceLock(self.lock_file)
        self.addCleanup(first.release)
        self.addCleanup(second.release)

        self.assertTrue(first.acquire())
        self.assertFalse(second.acquire())

        first.release()
        self.assertFalse(self.lock_file.exists())
        self.assertTrue(second.acquire())

    def test_context_manager(self):
        with InstanceLock(self.lock_file) as lock:
            self.assertTrue(lock.is_acquired())
        self.assertFalse(lock.is_acquired())
        self.assertIsNone(read_lock_pid(self.lock_file))

    def test_read_lock_pid_ignores_garbage(self):
        self.lock_file.parent.mkdir(parents=True)
        self.lock_file.write_text("not a pid")
        self.assertIsNone(read_lock_pid(self.lock_file))


if __name__ == "__main__":
    unittest.main()
