"""Tests for screen/foreground.py with subprocess mocked out."""

import subprocess
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ForegroundUnavailable
from screen.foreground import WindowForegroundDetector


def completed(stdout="", stderr="", returncode=0):
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


class TestWindowForegroundDetector(unittest.TestCase):
    """Every failure mode surfaces as ForegroundUnavailable."""

    @patch("screen.foreground.subprocess.run")
    def test_macos_frontmost_app(self, mock_run):
        mock_run.return_value = completed(stdout="Safari\n")
        detector = WindowForegroundDetector(platform="darwin")
        self.assertEqual(detector.current_foreground_target(), "Safari")
        self.assertEqual(mock_run.call_args[0][0][0], "osascript")

    @patch("screen.foreground.subprocess.run")
    def test_macos_permission_denied(self, mock_run):
        mock_run.return_value = completed(
            stderr="System Events got an error: osascript is not allowed assistive access. (-1719)",
            returncode=1,
        )
        detector = WindowForegroundDetector(platform="darwin")
        with self.assertRaises(ForegroundUnavailable) as ctx:
            detector.current_foreground_target()
        self.assertIn("Accessibility", str(ctx.exception))

    @patch("screen.foreground.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="osascript", timeout=2)
        with self.assertRaises(ForegroundUnavailable):
            WindowForegroundDetector(platform="darwin").current_foreground_target()

    @patch("screen.foreground.subprocess.run")
    def test_linux_xdotool(self, mock_run):
        mock_run.return_value = completed(stdout="discord\n")
        detector = WindowForegroundDetector(platform="linux")
        self.assertEqual(detector.current_foreground_target(), "discord")

    @patch("screen.foreground.subprocess.run")
    def test_linux_without_xdotool(self, mock_run):
        mock_run.side_effect = FileNotFoundError("xdotool")
        with self.assertRaises(ForegroundUnavailable) as ctx:
            WindowForegroundDetector(platform="linux").current_foreground_target()
        self.assertIn("xdotool", str(ctx.exception))

    @patch("screen.foreground.subprocess.run")
    def test_empty_name(self, mock_run):
        mock_run.return_value = completed(stdout="  \n")
        with self.assertRaises(ForegroundUnavailable):
            WindowForegroundDetector(platform="linux").current_foreground_target()

    def test_unsupported_platform(self):
        detector = WindowForegroundDetector(platform="sunos5")
        with self.assertRaises(ForegroundUnavailable):
            detector.current_foreground_target()
        self.assertIn("not supported", detector.get_permission_instructions())


if __name__ == "__main__":
    unittest.main()
