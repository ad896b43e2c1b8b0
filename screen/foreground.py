"""
Foreground application detection for focus-mode enforcement.

The enforcement loop only needs one thing from the platform: the identifier
of the application currently in the foreground. Every failure (missing
permission, timeout, unsupported platform) is reported as
ForegroundUnavailable so the loop can retry on the next tick.

Uses platform-native mechanisms:
- macOS: AppleScript via osascript (needs Accessibility permission)
- Windows: ctypes (GetForegroundWindow + process image name)
- Linux/X11: xdotool
"""

import logging
import subprocess
import sys
from abc import ABC, abstractmethod

from core.errors import ForegroundUnavailable

logger = logging.getLogger(__name__)

_SUBPROCESS_TIMEOUT = 2


class ForegroundDetector(ABC):
    """Reports the identifier of the current foreground target."""

    @abstractmethod
    def current_foreground_target(self) -> str:
        """
        Return the foreground target identifier.

        Raises:
            ForegroundUnavailable: If it cannot be determined right now.
        """


class WindowForegroundDetector(ForegroundDetector):
    """
    Cross-platform detector returning the frontmost application's name.
    """

    def __init__(self, platform: str = sys.platform):
        """Initialize the detector for the given platform (default: current)."""
        self.platform = platform

    def current_foreground_target(self) -> str:
        try:
            if self.platform == "darwin":
                name = self._frontmost_app_macos()
            elif self.platform == "win32":
                name = self._frontmost_app_windows()
            elif self.platform.startswith("linux"):
                name = self._frontmost_app_linux()
            else:
                raise ForegroundUnavailable(f"Unsupported platform: {self.platform}")
        except subprocess.TimeoutExpired as e:
            raise ForegroundUnavailable(f"Timed out detecting foreground app: {e}") from e
        except OSError as e:
            raise ForegroundUnavailable(f"OS error detecting foreground app: {e}") from e

        if not name:
            raise ForegroundUnavailable("No foreground application reported")
        return name

    def _frontmost_app_macos(self) -> str:
        script = '''
        tell application "System Events"
            return name of first application process whose frontmost is true
        end tell
        '''
        result = subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            text=True,
            timeout=_SUBPROCESS_TIMEOUT
        )
        if result.returncode != 0:
            stderr_lower = result.stderr.lower()
            if "not allowed" in stderr_lower or "assistive" in stderr_lower or "-10827" in stderr_lower:
                raise ForegroundUnavailable("Accessibility permission required")
            raise ForegroundUnavailable(f"AppleScript failed: {result.stderr.strip()}")
        return result.stdout.strip()

    def _frontmost_app_windows(self) -> str:
        import ctypes
        from ctypes import wintypes

        user32 = ctypes.windll.user32
        kernel32 = ctypes.windll.kernel32
        hwnd = user32.GetForegroundWindow()
        if not hwnd:
            raise ForegroundUnavailable("No foreground window")

        pid = wintypes.DWORD()
        user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))

        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid.value)
        if not handle:
            raise ForegroundUnavailable(f"Cannot open process {pid.value}")
        try:
            buffer = ctypes.create_unicode_buffer(260)
            size = wintypes.DWORD(260)
            if not kernel32.QueryFullProcessImageNameW(handle, 0, buffer, ctypes.byref(size)):
                raise ForegroundUnavailable(f"Cannot read image name of process {pid.value}")
            return buffer.value.split("\\")[-1].replace(".exe", "")
        finally:
            kernel32.CloseHandle(handle)

    def _frontmost_app_linux(self) -> str:
        try:
            result = subprocess.run(
                ["xdotool", "getactivewindow", "getwindowclassname"],
                capture_output=True,
                text=True,
                timeout=_SUBPROCESS_TIMEOUT
            )
        except FileNotFoundError as e:
            raise ForegroundUnavailable("xdotool is not installed") from e
        if result.returncode != 0:
            raise ForegroundUnavailable(f"xdotool failed: {result.stderr.strip()}")
        return result.stdout.strip()

    def get_permission_instructions(self) -> str:
        """
        Get instructions for enabling foreground detection.

        Returns:
            Platform-specific instructions string.
        """
        if self.platform == "darwin":
            return (
                "Focus mode needs Accessibility permission to see the frontmost app:\n"
                "   • System Settings → Privacy & Security → Accessibility\n"
                "   • Add FocusLight and enable the checkbox, then restart it."
            )
        elif self.platform == "win32":
            return "If blocking does not work, try running FocusLight as Administrator."
        elif self.platform.startswith("linux"):
            return "Install xdotool and run under an X11 session."
        return f"Foreground detection is not supported on {self.platform}"
