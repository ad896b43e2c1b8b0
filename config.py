"""Configuration settings for FocusLight."""

import logging
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

APP_NAME = "FocusLight"


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (stats, blocklist, lock file).

    For development: BASE_DIR/data
    For bundled apps: A dedicated folder in the user's home directory
                      so data persists across updates.

    Returns:
        Path to the user data directory.
    """
    if not is_bundled():
        return Path(__file__).parent / "data"

    if sys.platform == 'darwin':
        data_dir = Path.home() / "Library" / "Application Support" / APP_NAME
    elif sys.platform == 'win32':
        appdata = os.environ.get('APPDATA')
        if appdata:
            data_dir = Path(appdata) / APP_NAME
        else:
            data_dir = Path.home() / "AppData" / "Roaming" / APP_NAME
    else:
        data_dir = Path.home() / ".local" / "share" / APP_NAME
    return data_dir


def _get_float(env_var: str, default: float, minimum: float) -> float:
    """Read a float from the environment, falling back to default on bad input."""
    raw = os.getenv(env_var, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{env_var}={raw!r} is not a number, using {default}")
        return default
    if value < minimum:
        logger.warning(f"{env_var}={raw!r} is below {minimum}, using {default}")
        return default
    return value


def _get_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var, "")
    if not raw:
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _get_targets(env_var: str, default: frozenset) -> frozenset:
    """Parse a comma-separated target list; empty or unset keeps the default."""
    raw = os.getenv(env_var, "")
    targets = frozenset(t.strip() for t in raw.split(",") if t.strip())
    return targets or default


# Load environment variables from .env file (only in development)
if not is_bundled():
    _env_path = Path(__file__).parent / ".env"
    load_dotenv(_env_path)

USER_DATA_DIR = get_user_data_dir()

# Default distractions as Android package names. Package names are what
# the foreground detector reports on Android; desktop detectors report app names.
DEFAULT_BLOCKED_TARGETS = frozenset({
    "com.facebook.katana",
    "com.instagram.android",
    "com.twitter.android",
    "com.google.android.youtube",
})

# Enforcement loop
TICK_INTERVAL_SECONDS = _get_float("FOCUS_TICK_INTERVAL", 1.0, minimum=0.05)
BLOCKED_TARGETS = _get_targets("FOCUS_BLOCKED_TARGETS", DEFAULT_BLOCKED_TARGETS)
DIM_WHEN_UNBLOCKED = _get_bool("FOCUS_DIM_WHEN_UNBLOCKED", False)
PERMISSION_LOST_THRESHOLD = 3  # Consecutive detector failures before PermissionLost

# Session defaults (25:00 pomodoro)
DEFAULT_SESSION_MINUTES = int(_get_float("FOCUS_DEFAULT_MINUTES", 25, minimum=1))

# Dimming layer colour as (alpha, red, green, blue): translucent blue light
OVERLAY_COLOR_ARGB = (50, 0, 0, 255)

# Paths
STATS_FILE = USER_DATA_DIR / "daily_stats.json"
BLOCKLIST_FILE = USER_DATA_DIR / "blocklist.json"
LOCK_FILE = USER_DATA_DIR / ".focuslight_instance.lock"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
