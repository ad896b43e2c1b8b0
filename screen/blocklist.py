"""
Blocklist of distracting targets for focus mode.

A target is an application identifier as reported by the foreground
detector: an Android package name ("com.instagram.android") or a desktop
application name ("Discord"). Matching is exact on the normalized
identifier, so "com.example.calculator" never matches by accident. Dotted
identifiers such as package names keep their case; plain app names match
case-insensitively.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Any

import config

logger = logging.getLogger(__name__)


# Preset blocklist categories
PRESET_CATEGORIES = {
    "social_media": {
        "name": "Social Media",
        "description": "Social networking apps",
        "targets": [
            "com.facebook.katana",
            "com.facebook.orca",  # Messenger
            "com.instagram.android",
            "com.twitter.android",
            "com.zhiliaoapp.musically",  # TikTok
            "com.reddit.frontpage",
            "com.snapchat.android",
            "com.pinterest",
            "Facebook",
            "Instagram",
            "Twitter",
            "TikTok",
            "Reddit",
        ],
        "default_enabled": True,
    },
    "video_streaming": {
        "name": "Video Streaming",
        "description": "Video and streaming apps",
        "targets": [
            "com.google.android.youtube",
            "com.netflix.mediaclient",
            "tv.twitch.android.app",
            "com.disney.disneyplus",
            "Netflix",
            "Disney+",
            "Prime Video",
            "Twitch",
        ],
        "default_enabled": True,
    },
    "gaming": {
        "name": "Gaming",
        "description": "Game stores and launchers",
        "targets": [
            "com.roblox.client",
            "com.discord",
            "Steam",
            "Discord",
            "Epic Games Launcher",
            "Roblox",
            "Minecraft",
            "Battle.net",
        ],
        "default_enabled": False,
    },
    "messaging": {
        "name": "Messaging",
        "description": "Chat apps (some may be productive)",
        "targets": [
            "com.whatsapp",
            "org.telegram.messenger",
            "org.thoughtcrime.securesms",  # Signal
            "WhatsApp",
            "Telegram",
            "Signal",
        ],
        "default_enabled": False,  # Off by default - may be productive
    },
}


# Dotted identifiers ("com.instagram.android", "Battle.net") are case-sensitive
_DOTTED_ID = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$")


def normalize_target(target: str) -> str:
    """
    Canonical form used for membership tests.

    Dotted identifiers are only stripped; plain app names are also case-folded.
    """
    stripped = target.strip()
    if _DOTTED_ID.match(stripped):
        return stripped
    return stripped.casefold()


class BlockList:
    """
    Immutable-per-session set of blocked target identifiers.

    Reads need no lock: is_blocked() looks up a frozenset that configure()
    replaces wholesale (a single reference assignment), so a reader sees
    either the old set or the new one, never a mix.
    """

    def __init__(self, targets: Optional[Iterable[str]] = None):
        """
        Args:
            targets: Target identifiers to block. Defaults to config.BLOCKED_TARGETS.
        """
        self._targets: FrozenSet[str] = frozenset()
        self._display: FrozenSet[str] = frozenset()
        self.configure(config.BLOCKED_TARGETS if targets is None else targets)

    @classmethod
    def from_categories(
        cls,
        categories: Iterable[str],
        extra_targets: Iterable[str] = ()
    ) -> "BlockList":
        """
        Build a blocklist from preset category IDs plus custom targets.

        Unknown category IDs are logged and skipped.
        """
        targets: List[str] = []
        for cat_id in categories:
            category = PRESET_CATEGORIES.get(cat_id)
            if category is None:
                logger.warning(f"Unknown blocklist category ignored: {cat_id}")
                continue
            targets.extend(category["targets"])
        targets.extend(extra_targets)
        return cls(targets)

    def configure(self, targets: Iterable[str]) -> None:
        """
        Replace (not merge) the blocked set.

        Only call at startup or on config reload; EnforcementLoop.reconfigure()
        does this between ticks.

        Raises:
            TypeError: If a target is not a string.
        """
        display: Set[str] = set()
        for target in targets:
            if not isinstance(target, str):
                raise TypeError(f"Blocked target must be a string, got {type(target).__name__}")
            if target.strip():
                display.add(target.strip())
        self._display = frozenset(display)
        self._targets = frozenset(normalize_target(t) for t in display)
        logger.info(f"Blocklist configured with {len(self._targets)} target(s)")

    def is_blocked(self, target_id: Optional[str]) -> bool:
        """True if target_id is in the configured set. Pure, no side effects."""
        if not target_id:
            return False
        return normalize_target(target_id) in self._targets

    @property
    def targets(self) -> FrozenSet[str]:
        """Configured targets as given (stripped, original casing)."""
        return self._display

    def __contains__(self, target_id: object) -> bool:
        return isinstance(target_id, str) and self.is_blocked(target_id)

    def __len__(self) -> int:
        return len(self._targets)

    def __repr__(self) -> str:
        return f"BlockList({len(self._targets)} targets)"


class BlocklistManager:
    """
    Manages persistence and loading of blocklist settings.

    Settings file:
        {"enabled_categories": ["social_media"], "custom_targets": ["Steam"]}
    """

    def __init__(self, settings_path: Path):
        """
        Initialize the blocklist manager.

        Args:
            settings_path: Path to the JSON settings file
        """
        self.settings_path = Path(settings_path)

    @staticmethod
    def default_settings() -> Dict[str, Any]:
        """Settings used when no file exists: default categories plus config targets."""
        return {
            "enabled_categories": sorted(
                cat_id for cat_id, cat in PRESET_CATEGORIES.items()
                if cat.get("default_enabled", False)
            ),
            "custom_targets": sorted(config.BLOCKED_TARGETS),
        }

    def load_settings(self) -> Dict[str, Any]:
        """Read the settings file, falling back to defaults when missing or invalid."""
        if not self.settings_path.exists():
            logger.info("No blocklist settings file, using defaults")
            return self.default_settings()
        try:
            with open(self.settings_path, "r") as f:
                data = json.load(f)
            return {
                "enabled_categories": list(data.get("enabled_categories", [])),
                "custom_targets": [t for t in data.get("custom_targets", []) if isinstance(t, str)],
            }
        except (json.JSONDecodeError, AttributeError, TypeError, OSError) as e:
            logger.warning(f"Invalid blocklist file, using defaults: {e}")
            return self.default_settings()

    def load(self) -> BlockList:
        """
        Load the blocklist from file, or build the default if it does not exist.

        Returns:
            BlockList built from the enabled categories and custom targets
        """
        settings = self.load_settings()
        blocklist = BlockList.from_categories(
            settings["enabled_categories"], settings["custom_targets"]
        )
        logger.info(f"Loaded blocklist from {self.settings_path}")
        return blocklist

    def save(self, enabled_categories: Iterable[str], custom_targets: Iterable[str]) -> None:
        """
        Save blocklist settings atomically (temp file, then rename).

        Raises:
            ValueError: If a category ID is unknown.
            OSError: If the file could not be written.
        """
        categories = sorted(set(enabled_categories))
        unknown = [c for c in categories if c not in PRESET_CATEGORIES]
        if unknown:
            raise ValueError(f"Unknown blocklist categories: {', '.join(unknown)}")

        payload = {
            "enabled_categories": categories,
            "custom_targets": sorted({t.strip() for t in custom_targets if t.strip()}),
        }

        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            suffix='.tmp',
            prefix='blocklist_',
            dir=self.settings_path.parent
        )
        try:
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(payload, f, indent=2)
            os.replace(temp_path, self.settings_path)
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
        logger.info(f"Saved blocklist settings to {self.settings_path}")
