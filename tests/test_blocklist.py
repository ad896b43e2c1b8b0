"""Tests for screen/blocklist.py."""

import json
import sys
import tempfile
import threading
import unittest
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from screen.blocklist import PRESET_CATEGORIES, BlockList, BlocklistManager


class TestBlockList(unittest.TestCase):
    """Membership semantics."""

    def setUp(self):
        self.blocklist = BlockList(config.DEFAULT_BLOCKED_TARGETS)

    def test_default_set(self):
        """Instagram is blocked by default; a calculator is not."""
        self.assertTrue(self.blocklist.is_blocked("com.instagram.android"))
        self.assertFalse(self.blocklist.is_blocked("com.example.calculator"))
        for target in ("com.facebook.katana", "com.twitter.android", "com.google.android.youtube"):
            self.assertTrue(self.blocklist.is_blocked(target), target)

    def test_is_blocked_is_pure(self):
        """Same set and same input always give the same answer."""
        answers = {self.blocklist.is_blocked("com.instagram.android") for _ in range(1000)}
        self.assertEqual(answers, {True})
        answers = {self.blocklist.is_blocked("com.example.calculator") for _ in range(1000)}
        self.assertEqual(answers, {False})
        self.assertEqual(len(self.blocklist), 4)

    def test_exact_match_only(self):
        """Prefixes or substrings of a blocked id are not blocked."""
        self.assertFalse(self.blocklist.is_blocked("com.instagram"))
        self.assertFalse(self.blocklist.is_blocked("com.instagram.android.lite"))

    def test_normalized_matching(self):
        """Whitespace and case differences still match."""
        blocklist = BlockList(["Discord"])
        self.assertTrue(blocklist.is_blocked("discord"))
        self.assertTrue(blocklist.is_blocked("  DISCORD "))
        self.assertIn("Discord", blocklist)
        self.assertEqual(blocklist.targets, frozenset({"Discord"}))

    def test_package_names_are_case_sensitive(self):
        """Android package names only match with their exact casing."""
        self.assertTrue(self.blocklist.is_blocked(" com.instagram.android "))
        self.assertFalse(self.blocklist.is_blocked("com.Instagram.android"))
        self.assertFalse(self.blocklist.is_blocked("COM.INSTAGRAM.ANDROID"))

    def test_empty_target_not_blocked(self):
        """None or empty identifiers are never blocked."""
        self.assertFalse(self.blocklist.is_blocked(""))
        self.assertFalse(self.blocklist.is_blocked(None))
        self.assertNotIn(42, self.blocklist)

    def test_configure_replaces(self):
        """configure() replaces the set instead of merging."""
        self.blocklist.configure({"Steam"})
        self.assertTrue(self.blocklist.is_blocked("Steam"))
        self.assertFalse(self.blocklist.is_blocked("com.instagram.android"))
        self.assertEqual(len(self.blocklist), 1)

    def test_configure_rejects_non_strings(self):
        """Non-string targets are a configuration error."""
        with self.assertRaises(TypeError):
            self.blocklist.configure(["Steam", 7])
        # Failed configure leaves the previous set in place
        self.assertTrue(self.blocklist.is_blocked("com.instagram.android"))

    def test_from_categories(self):
        """Categories expand to their preset targets plus extras."""
        blocklist = BlockList.from_categories(["gaming", "not_a_category"], ["MyGame"])
        self.assertTrue(blocklist.is_blocked("Steam"))
        self.assertTrue(blocklist.is_blocked("MyGame"))
        self.assertFalse(blocklist.is_blocked("com.instagram.android"))

    def test_concurrent_reads_during_reconfigure(self):
        """Readers never see an error or a partial set while configure() swaps sets."""
        errors = []
        stop = threading.Event()

        def reader():
            try:
                while not stop.is_set():
                    result = self.blocklist.is_blocked("com.instagram.android")
                    if result not in (True, False):
                        errors.append(result)
            except Exception as e:
                errors.append(e)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for i in range(200):
            if i % 2:
                self.blocklist.configure(config.DEFAULT_BLOCKED_TARGETS)
            else:
                self.blocklist.configure({"Steam"})
        stop.set()
        for t in readers:
            t.join()
        self.assertEqual(errors, [])


class TestBlocklistManager(unittest.TestCase):
    """Settings persistence."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "blocklist.json"
        self.manager = BlocklistManager(self.path)

    def test_defaults_when_missing(self):
        """Without a file, default categories and config targets apply."""
        blocklist = self.manager.load()
        self.assertTrue(blocklist.is_blocked("com.instagram.android"))
        default_categories = [c for c, v in PRESET_CATEGORIES.items() if v["default_enabled"]]
        for cat_id in default_categories:
            for target in PRESET_CATEGORIES[cat_id]["targets"]:
                self.assertTrue(blocklist.is_blocked(target), target)
        self.assertFalse(blocklist.is_blocked("Steam"))

    def test_save_and_load(self):
        """Saved settings are what load() builds from."""
        self.manager.save(["gaming"], ["Solitaire", "  "])
        with open(self.path) as f:
            raw = json.load(f)
        self.assertEqual(raw, {"enabled_categories": ["gaming"], "custom_targets": ["Solitaire"]})

        blocklist = self.manager.load()
        self.assertTrue(blocklist.is_blocked("Steam"))
        self.assertTrue(blocklist.is_blocked("Solitaire"))
        self.assertFalse(blocklist.is_blocked("com.instagram.android"))

    def test_unknown_category_not_saved(self):
        """Saving an unknown category raises and writes nothing."""
        with self.assertRaises(ValueError):
            self.manager.save(["gaming", "knitting"], [])
        self.assertFalse(self.path.exists())

    def test_invalid_file_falls_back_to_defaults(self):
        """A malformed settings file loads the defaults."""
        self.path.write_text("[1, 2")
        blocklist = self.manager.load()
        self.assertTrue(blocklist.is_blocked("com.instagram.android"))


if __name__ == "__main__":
    unittest.main()
