from __future__ import annotations

import random
import unittest
from pathlib import Path
from unittest.mock import patch

from questboard import content
from questboard.errors import TemplateError
from questboard.models import GRANULARITIES


class ContentLoadingTests(unittest.TestCase):
    def test_load_json_reads_files_as_utf8(self) -> None:
        with patch.object(Path, "exists", return_value=True), patch.object(
            Path,
            "read_text",
            autospec=True,
            return_value='{"ok": true}',
        ) as mock_read:
            data = content._load_json(Path("dummy.json"), {})

        self.assertEqual(data, {"ok": True})
        _, kwargs = mock_read.call_args
        self.assertEqual(kwargs.get("encoding"), "utf-8-sig")

    def test_default_catalog_is_valid(self) -> None:
        templates = content.load_default_catalog()

        self.assertGreaterEqual(len(templates), 20)
        self.assertEqual(len({t.id for t in templates}), len(templates))
        for granularity in GRANULARITIES:
            self.assertTrue(any(granularity in t.allowed_granularities for t in templates), granularity)

    def test_duplicate_and_malformed_templates_are_rejected(self) -> None:
        entry = {
            "id": "water",
            "title": "Drink water",
            "category": "health",
            "difficulty": 1,
            "baseXP": 10,
            "allowedGranularities": ["daily"],
        }
        with self.assertRaises(TemplateError):
            content.parse_templates([entry, dict(entry)])
        with self.assertRaises(TemplateError):
            content.parse_templates([{**entry, "category": "cooking"}])
        with self.assertRaises(TemplateError):
            content.parse_templates([{**entry, "allowedGranularities": ["hourly"]}])
        with self.assertRaises(TemplateError):
            content.parse_templates([{**entry, "title": "Drink {{ amount"}])
        with self.assertRaises(TemplateError):
            content.parse_templates([{"id": "x"}])

    def test_render_text_fills_and_drops_placeholders(self) -> None:
        self.assertEqual(content.render_text("Read {{pages}} pages", {"pages": "20"}), "Read 20 pages")
        self.assertEqual(content.render_text("Read {{pages}} pages", {}), "Read pages")
        self.assertEqual(content.render_text("Plain title", {"pages": "20"}), "Plain title")

    def test_render_text_tolerates_attributes_of_missing_fields(self) -> None:
        self.assertEqual(content.render_text("Say hi to {{user.name}}", {}), "Say hi to")
        self.assertEqual(content.render_text("Call {{friend.name.first}} today", {}), "Call today")

    def test_render_text_reports_runtime_failures_as_template_errors(self) -> None:
        with self.assertRaises(TemplateError):
            content.render_text("Read {{ pages() }} pages", {})
        with self.assertRaises(TemplateError):
            content.render_text("{{ pages + 1 }}", {"pages": "20"})

    def test_stable_seed_and_weighted_choice(self) -> None:
        self.assertEqual(content.stable_seed("alice", "daily", "2026-01-01"), content.stable_seed("alice", "daily", "2026-01-01"))
        self.assertNotEqual(content.stable_seed("alice", "daily", "2026-01-01"), content.stable_seed("bob", "daily", "2026-01-01"))

        rng = random.Random(1)
        picks = {content.weighted_choice(rng, ["a", "b"], lambda e: 1 if e == "b" else 0) for _ in range(20)}
        self.assertEqual(picks, {"b"})
        self.assertIsNone(content.weighted_choice(rng, [], lambda e: 1))
        self.assertEqual(content.weighted_choice(rng, ["a", "b"], lambda e: 0), "a")


if __name__ == "__main__":
    unittest.main()
