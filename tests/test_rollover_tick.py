from __future__ import annotations

import unittest
from datetime import datetime, timezone

from questboard.jobs.rollover_tick import run_rollover_tick
from questboard.repository import Repository, quest_cache_path
from questboard.storage import MemoryDocumentStore, write_json
from questboard.users import UserService

DAY1 = datetime(2026, 6, 15, 0, 5, tzinfo=timezone.utc)
DAY2 = datetime(2026, 6, 16, 0, 5, tzinfo=timezone.utc)


class RolloverTickTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryDocumentStore()
        self.repo = Repository(self.store)
        users = UserService(self.repo)
        users.create_user({"id": "alice"})
        users.create_user({"id": "bob", "stats": {"currentLevel": 4, "xpToNextLevel": 400, "currentXP": 0}})

    def test_tick_rolls_every_user_and_publishes_catalogs(self) -> None:
        result = run_rollover_tick(self.store, DAY1)

        self.assertEqual(result["users"], ["alice", "bob"])
        self.assertEqual(result["failed"], [])
        self.assertEqual(self.repo.load_user("alice").quest_state.period_keys["daily"], "2026-06-15")
        self.assertIsNotNone(self.repo.read_assignment("2026-06-15", "bob"))
        self.assertEqual(result["published"], [quest_cache_path("2026-06-15", 1), quest_cache_path("2026-06-15", 4)])

        published = self.repo.read_daily_catalog("2026-06-15", 4)
        self.assertEqual(published["level"], 4)
        self.assertEqual(len(published["quests"]), 7)

    def test_tick_is_idempotent_per_day(self) -> None:
        run_rollover_tick(self.store, DAY1)
        before = self.repo.load_user("alice").to_dict()

        run_rollover_tick(self.store, DAY1)
        self.assertEqual(self.repo.load_user("alice").to_dict(), before)

        run_rollover_tick(self.store, DAY2)
        self.assertEqual(self.repo.load_user("alice").quest_state.period_keys["daily"], "2026-06-16")

    def test_broken_user_does_not_stop_the_tick(self) -> None:
        write_json(self.store, "app/users/carol.json", {"id": "carol", "stats": {"currentXP": 900}})

        result = run_rollover_tick(self.store, DAY1)

        self.assertEqual(result["failed"], ["carol"])
        self.assertEqual(result["users"], ["alice", "bob"])


if __name__ == "__main__":
    unittest.main()
