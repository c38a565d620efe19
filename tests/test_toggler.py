from __future__ import annotations

import random
import unittest
from datetime import datetime, timezone

from questboard.errors import InconsistentStateError, QuestNotFoundError
from questboard.leveling import DAILY_COMPLETION_BONUS, check_progress, xp_for_level, xp_to_next_level
from questboard.models import DailyQuestState, PlayerProgress, QuestInstance
from questboard.toggler import set_quest_progress, toggle_quest

NOW = datetime(2026, 6, 15, 9, 30, tzinfo=timezone.utc)


def quest(quest_id: str, xp: int = 10, completed: bool = False, bonus_xp: int | None = None, granularity: str = "daily") -> QuestInstance:
    return QuestInstance(
        id=quest_id,
        template_id=quest_id,
        title=quest_id,
        category="health",
        granularity=granularity,
        xp=xp,
        difficulty=1,
        completed=completed,
        progress=100 if completed else 0,
        bonus_xp=bonus_xp,
    )


class ToggleTests(unittest.TestCase):
    def test_crossing_threshold_reports_level_up(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a", xp=20), quest("b")])
        progress = PlayerProgress(current_xp=90, total_xp=90)

        result = toggle_quest(state, progress, "a", NOW)

        self.assertTrue(result.leveled_up)
        self.assertEqual(result.new_level, 2)
        self.assertEqual(result.progress.current_xp, 10)
        self.assertEqual(result.progress.xp_to_next_level, 200)
        self.assertEqual(result.xp_gained, 20)
        self.assertTrue(result.quest.completed)
        self.assertEqual(result.quest.progress, 100)
        self.assertEqual(result.quest.completed_at, NOW.isoformat())

    def test_completing_last_daily_grants_bonus_once(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a", completed=True), quest("b", completed=True), quest("c")])
        progress = PlayerProgress(current_level=2, xp_to_next_level=200, total_xp=100, quests_completed=2)

        result = toggle_quest(state, progress, "c", NOW)

        self.assertEqual(result.xp_gained, 110)
        self.assertEqual(result.bonus_xp, 100)
        self.assertEqual(result.progress.current_xp, 110)
        self.assertEqual(result.progress.total_xp, 210)
        self.assertEqual(result.progress.quests_completed, 3)
        self.assertEqual(result.progress.current_streak, 0)
        self.assertTrue(result.state.daily_bonus_granted)
        self.assertFalse(state.daily_bonus_granted)
        self.assertFalse(state.daily_quests[2].completed)

    def test_toggle_on_then_off_restores_progress(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a", xp=60, bonus_xp=12), quest("b")])
        progress = PlayerProgress(current_xp=50, total_xp=50, current_streak=2, longest_streak=4)

        on = toggle_quest(state, progress, "a", NOW)
        self.assertEqual(on.xp_gained, 72)
        self.assertEqual(on.progress.current_level, 2)

        off = toggle_quest(on.state, on.progress, "a", NOW)
        self.assertEqual(off.progress, progress)
        self.assertFalse(off.quest.completed)
        self.assertIsNone(off.quest.completed_at)
        self.assertEqual(off.quest.progress, 0)
        self.assertEqual(off.xp_gained, -72)

    def test_undo_after_bonus_keeps_the_bonus(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a")])
        progress = PlayerProgress()

        on = toggle_quest(state, progress, "a", NOW)
        self.assertEqual(on.progress.current_level, 2)
        self.assertEqual(on.progress.current_xp, 10)
        self.assertEqual(on.progress.total_xp, 110)

        off = toggle_quest(on.state, on.progress, "a", NOW)
        self.assertNotEqual(off.progress, progress)
        self.assertEqual(off.progress.current_level, 2)
        self.assertEqual(off.progress.current_xp, 0)
        self.assertEqual(off.progress.total_xp, 100)
        self.assertEqual(off.progress, PlayerProgress(current_level=2, xp_to_next_level=200, total_xp=100))
        self.assertTrue(off.state.daily_bonus_granted)

        again = toggle_quest(off.state, off.progress, "a", NOW)
        self.assertEqual(again.bonus_xp, 0)
        self.assertEqual(again.progress.total_xp, 110)
        self.assertEqual(again.progress.current_streak, 0)

    def test_last_daily_round_trip_only_keeps_bonus_xp(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a", completed=True), quest("b", xp=30)])
        progress = PlayerProgress(current_level=3, xp_to_next_level=300, current_xp=20, total_xp=320, current_streak=4, longest_streak=6)

        on = toggle_quest(state, progress, "b", NOW)
        off = toggle_quest(on.state, on.progress, "b", NOW)

        self.assertEqual(on.bonus_xp, 100)
        self.assertEqual(off.progress, PlayerProgress(
            current_level=3,
            xp_to_next_level=300,
            current_xp=120,
            total_xp=420,
            current_streak=4,
            longest_streak=6,
        ))

    def test_weekly_completion_does_not_grant_daily_bonus(self) -> None:
        state = DailyQuestState(
            daily_quests=[quest("a")],
            weekly_quests=[quest("w", xp=40, granularity="weekly")],
        )

        result = toggle_quest(state, PlayerProgress(), "w", NOW)

        self.assertEqual(result.bonus_xp, 0)
        self.assertEqual(result.progress.current_xp, 40)
        self.assertFalse(result.state.daily_bonus_granted)

    def test_empty_daily_bucket_never_counts_as_complete(self) -> None:
        state = DailyQuestState(weekly_quests=[quest("w", granularity="weekly")])
        result = toggle_quest(state, PlayerProgress(), "w", NOW)
        self.assertFalse(result.state.daily_bonus_granted)

    def test_unknown_quest(self) -> None:
        with self.assertRaises(QuestNotFoundError) as ctx:
            toggle_quest(DailyQuestState(daily_quests=[quest("a")]), PlayerProgress(), "zzz", NOW)
        self.assertEqual(ctx.exception.quest_id, "zzz")

    def test_duplicate_ids_are_rejected(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a"), quest("a")])
        with self.assertRaises(InconsistentStateError):
            toggle_quest(state, PlayerProgress(), "a", NOW)

    def test_broken_progress_is_rejected(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a")])
        with self.assertRaises(InconsistentStateError):
            toggle_quest(state, PlayerProgress(current_xp=150), "a", NOW)


class ToggleSequenceTests(unittest.TestCase):
    def mixed_state(self, rng: random.Random) -> DailyQuestState:
        buckets = {}
        for granularity in ("daily", "weekly", "monthly", "special"):
            buckets[f"{granularity}_quests"] = [
                quest(
                    f"{granularity}_{n}",
                    xp=rng.randint(5, 120),
                    bonus_xp=rng.choice([None, 4, 15]),
                    granularity=granularity,
                )
                for n in range(rng.randint(1, 4))
            ]
        return DailyQuestState(**buckets)

    def test_random_toggles_keep_progress_consistent(self) -> None:
        rng = random.Random(20260615)
        for level in (1, 2, 5, 12):
            state = self.mixed_state(rng)
            start_total = xp_for_level(level) + 7
            progress = PlayerProgress(
                current_level=level,
                xp_to_next_level=xp_to_next_level(level),
                current_xp=7,
                total_xp=start_total,
            )
            ids = [q.id for _, quests in state.buckets() for q in quests]
            earned = 0
            bonus_paid = 0

            for _ in range(150):
                result = toggle_quest(state, progress, rng.choice(ids), NOW)
                state, progress = result.state, result.progress
                earned += result.xp_gained
                bonus_paid += result.bonus_xp

                check_progress(progress, strict_total=True)
                self.assertGreaterEqual(progress.current_level, 1)
                self.assertEqual(progress.total_xp, start_total + earned)
                done = sum(1 for _, quests in state.buckets() for q in quests if q.completed)
                self.assertEqual(progress.total_quests_completed, done)
                self.assertIn(bonus_paid, (0, DAILY_COMPLETION_BONUS))
                self.assertEqual(state.daily_bonus_granted, bonus_paid == DAILY_COMPLETION_BONUS)
                self.assertEqual((progress.current_streak, progress.longest_streak), (0, 0))


class ProgressTests(unittest.TestCase):
    def test_partial_progress_is_clamped(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a")])

        self.assertEqual(set_quest_progress(state, "a", 40).daily_quests[0].progress, 40)
        self.assertEqual(set_quest_progress(state, "a", 250).daily_quests[0].progress, 100)
        self.assertEqual(set_quest_progress(state, "a", -5).daily_quests[0].progress, 0)
        self.assertEqual(state.daily_quests[0].progress, 0)

    def test_completed_quest_progress_is_left_alone(self) -> None:
        state = DailyQuestState(daily_quests=[quest("a", completed=True)])
        self.assertEqual(set_quest_progress(state, "a", 10).daily_quests[0].progress, 100)


if __name__ == "__main__":
    unittest.main()
