from __future__ import annotations

from dataclasses import replace
from typing import Callable

from questboard.models import PlayerProgress

ACHIEVEMENTS: dict[str, tuple[str, Callable[[PlayerProgress], bool]]] = {
    "first_quest": ("Complete your first quest", lambda p: p.total_quests_completed >= 1),
    "quests_10": ("Complete 10 quests", lambda p: p.total_quests_completed >= 10),
    "quests_50": ("Complete 50 quests", lambda p: p.total_quests_completed >= 50),
    "quests_100": ("Complete 100 quests", lambda p: p.total_quests_completed >= 100),
    "level_5": ("Reach level 5", lambda p: p.current_level >= 5),
    "level_10": ("Reach level 10", lambda p: p.current_level >= 10),
    "level_20": ("Reach level 20", lambda p: p.current_level >= 20),
    "streak_3": ("Finish every daily quest 3 days in a row", lambda p: p.longest_streak >= 3),
    "streak_7": ("Finish every daily quest 7 days in a row", lambda p: p.longest_streak >= 7),
    "streak_30": ("Finish every daily quest 30 days in a row", lambda p: p.longest_streak >= 30),
}


def unlock_achievements(progress: PlayerProgress) -> tuple[PlayerProgress, list[str]]:
    """Add every newly earned badge. Badges are never taken away."""
    newly = [key for key, (_, rule) in ACHIEVEMENTS.items() if key not in progress.achievements and rule(progress)]
    if not newly:
        return progress, []
    return replace(progress, achievements=progress.achievements | frozenset(newly)), newly


def describe(achievement_id: str) -> str:
    entry = ACHIEVEMENTS.get(achievement_id)
    return entry[0] if entry else achievement_id
