from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone

from questboard.errors import InconsistentStateError, QuestNotFoundError
from questboard.leveling import DAILY_COMPLETION_BONUS, apply_xp, check_progress
from questboard.models import DailyQuestState, PlayerProgress, QuestInstance


@dataclass(frozen=True)
class ToggleResult:
    state: DailyQuestState
    progress: PlayerProgress
    quest: QuestInstance
    xp_gained: int
    bonus_xp: int
    leveled_up: bool
    new_level: int | None
    levels_gained: int

    @property
    def completed(self) -> bool:
        return self.quest.completed

    def to_dict(self) -> dict:
        return {
            "quest": self.quest.to_dict(),
            "completed": self.completed,
            "xpGained": self.xp_gained,
            "bonusXP": self.bonus_xp,
            "leveledUp": self.leveled_up,
            "newLevel": self.new_level,
            "progress": self.progress.to_dict(),
            "questState": self.state.to_dict(),
        }


def all_completed(quests: list[QuestInstance]) -> bool:
    return bool(quests) and all(q.completed for q in quests)


def check_state(state: DailyQuestState) -> None:
    for granularity, quests in state.buckets():
        ids = [q.id for q in quests]
        if len(ids) != len(set(ids)):
            dupes = sorted({i for i in ids if ids.count(i) > 1})
            raise InconsistentStateError(f"duplicate {granularity} quest ids: {', '.join(dupes)}")
        for quest in quests:
            if quest.xp < 0 or (quest.bonus_xp or 0) < 0:
                raise InconsistentStateError(f"negative reward on quest {quest.id}")


def find_quest(state: DailyQuestState, quest_id: str) -> tuple[str, int]:
    for granularity, quests in state.buckets():
        for index, quest in enumerate(quests):
            if quest.id == quest_id:
                return granularity, index
    raise QuestNotFoundError(quest_id)


def toggle_quest(
    state: DailyQuestState,
    progress: PlayerProgress,
    quest_id: str,
    now: datetime | None = None,
) -> ToggleResult:
    """Flip one quest's completion and compute the resulting progress.

    Neither ``state`` nor ``progress`` is mutated; the caller persists the
    returned copies, so a failure leaves nothing half-applied. Completing the
    last daily quest grants :data:`DAILY_COMPLETION_BONUS` once per day.
    Un-completing a quest afterwards takes back the quest's own XP but not the
    bonus. Streaks are left to the rollover.
    """
    check_state(state)
    check_progress(progress)

    granularity, index = find_quest(state, quest_id)
    new_state = state.copy()
    bucket = new_state.bucket(granularity)
    quest = bucket[index]

    if quest.completed:
        quest = replace(quest, completed=False, completed_at=None, progress=0)
        xp_gained = -quest.reward
        progress = replace(
            progress,
            quests_completed=max(0, progress.quests_completed - 1),
            total_quests_completed=max(0, progress.total_quests_completed - 1),
        )
    else:
        stamp = (now or datetime.now(timezone.utc)).isoformat()
        quest = replace(quest, completed=True, completed_at=stamp, progress=100)
        xp_gained = quest.reward
        progress = replace(
            progress,
            quests_completed=progress.quests_completed + 1,
            total_quests_completed=progress.total_quests_completed + 1,
        )
    bucket[index] = quest

    bonus = 0
    if quest.completed and not new_state.daily_bonus_granted and all_completed(new_state.daily_quests):
        bonus = DAILY_COMPLETION_BONUS
        new_state.daily_bonus_granted = True

    change = apply_xp(progress, xp_gained + bonus)
    check_progress(change.progress)

    return ToggleResult(
        state=new_state,
        progress=change.progress,
        quest=quest,
        xp_gained=change.xp_gained,
        bonus_xp=bonus,
        leveled_up=change.leveled_up,
        new_level=change.new_level,
        levels_gained=change.levels_gained,
    )


def set_quest_progress(state: DailyQuestState, quest_id: str, value: int) -> DailyQuestState:
    """Record partial progress (0-100) on a quest without touching XP."""
    granularity, index = find_quest(state, quest_id)
    new_state = state.copy()
    bucket = new_state.bucket(granularity)
    quest = bucket[index]
    if quest.completed:
        return new_state
    bucket[index] = replace(quest, progress=max(0, min(100, int(value))))
    return new_state
