from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable

from questboard.achievements import unlock_achievements
from questboard.models import QuestHistoryEntry, UserConfig
from questboard.repository import Repository
from questboard.resolver import PlayerContext, QuestCatalogResolver
from questboard.rollover import RolloverScheduler
from questboard.toggler import ToggleResult, set_quest_progress, toggle_quest

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def bucket_summary(user: UserConfig) -> dict:
    out = {}
    for granularity, quests in user.quest_state.buckets():
        done = sum(1 for q in quests if q.completed)
        total = len(quests)
        out[granularity] = {
            "completed": done,
            "total": total,
            "percentage": round(done * 100 / total) if total else 0,
        }
    return out


class QuestService:
    """Loads a user, brings their buckets up to date and applies one change.

    Every public method reads the stored document, runs the engine on copies
    and writes the result back in a single ``save_user`` call.
    """

    def __init__(self, repo: Repository, clock: Callable[[], datetime] | None = None) -> None:
        self.repo = repo
        self.clock = clock or _utc_now

    def resolver(self) -> QuestCatalogResolver:
        return QuestCatalogResolver(self.repo.load_templates())

    def _rolled(self, user_id: str, now: datetime) -> tuple[UserConfig, bool]:
        user = self.repo.load_user(user_id)
        result = RolloverScheduler(self.resolver()).run(
            user.quest_state,
            user.stats,
            PlayerContext.for_user(user),
            now,
        )
        if result.changed:
            logger.info("Rolled over %s for %s: %s", ", ".join(result.regenerated), user_id, now.date().isoformat())
            user.quest_state = result.state
            user.stats, _ = unlock_achievements(result.progress)
        return user, result.changed

    def _save(self, user: UserConfig, now: datetime) -> None:
        user.last_updated = now.isoformat()
        self.repo.save_user(user)

    def view(self, user: UserConfig) -> dict:
        return {
            "userId": user.id,
            "questState": user.quest_state.to_dict(),
            "stats": user.stats.to_dict(),
            "summary": bucket_summary(user),
        }

    def load_quests(self, user_id: str, now: datetime | None = None) -> dict:
        now = now or self.clock()
        user, changed = self._rolled(user_id, now)
        if changed:
            self._save(user, now)
            self.repo.write_assignment(now.date(), user)
        return self.view(user)

    def toggle_quest(self, user_id: str, quest_id: str, now: datetime | None = None) -> dict:
        now = now or self.clock()
        user, _ = self._rolled(user_id, now)
        result: ToggleResult = toggle_quest(user.quest_state, user.stats, quest_id, now)
        progress, unlocked = unlock_achievements(result.progress)

        user.quest_state = result.state
        user.stats = progress
        if result.completed:
            user.record_completion(
                QuestHistoryEntry(
                    quest_id=result.quest.id,
                    template_id=result.quest.template_id,
                    completed_at=result.quest.completed_at or now.isoformat(),
                    xp_earned=result.quest.reward,
                )
            )
        else:
            user.forget_completion(result.quest.id, result.quest.template_id)

        self._save(user, now)
        self.repo.write_assignment(now.date(), user)
        if result.leveled_up:
            logger.info("%s reached level %s", user_id, result.new_level)

        out = result.to_dict()
        out["progress"] = progress.to_dict()
        out["achievementsUnlocked"] = unlocked
        out["summary"] = bucket_summary(user)
        return out

    def set_progress(self, user_id: str, quest_id: str, value: int, now: datetime | None = None) -> dict:
        now = now or self.clock()
        user, _ = self._rolled(user_id, now)
        user.quest_state = set_quest_progress(user.quest_state, quest_id, value)
        self._save(user, now)
        return self.view(user)

    def profile(self, user_id: str) -> dict:
        user = self.repo.load_user(user_id)
        return {
            "id": user.id,
            "name": user.name,
            "avatar": user.avatar,
            "preferences": user.preferences.to_dict(),
            "stats": user.stats.to_dict(),
            "questHistory": [h.to_dict() for h in user.quest_history[-50:]],
        }

    def day_snapshot(self, user_id: str, day: date | str) -> dict | None:
        self.repo.load_user(user_id)
        return self.repo.read_assignment(day, user_id)
