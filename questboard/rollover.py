from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime

from questboard.leveling import break_streak, check_progress, count_streak_day
from questboard.models import GRANULARITIES, DailyQuestState, PlayerProgress
from questboard.periods import days_between, period_for
from questboard.resolver import PlayerContext, QuestCatalogResolver, milestone_quests
from questboard.toggler import all_completed, check_state

logger = logging.getLogger(__name__)

CURRENT = "current"
STALE = "stale"


@dataclass(frozen=True)
class RolloverResult:
    state: DailyQuestState
    progress: PlayerProgress
    regenerated: tuple[str, ...]
    streak_broken: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.regenerated)


def bucket_status(state: DailyQuestState, granularity: str, now: date | datetime) -> str:
    stored = state.period_keys.get(granularity)
    return CURRENT if stored == period_for(granularity, now).key else STALE


def stale_granularities(state: DailyQuestState, now: date | datetime) -> list[str]:
    return [g for g in GRANULARITIES if bucket_status(state, g, now) == STALE]


def _settle_daily_streak(state: DailyQuestState, progress: PlayerProgress, now: date | datetime) -> tuple[PlayerProgress, bool]:
    stored = state.period_keys.get("daily")
    if stored is None:
        return progress, False

    broken = False
    if all_completed(state.daily_quests):
        progress = count_streak_day(progress)
    else:
        progress = break_streak(progress)
        broken = True

    gap = days_between(stored, now)
    if gap is None or gap > 1:
        progress = break_streak(progress)
        broken = True
    return replace(progress, quests_completed=0), broken


class RolloverScheduler:
    """Regenerates quest buckets whose period has ended.

    Running twice for the same ``now`` is a no-op: a bucket is only rebuilt
    when its stored period key differs from the key for ``now``. The special
    bucket is built once; milestone quests the player has since become due for
    are appended to it at each daily rollover.
    """

    def __init__(self, resolver: QuestCatalogResolver) -> None:
        self.resolver = resolver

    def run(
        self,
        state: DailyQuestState,
        progress: PlayerProgress,
        player: PlayerContext,
        now: date | datetime,
    ) -> RolloverResult:
        check_state(state)
        check_progress(progress)

        stale = stale_granularities(state, now)
        if not stale:
            return RolloverResult(state=state, progress=progress, regenerated=())

        new_state = state.copy()
        streak_broken = False
        for granularity in stale:
            period = period_for(granularity, now)
            if granularity == "daily":
                progress, streak_broken = _settle_daily_streak(new_state, progress, now)
                new_state.daily_bonus_granted = False
            quests = self.resolver.resolve(player, granularity, period)
            setattr(new_state, f"{granularity}_quests", quests)
            new_state.period_keys[granularity] = period.key
            logger.debug("Rolled %s quests for %s to %s (%d quests)", granularity, player.user_id, period.key, len(quests))

        if "daily" in stale and "special" not in stale:
            known = {q.id for q in new_state.special_quests}
            new_state.special_quests.extend(q for q in milestone_quests(player) if q.id not in known)

        stamp = now.isoformat() if isinstance(now, datetime) else datetime.combine(now, datetime.min.time()).isoformat()
        new_state.generated_at = stamp
        check_state(new_state)
        return RolloverResult(
            state=new_state,
            progress=progress,
            regenerated=tuple(stale),
            streak_broken=streak_broken,
        )
