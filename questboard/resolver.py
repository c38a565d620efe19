"""Selection of the active quest instances for a user and period.

Templates are filtered by granularity, level, difficulty, prerequisites,
category preferences, season and repeat limits, then sampled by weight with a
random generator seeded from ``(user, granularity, period)``. The same inputs
always produce the same instances, so reloading a day never reshuffles it.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

from questboard.content import render_text, stable_seed, weighted_choice
from questboard.errors import InvalidGranularityError
from questboard.leveling import level_tier
from questboard.models import GRANULARITIES, QuestInstance, QuestTemplate, QuestVariation, UserConfig, UserPreferences
from questboard.periods import Period, period_for

logger = logging.getLogger(__name__)

TIER_QUOTAS = {
    "beginner": {"daily": 5, "weekly": 3, "monthly": 2, "special": 1},
    "intermediate": {"daily": 7, "weekly": 5, "monthly": 3, "special": 1},
    "advanced": {"daily": 10, "weekly": 7, "monthly": 5, "special": 2},
    "expert": {"daily": 12, "weekly": 10, "monthly": 7, "special": 3},
}
PREFERRED_CATEGORY_BOOST = 1.5
NEW_CATEGORY_BOOST = 2.0
BONUS_XP_THRESHOLD = 50
BONUS_XP_RATE = 0.2
# days a completed template sits out before it is drawn again
RECENT_DAYS = {"daily": 3, "weekly": 14, "monthly": 30}
LEVEL_MILESTONE_STEP = 5
QUEST_MILESTONE_STEP = 50


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def max_difficulty_for_level(level: int) -> int:
    return min(5, math.ceil(max(1, level) / 3))


def _completed_day(stamp: str) -> date | None:
    try:
        return date.fromisoformat(stamp[:10])
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class PlayerContext:
    """What the resolver needs to know about a user."""

    user_id: str
    level: int = 1
    preferences: UserPreferences = field(default_factory=UserPreferences)
    completion_counts: Mapping[str, int] = field(default_factory=dict)
    assigned_template_ids: tuple[str, ...] = ()
    last_completed: Mapping[str, str] = field(default_factory=dict)
    total_quests_completed: int = 0

    @classmethod
    def for_user(cls, user: UserConfig) -> PlayerContext:
        return cls(
            user_id=user.id,
            level=user.stats.current_level,
            preferences=user.preferences,
            completion_counts=user.completion_counts(),
            assigned_template_ids=tuple(user.daily_quests),
            last_completed=user.last_completions(),
            total_quests_completed=user.stats.total_quests_completed,
        )


def quota_for(level: int, granularity: str, preferences: UserPreferences | None = None) -> int:
    if granularity not in GRANULARITIES:
        raise InvalidGranularityError(granularity)
    quota = TIER_QUOTAS[level_tier(level)][granularity]
    if granularity == "daily" and preferences is not None and preferences.quest_count is not None:
        quota = min(quota, max(0, preferences.quest_count))
    return quota


def select_variation(template: QuestTemplate, tier: str) -> QuestVariation | None:
    if not template.variations:
        return None
    for variation in template.variations:
        if tier in variation.conditions:
            return variation
    return template.variations[0]


def milestone_quests(player: PlayerContext) -> list[QuestInstance]:
    """Special quests offered one step before a level or quest-count milestone.

    A player at level 4, 9, 14... is offered "Reach level 5, 10, 15..." and a
    player with 49, 99... completed quests is offered the next multiple of 50.
    Ids depend only on the milestone, so each one is offered at most once.
    """
    quests = []
    if player.level % LEVEL_MILESTONE_STEP == LEVEL_MILESTONE_STEP - 1:
        target = player.level + 1
        quests.append(
            QuestInstance(
                id=f"milestone_level_{target}",
                template_id="milestone_level",
                title=f"Reach level {target}",
                description="You are one level away from a milestone. Keep going!",
                category="personal",
                granularity="special",
                xp=150,
                difficulty=3,
                time_limit=7 * 24,
                icon="🏆",
            )
        )
    total = player.total_quests_completed
    if total % QUEST_MILESTONE_STEP == QUEST_MILESTONE_STEP - 1:
        target = total + 1
        quests.append(
            QuestInstance(
                id=f"milestone_quests_{target}",
                template_id="milestone_quests",
                title=f"Complete {target} quests",
                description=f"One more quest to reach {target} completed quests!",
                category="personal",
                granularity="special",
                xp=100,
                difficulty=2,
                time_limit=3 * 24,
                icon="🎯",
            )
        )
    return quests


class QuestCatalogResolver:
    def __init__(self, templates: Iterable[QuestTemplate]) -> None:
        self.templates = sorted(templates, key=lambda t: t.id)
        self._by_id = {t.id: t for t in self.templates}

    def template(self, template_id: str) -> QuestTemplate | None:
        return self._by_id.get(template_id)

    def eligible_templates(self, player: PlayerContext, granularity: str, period: Period) -> list[QuestTemplate]:
        prefs = player.preferences
        excluded = set(prefs.excluded_categories)
        preferred_only = set(prefs.categories) if not prefs.allow_common_quests else set()
        completed = player.completion_counts
        month = str(period.start.month)
        # special quests are gated by levelRequirement alone
        max_difficulty = max_difficulty_for_level(player.level) if granularity != "special" else 5

        eligible = []
        for template in self.templates:
            if granularity not in template.allowed_granularities:
                continue
            if (template.level_requirement or 1) > player.level:
                continue
            if template.difficulty > max_difficulty:
                continue
            if any(completed.get(pre, 0) < 1 for pre in template.prerequisites):
                continue
            if template.category in excluded:
                continue
            if preferred_only and template.category not in preferred_only:
                continue
            if template.seasonal_availability and month not in template.seasonal_availability:
                continue
            if template.max_completions is not None and completed.get(template.id, 0) >= template.max_completions:
                continue
            eligible.append(template)
        return eligible

    def recent_template_ids(self, player: PlayerContext, granularity: str, period: Period) -> set[str]:
        """Templates completed within :data:`RECENT_DAYS` before ``period`` starts."""
        days = RECENT_DAYS.get(granularity)
        if not days:
            return set()
        cutoff = period.start - timedelta(days=days)
        recent = set()
        for template_id, stamp in player.last_completed.items():
            day = _completed_day(stamp)
            if day is not None and day >= cutoff:
                recent.add(template_id)
        return recent

    def _weight(self, player: PlayerContext, used_categories: set[str]):
        preferred = set(player.preferences.categories)

        def weight(template: QuestTemplate) -> float:
            value = float(template.weight)
            if template.category not in used_categories:
                value *= NEW_CATEGORY_BOOST
            if template.category in preferred:
                value *= PREFERRED_CATEGORY_BOOST
            return value

        return weight

    def instantiate(self, template: QuestTemplate, granularity: str, period: Period, player: PlayerContext) -> QuestInstance:
        variation = select_variation(template, level_tier(player.level))
        modifier = variation.xp_modifier if variation and variation.xp_modifier is not None else 1.0
        difficulty_delta = variation.difficulty_modifier if variation and variation.difficulty_modifier else 0
        values = {**template.placeholder_defaults, **player.preferences.personalization}
        title = variation.title if variation and variation.title else template.title
        description = variation.description if variation and variation.description else template.description

        return QuestInstance(
            id=f"{template.id}_{granularity}_{period.key}",
            template_id=template.id,
            title=render_text(title, values),
            description=render_text(description, values) if description else None,
            category=template.category,
            granularity=granularity,
            xp=max(1, _round_half_up(template.base_xp * modifier)),
            difficulty=max(1, min(5, template.difficulty + difficulty_delta)),
            completed=False,
            progress=0,
            bonus_xp=_round_half_up(template.base_xp * BONUS_XP_RATE) if template.base_xp > BONUS_XP_THRESHOLD else None,
            variation_id=variation.id if variation else None,
            time_limit=template.time_limit,
            icon=template.icon,
        )

    def _assigned(self, player: PlayerContext, period: Period) -> list[QuestInstance]:
        instances = []
        seen = set()
        for template_id in player.assigned_template_ids:
            if template_id in seen:
                continue
            template = self._by_id.get(template_id)
            if template is None:
                logger.warning("Assigned template %s for %s is not in the catalog", template_id, player.user_id)
                continue
            seen.add(template_id)
            instances.append(self.instantiate(template, "daily", period, player))
        return instances

    def resolve(self, player: PlayerContext, granularity: str, when: Period | date | datetime | str) -> list[QuestInstance]:
        """Return the active instances for ``player`` in one granularity bucket.

        ``when`` may be a :class:`Period` or any date inside it (ISO strings are
        accepted). An empty list is a valid result when nothing is eligible.

        Templates completed recently are only drawn once the rest of the pool
        is used up. Each draw doubles the weight of categories not picked yet
        in this bucket. The special bucket also carries any milestone quests.
        """
        if granularity not in GRANULARITIES:
            raise InvalidGranularityError(granularity)
        if isinstance(when, str):
            when = date.fromisoformat(when)
        period = when if isinstance(when, Period) else period_for(granularity, when)

        if granularity == "daily" and player.assigned_template_ids:
            assigned = self._assigned(player, period)
            if assigned:
                return assigned

        eligible = self.eligible_templates(player, granularity, period)
        recent = self.recent_template_ids(player, granularity, period)
        fresh = [t for t in eligible if t.id not in recent]
        reserve = [t for t in eligible if t.id in recent]
        quota = quota_for(player.level, granularity, player.preferences)
        rng = random.Random(stable_seed(player.user_id, granularity, period.key))
        used: set[str] = set()
        weight = self._weight(player, used)

        chosen = []
        for pool in (fresh, reserve):
            while pool and len(chosen) < quota:
                template = weighted_choice(rng, pool, weight)
                pool.remove(template)
                used.add(template.category)
                chosen.append(self.instantiate(template, granularity, period, player))

        if granularity == "special":
            chosen.extend(milestone_quests(player))

        if not chosen:
            logger.info("No eligible %s quests for %s in %s", granularity, player.user_id, period.key)
        return chosen
