from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from questboard.errors import InvalidGranularityError

GRANULARITIES = ("daily", "weekly", "monthly", "special")
CATEGORIES = ("health", "fitness", "work", "personal", "social", "learning", "creativity", "mindfulness")

BUCKET_KEYS = {
    "daily": "dailyQuests",
    "weekly": "weeklyQuests",
    "monthly": "monthlyQuests",
    "special": "specialQuests",
}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class QuestVariation:
    id: str
    title: str
    description: str | None = None
    xp_modifier: float | None = None
    difficulty_modifier: int | None = None
    conditions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> QuestVariation:
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title", "")),
            description=raw.get("description"),
            xp_modifier=raw.get("xpModifier"),
            difficulty_modifier=raw.get("difficultyModifier"),
            conditions=tuple(raw.get("conditions") or ()),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.description is not None:
            out["description"] = self.description
        if self.xp_modifier is not None:
            out["xpModifier"] = self.xp_modifier
        if self.difficulty_modifier is not None:
            out["difficultyModifier"] = self.difficulty_modifier
        if self.conditions:
            out["conditions"] = list(self.conditions)
        return out


@dataclass(frozen=True)
class QuestTemplate:
    """Catalog entry describing a quest family before it is resolved for a user."""

    id: str
    title: str
    category: str
    difficulty: int
    base_xp: int
    allowed_granularities: tuple[str, ...]
    weight: float = 1
    description: str | None = None
    icon: str | None = None
    tags: tuple[str, ...] = ()
    variations: tuple[QuestVariation, ...] = ()
    level_requirement: int | None = None
    prerequisites: tuple[str, ...] = ()
    max_completions: int | None = None
    time_limit: int | None = None
    seasonal_availability: tuple[str, ...] = ()
    personalized_fields: tuple[str, ...] = ()
    placeholder_defaults: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def from_dict(cls, raw: dict) -> QuestTemplate:
        return cls(
            id=str(raw["id"]),
            title=str(raw["title"]),
            category=str(raw["category"]),
            difficulty=int(raw["difficulty"]),
            base_xp=int(raw["baseXP"]),
            allowed_granularities=tuple(raw.get("allowedGranularities") or ()),
            weight=raw.get("weight", 1),
            description=raw.get("description"),
            icon=raw.get("icon"),
            tags=tuple(raw.get("tags") or ()),
            variations=tuple(QuestVariation.from_dict(v) for v in raw.get("variations") or ()),
            level_requirement=raw.get("levelRequirement"),
            prerequisites=tuple(raw.get("prerequisites") or ()),
            max_completions=raw.get("maxCompletions"),
            time_limit=raw.get("timeLimit"),
            seasonal_availability=tuple(str(m) for m in raw.get("seasonalAvailability") or ()),
            personalized_fields=tuple(raw.get("personalizedFields") or ()),
            placeholder_defaults={str(k): str(v) for k, v in (raw.get("placeholderDefaults") or {}).items()},
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "difficulty": self.difficulty,
            "baseXP": self.base_xp,
            "allowedGranularities": list(self.allowed_granularities),
            "weight": self.weight,
        }
        optional = {
            "description": self.description,
            "icon": self.icon,
            "levelRequirement": self.level_requirement,
            "maxCompletions": self.max_completions,
            "timeLimit": self.time_limit,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        if self.tags:
            out["tags"] = list(self.tags)
        if self.variations:
            out["variations"] = [v.to_dict() for v in self.variations]
        if self.prerequisites:
            out["prerequisites"] = list(self.prerequisites)
        if self.seasonal_availability:
            out["seasonalAvailability"] = list(self.seasonal_availability)
        if self.personalized_fields:
            out["personalizedFields"] = list(self.personalized_fields)
        if self.placeholder_defaults:
            out["placeholderDefaults"] = dict(self.placeholder_defaults)
        return out


@dataclass
class QuestInstance:
    """A template resolved into a completable quest for one user and one period."""

    id: str
    template_id: str
    title: str
    category: str
    granularity: str
    xp: int
    difficulty: int
    completed: bool = False
    description: str | None = None
    progress: int = 0
    bonus_xp: int | None = None
    variation_id: str | None = None
    completed_at: str | None = None
    time_limit: int | None = None
    icon: str | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> QuestInstance:
        return cls(
            id=str(raw["id"]),
            template_id=str(raw.get("templateId") or str(raw["id"]).rsplit("_", 2)[0]),
            title=str(raw.get("title", "")),
            category=str(raw.get("category", "personal")),
            granularity=str(raw.get("granularity", "daily")),
            xp=int(raw.get("xp", 0)),
            difficulty=_clamp(int(raw.get("difficulty", 1)), 1, 5),
            completed=bool(raw.get("completed", False)),
            description=raw.get("description"),
            progress=_clamp(int(raw.get("progress") or 0), 0, 100),
            bonus_xp=raw.get("bonusXP"),
            variation_id=raw.get("variationId"),
            completed_at=raw.get("completedAt"),
            time_limit=raw.get("timeLimit"),
            icon=raw.get("icon"),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "id": self.id,
            "templateId": self.template_id,
            "title": self.title,
            "category": self.category,
            "granularity": self.granularity,
            "xp": self.xp,
            "difficulty": self.difficulty,
            "completed": self.completed,
            "progress": self.progress,
        }
        optional = {
            "description": self.description,
            "bonusXP": self.bonus_xp,
            "variationId": self.variation_id,
            "completedAt": self.completed_at,
            "timeLimit": self.time_limit,
            "icon": self.icon,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out

    @property
    def reward(self) -> int:
        return self.xp + (self.bonus_xp or 0)


@dataclass
class DailyQuestState:
    daily_quests: list[QuestInstance] = field(default_factory=list)
    weekly_quests: list[QuestInstance] = field(default_factory=list)
    monthly_quests: list[QuestInstance] = field(default_factory=list)
    special_quests: list[QuestInstance] = field(default_factory=list)
    daily_bonus_granted: bool = False
    period_keys: dict[str, str] = field(default_factory=dict)
    generated_at: str | None = None

    def bucket(self, granularity: str) -> list[QuestInstance]:
        if granularity not in GRANULARITIES:
            raise InvalidGranularityError(granularity)
        return getattr(self, f"{granularity}_quests")

    def buckets(self) -> list[tuple[str, list[QuestInstance]]]:
        return [(g, self.bucket(g)) for g in GRANULARITIES]

    def copy(self) -> DailyQuestState:
        return replace(
            self,
            daily_quests=[replace(q) for q in self.daily_quests],
            weekly_quests=[replace(q) for q in self.weekly_quests],
            monthly_quests=[replace(q) for q in self.monthly_quests],
            special_quests=[replace(q) for q in self.special_quests],
            period_keys=dict(self.period_keys),
        )

    @classmethod
    def from_dict(cls, raw: dict | None) -> DailyQuestState:
        raw = raw or {}
        lists = {g: [QuestInstance.from_dict(q) for q in raw.get(key) or []] for g, key in BUCKET_KEYS.items()}
        return cls(
            daily_quests=lists["daily"],
            weekly_quests=lists["weekly"],
            monthly_quests=lists["monthly"],
            special_quests=lists["special"],
            daily_bonus_granted=bool(raw.get("dailyBonusGranted", False)),
            period_keys={str(k): str(v) for k, v in (raw.get("periodKeys") or {}).items()},
            generated_at=raw.get("generatedAt"),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {key: [q.to_dict() for q in self.bucket(g)] for g, key in BUCKET_KEYS.items()}
        out["dailyBonusGranted"] = self.daily_bonus_granted
        out["periodKeys"] = dict(self.period_keys)
        out["generatedAt"] = self.generated_at
        out["date"] = self.period_keys.get("daily")
        return out


@dataclass
class PlayerProgress:
    current_level: int = 1
    current_xp: int = 0
    xp_to_next_level: int = 100
    total_xp: int = 0
    quests_completed: int = 0
    total_quests_completed: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    achievements: frozenset[str] = frozenset()

    @classmethod
    def from_dict(cls, raw: dict | None) -> PlayerProgress:
        raw = raw or {}
        level = max(1, int(raw.get("currentLevel", 1)))
        return cls(
            current_level=level,
            current_xp=int(raw.get("currentXP", 0)),
            xp_to_next_level=int(raw.get("xpToNextLevel", level * 100)),
            total_xp=int(raw.get("totalXP", 0)),
            quests_completed=int(raw.get("questsCompleted", 0)),
            total_quests_completed=int(raw.get("totalQuestsCompleted", 0)),
            current_streak=int(raw.get("currentStreak", 0)),
            longest_streak=int(raw.get("longestStreak", 0)),
            achievements=frozenset(raw.get("achievements") or ()),
        )

    def to_dict(self) -> dict:
        return {
            "currentLevel": self.current_level,
            "currentXP": self.current_xp,
            "xpToNextLevel": self.xp_to_next_level,
            "totalXP": self.total_xp,
            "questsCompleted": self.quests_completed,
            "totalQuestsCompleted": self.total_quests_completed,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "achievements": sorted(self.achievements),
        }


DEFAULT_PREFERENCES = {
    "categories": [],
    "excludedCategories": [],
    "difficulty": "balanced",
    "questCount": None,
    "allowCommonQuests": True,
    "personalization": {},
}


@dataclass
class UserPreferences:
    categories: tuple[str, ...] = ()
    excluded_categories: tuple[str, ...] = ()
    difficulty: str = "balanced"
    quest_count: int | None = None
    allow_common_quests: bool = True
    personalization: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict | None) -> UserPreferences:
        raw = {**DEFAULT_PREFERENCES, **(raw or {})}
        count = raw.get("questCount")
        return cls(
            categories=tuple(raw.get("categories") or ()),
            excluded_categories=tuple(raw.get("excludedCategories") or ()),
            difficulty=str(raw.get("difficulty") or "balanced"),
            quest_count=int(count) if count is not None else None,
            allow_common_quests=bool(raw.get("allowCommonQuests", True)),
            personalization={str(k): str(v) for k, v in (raw.get("personalization") or {}).items()},
        )

    def to_dict(self) -> dict:
        return {
            "categories": list(self.categories),
            "excludedCategories": list(self.excluded_categories),
            "difficulty": self.difficulty,
            "questCount": self.quest_count,
            "allowCommonQuests": self.allow_common_quests,
            "personalization": dict(self.personalization),
        }


@dataclass
class QuestHistoryEntry:
    quest_id: str
    template_id: str
    completed_at: str
    xp_earned: int

    @classmethod
    def from_dict(cls, raw: dict) -> QuestHistoryEntry:
        return cls(
            quest_id=str(raw["questId"]),
            template_id=str(raw.get("templateId") or str(raw["questId"]).rsplit("_", 2)[0]),
            completed_at=str(raw.get("completedAt", "")),
            xp_earned=int(raw.get("xpEarned", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "questId": self.quest_id,
            "templateId": self.template_id,
            "completedAt": self.completed_at,
            "xpEarned": self.xp_earned,
        }


HISTORY_LIMIT = 200


@dataclass
class TemplateStats:
    count: int = 0
    last_completed_at: str | None = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> TemplateStats:
        raw = raw or {}
        return cls(count=max(0, int(raw.get("count", 0))), last_completed_at=raw.get("lastCompletedAt"))

    def to_dict(self) -> dict:
        return {"count": self.count, "lastCompletedAt": self.last_completed_at}


def stats_from_history(history: list[QuestHistoryEntry]) -> dict[str, TemplateStats]:
    stats: dict[str, TemplateStats] = {}
    for entry in history:
        record = stats.setdefault(entry.template_id, TemplateStats())
        record.count += 1
        if entry.completed_at and (record.last_completed_at is None or entry.completed_at > record.last_completed_at):
            record.last_completed_at = entry.completed_at
    return stats


@dataclass
class UserConfig:
    """The per-user document stored at ``app/users/{id}.json``.

    ``quest_history`` keeps only the latest :data:`HISTORY_LIMIT` entries.
    Per-template completion counts live in ``template_stats`` so repeat limits
    and prerequisites survive the trimming.
    """

    id: str
    name: str = "New Adventurer"
    avatar: str = "👤"
    preferences: UserPreferences = field(default_factory=UserPreferences)
    stats: PlayerProgress = field(default_factory=PlayerProgress)
    daily_quests: list[str] = field(default_factory=list)
    task_assignments: list[dict] = field(default_factory=list)
    quest_state: DailyQuestState = field(default_factory=DailyQuestState)
    quest_history: list[QuestHistoryEntry] = field(default_factory=list)
    template_stats: dict[str, TemplateStats] = field(default_factory=dict)
    created_at: str | None = None
    last_updated: str | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> UserConfig:
        history = [QuestHistoryEntry.from_dict(h) for h in raw.get("questHistory") or []]
        stored = raw.get("templateStats")
        if stored is None:
            stats = stats_from_history(history)
        else:
            stats = {str(k): TemplateStats.from_dict(v) for k, v in stored.items()}
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or "New Adventurer"),
            avatar=str(raw.get("avatar") or "👤"),
            preferences=UserPreferences.from_dict(raw.get("preferences")),
            stats=PlayerProgress.from_dict(raw.get("stats")),
            daily_quests=[str(q) for q in raw.get("dailyQuests") or []],
            task_assignments=list(raw.get("taskAssignments") or []),
            quest_state=DailyQuestState.from_dict(raw.get("questState")),
            quest_history=history[-HISTORY_LIMIT:],
            template_stats=stats,
            created_at=raw.get("createdAt"),
            last_updated=raw.get("lastUpdated"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "preferences": self.preferences.to_dict(),
            "stats": self.stats.to_dict(),
            "dailyQuests": list(self.daily_quests),
            "taskAssignments": list(self.task_assignments),
            "questState": self.quest_state.to_dict(),
            "questHistory": [h.to_dict() for h in self.quest_history],
            "templateStats": {k: v.to_dict() for k, v in sorted(self.template_stats.items())},
            "createdAt": self.created_at,
            "lastUpdated": self.last_updated,
        }

    def completion_counts(self) -> dict[str, int]:
        return {k: v.count for k, v in self.template_stats.items() if v.count > 0}

    def last_completions(self) -> dict[str, str]:
        return {k: v.last_completed_at for k, v in self.template_stats.items() if v.count > 0 and v.last_completed_at}

    def record_completion(self, entry: QuestHistoryEntry) -> None:
        self.quest_history.append(entry)
        del self.quest_history[:-HISTORY_LIMIT]
        record = self.template_stats.setdefault(entry.template_id, TemplateStats())
        record.count += 1
        record.last_completed_at = entry.completed_at

    def forget_completion(self, quest_id: str, template_id: str) -> None:
        for index in range(len(self.quest_history) - 1, -1, -1):
            if self.quest_history[index].quest_id == quest_id:
                del self.quest_history[index]
                break
        record = self.template_stats.get(template_id)
        if record is None:
            return
        record.count -= 1
        if record.count <= 0:
            del self.template_stats[template_id]
            return
        earlier = [h.completed_at for h in self.quest_history if h.template_id == template_id and h.completed_at]
        record.last_completed_at = max(earlier) if earlier else None
