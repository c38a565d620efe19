from __future__ import annotations

from dataclasses import dataclass, replace

from questboard.errors import InconsistentStateError
from questboard.models import PlayerProgress

XP_PER_LEVEL = 100
DAILY_COMPLETION_BONUS = 100

TIER_LEVEL_CAPS = (
    ("beginner", 3),
    ("intermediate", 7),
    ("advanced", 12),
)


def xp_to_next_level(level: int) -> int:
    return level * XP_PER_LEVEL


def xp_for_level(level: int) -> int:
    """Total XP needed to reach the start of ``level``."""
    return XP_PER_LEVEL * level * (level - 1) // 2


def level_for_total_xp(total_xp: int) -> tuple[int, int]:
    """Return ``(level, current_xp)`` for an accumulated XP total."""
    level = 1
    remaining = max(0, total_xp)
    while remaining >= xp_to_next_level(level):
        remaining -= xp_to_next_level(level)
        level += 1
    return level, remaining


def level_tier(level: int) -> str:
    for tier, cap in TIER_LEVEL_CAPS:
        if level <= cap:
            return tier
    return "expert"


@dataclass(frozen=True)
class XPChange:
    progress: PlayerProgress
    xp_gained: int
    leveled_up: bool
    new_level: int | None
    levels_gained: int


def apply_xp(progress: PlayerProgress, xp_gained: int) -> XPChange:
    """Apply a signed XP delta, levelling up or down as needed.

    Gains roll over into the next level while the pool reaches the threshold.
    Losses borrow from lower levels, but never below level 1, where the pool
    is clamped to zero.
    """
    level = progress.current_level
    threshold = progress.xp_to_next_level
    new_xp = progress.current_xp + xp_gained

    while new_xp >= threshold:
        new_xp -= threshold
        level += 1
        threshold = xp_to_next_level(level)

    while new_xp < 0 and level > 1:
        level -= 1
        threshold = xp_to_next_level(level)
        new_xp += threshold

    if new_xp < 0:
        new_xp = 0

    updated = replace(
        progress,
        current_level=level,
        current_xp=new_xp,
        xp_to_next_level=threshold,
        total_xp=max(0, progress.total_xp + xp_gained),
    )
    leveled_up = level > progress.current_level
    return XPChange(
        progress=updated,
        xp_gained=xp_gained,
        leveled_up=leveled_up,
        new_level=level if level != progress.current_level else None,
        levels_gained=level - progress.current_level,
    )


def count_streak_day(progress: PlayerProgress) -> PlayerProgress:
    streak = progress.current_streak + 1
    return replace(progress, current_streak=streak, longest_streak=max(progress.longest_streak, streak))


def break_streak(progress: PlayerProgress) -> PlayerProgress:
    return replace(progress, current_streak=0)


def check_progress(progress: PlayerProgress, *, strict_total: bool = False) -> None:
    """Raise :class:`InconsistentStateError` when ``progress`` breaks an invariant.

    ``strict_total`` additionally requires ``totalXP`` to match the level curve,
    which only holds for documents that never had their stats edited by hand.
    """
    if progress.current_level < 1:
        raise InconsistentStateError(f"level below 1: {progress.current_level}")
    if progress.xp_to_next_level != xp_to_next_level(progress.current_level):
        raise InconsistentStateError(
            f"xpToNextLevel {progress.xp_to_next_level} does not match level {progress.current_level}"
        )
    if not 0 <= progress.current_xp < progress.xp_to_next_level:
        raise InconsistentStateError(
            f"currentXP {progress.current_xp} outside [0, {progress.xp_to_next_level})"
        )
    if progress.total_xp < 0:
        raise InconsistentStateError(f"negative totalXP: {progress.total_xp}")
    if strict_total and progress.total_xp != xp_for_level(progress.current_level) + progress.current_xp:
        raise InconsistentStateError(
            f"totalXP {progress.total_xp} inconsistent with level {progress.current_level}"
            f" and currentXP {progress.current_xp}"
        )
    if progress.current_streak < 0:
        raise InconsistentStateError(f"negative streak: {progress.current_streak}")
