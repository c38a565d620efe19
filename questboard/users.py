from __future__ import annotations

import logging
import secrets
import time
from dataclasses import replace
from datetime import datetime, timezone

from questboard.errors import InconsistentStateError, InvalidAssignmentError, InvalidUserError
from questboard.leveling import check_progress, xp_to_next_level
from questboard.models import PlayerProgress, UserConfig, UserPreferences
from questboard.repository import Repository, check_user_id

logger = logging.getLogger(__name__)

NEW_USER_PREFERENCES = {
    "categories": ["health", "learning"],
    "difficulty": "easy",
    "questCount": 3,
    "allowCommonQuests": True,
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_user_id() -> str:
    return f"user{int(time.time() * 1000)}{secrets.token_hex(4)}"


def _assign(current: list[str], quest_ids: list[str]) -> list[str]:
    return current + [q for q in quest_ids if q not in current]


def _replace(current: list[str], quest_ids: list[str]) -> list[str]:
    return list(quest_ids)


def _remove(current: list[str], quest_ids: list[str]) -> list[str]:
    return [q for q in current if q not in quest_ids]


ASSIGNMENT_ACTIONS = {
    "assign": _assign,
    "replace": _replace,
    "remove": _remove,
}


def _unique(items) -> list[str]:
    out: list[str] = []
    for item in items:
        if item not in out:
            out.append(item)
    return out


class UserService:
    """Admin-side management of user documents."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def create_user(self, data: dict | None = None) -> UserConfig:
        data = dict(data or {})
        user_id = check_user_id(str(data.get("id") or _new_user_id()))
        now = utc_now_iso()
        raw = {
            "name": "New Adventurer",
            "avatar": "👤",
            "dailyQuests": [],
            "preferences": NEW_USER_PREFERENCES,
            "stats": PlayerProgress().to_dict(),
            **data,
            "id": user_id,
            "createdAt": now,
            "lastUpdated": now,
        }
        user = self._parse(raw)
        self.repo.save_user(user, create=True)
        logger.info("Created user %s", user_id)
        return user

    def get_user(self, user_id: str) -> UserConfig:
        return self.repo.load_user(user_id)

    def list_users(self) -> list[dict]:
        out = []
        for user_id in self.repo.list_user_ids():
            try:
                user = self.repo.load_user(user_id)
            except InvalidUserError as exc:
                logger.warning("Skipping user %s: %s", user_id, exc)
                continue
            out.append(
                {
                    "id": user.id,
                    "name": user.name,
                    "avatar": user.avatar,
                    "level": user.stats.current_level,
                    "totalXP": user.stats.total_xp,
                    "lastUpdated": user.last_updated,
                }
            )
        return out

    def modify_user(self, user_id: str, changes: dict) -> UserConfig:
        """Merge ``name``, ``avatar``, ``preferences`` and ``stats`` into a stored user."""
        user = self.repo.load_user(user_id)
        if "name" in changes and changes["name"]:
            user.name = str(changes["name"])
        if "avatar" in changes and changes["avatar"]:
            user.avatar = str(changes["avatar"])
        if changes.get("preferences") is not None:
            user.preferences = UserPreferences.from_dict({**user.preferences.to_dict(), **changes["preferences"]})
        if changes.get("stats") is not None:
            merged = {**user.stats.to_dict(), **changes["stats"]}
            try:
                if "currentLevel" in changes["stats"] and "xpToNextLevel" not in changes["stats"]:
                    merged["xpToNextLevel"] = xp_to_next_level(max(1, int(merged["currentLevel"])))
                stats = PlayerProgress.from_dict(merged)
                check_progress(stats)
            except (InconsistentStateError, TypeError, ValueError) as exc:
                raise InvalidUserError(f"Invalid stats for {user_id}: {exc}") from exc
            user.stats = stats
        if changes.get("dailyQuests") is not None:
            user.daily_quests = _unique(str(q) for q in changes["dailyQuests"])
        user.last_updated = utc_now_iso()
        self.repo.save_user(user)
        return user

    def delete_user(self, user_id: str) -> int:
        """Delete the user document and its assignment snapshots.

        Returns the number of snapshots removed. Snapshot cleanup is best
        effort: the user document is gone even if some snapshots are left.
        """
        self.repo.load_user(user_id)
        self.repo.delete_user(user_id)
        removed = 0
        for path in self.repo.assignment_paths_for(user_id):
            try:
                self.repo.store.delete(path)
                removed += 1
            except OSError as exc:
                logger.warning("Could not delete %s: %s", path, exc)
        logger.info("Deleted user %s (%d snapshots)", user_id, removed)
        return removed

    def assign_tasks(self, user_id: str, quest_ids: list[str], action: str = "assign") -> UserConfig:
        handler = ASSIGNMENT_ACTIONS.get(action)
        if handler is None:
            raise InvalidAssignmentError(f"Unknown assignment action: {action!r}")
        if not isinstance(quest_ids, list) or not all(isinstance(q, str) for q in quest_ids):
            raise InvalidAssignmentError("questIds must be a list of template ids")

        known = {t.id for t in self.repo.load_templates()}
        unknown = sorted(set(quest_ids) - known)
        if unknown and action != "remove":
            raise InvalidAssignmentError(f"Unknown quest templates: {', '.join(unknown)}")

        user = self.repo.load_user(user_id)
        now = utc_now_iso()
        user.daily_quests = _unique(handler(list(user.daily_quests), quest_ids))
        user.task_assignments = [
            *user.task_assignments,
            {"questIds": list(quest_ids), "action": action, "assignedAt": now, "assignedBy": "admin"},
        ]
        user.last_updated = now
        self.repo.save_user(user)
        logger.info("%s %d quests for %s", action, len(quest_ids), user_id)
        return user

    @staticmethod
    def _parse(raw: dict) -> UserConfig:
        try:
            user = UserConfig.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidUserError(f"Invalid user data: {exc}") from exc
        try:
            check_progress(user.stats)
        except InconsistentStateError as exc:
            raise InvalidUserError(f"Invalid stats for {user.id}: {exc}") from exc
        return replace(user, daily_quests=_unique(user.daily_quests))
