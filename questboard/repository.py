from __future__ import annotations

import json
import logging
import re
from datetime import date

from questboard.content import load_default_catalog, parse_templates
from questboard.errors import InvalidUserError, UserExistsError, UserNotFoundError
from questboard.models import QuestInstance, QuestTemplate, UserConfig
from questboard.storage import DocumentExistsError, DocumentNotFoundError, DocumentStore, read_json, write_json

logger = logging.getLogger(__name__)

APP_PREFIX = "app/"
USERS_PREFIX = "app/users/"
ASSIGNMENTS_PREFIX = "app/assignments/"
QUESTS_PREFIX = "app/quests/"
BACKUPS_PREFIX = "app/backups/"
TEMPLATES_PATH = "app/config/quest-templates.json"
SYSTEM_PATH = "app/config/system.json"

_USER_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,63}$")


def check_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not _USER_ID.match(user_id):
        raise InvalidUserError(f"Invalid user id: {user_id!r}")
    return user_id


def user_path(user_id: str) -> str:
    return f"{USERS_PREFIX}{check_user_id(user_id)}.json"


def assignment_path(day: date | str, user_id: str) -> str:
    return f"{ASSIGNMENTS_PREFIX}{_day(day)}/{check_user_id(user_id)}.json"


def quest_cache_path(day: date | str, level: int) -> str:
    return f"{QUESTS_PREFIX}{_day(day)}/{int(level)}.json"


def backup_path(stamp: str) -> str:
    return f"{BACKUPS_PREFIX}{stamp}.json"


def _day(day: date | str) -> str:
    return day.isoformat() if isinstance(day, date) else date.fromisoformat(day).isoformat()


class Repository:
    """Maps users, templates and snapshots onto paths in a document store."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # Users ------------------------------------------------------------------

    def load_user(self, user_id: str) -> UserConfig:
        path = user_path(user_id)
        try:
            raw = read_json(self.store, path)
        except DocumentNotFoundError as exc:
            raise UserNotFoundError(user_id) from exc
        except json.JSONDecodeError as exc:
            raise InvalidUserError(f"Corrupt user document {path}: {exc}") from exc
        return UserConfig.from_dict(raw)

    def save_user(self, user: UserConfig, create: bool = False) -> str:
        try:
            return write_json(self.store, user_path(user.id), user.to_dict(), overwrite=not create)
        except DocumentExistsError as exc:
            raise UserExistsError(user.id) from exc

    def delete_user(self, user_id: str) -> None:
        self.store.delete(user_path(user_id))

    def user_exists(self, user_id: str) -> bool:
        return user_path(user_id) in self.store.list(user_path(user_id))

    def list_user_ids(self) -> list[str]:
        ids = []
        for path in self.store.list(USERS_PREFIX):
            name = path[len(USERS_PREFIX):]
            if "/" in name or not name.endswith(".json"):
                continue
            ids.append(name[: -len(".json")])
        return ids

    # Templates --------------------------------------------------------------

    def load_templates(self) -> list[QuestTemplate]:
        try:
            data = read_json(self.store, TEMPLATES_PATH)
        except DocumentNotFoundError:
            return load_default_catalog()
        if isinstance(data, dict):
            data = data.get("templates", [])
        return parse_templates(data)

    def save_templates(self, templates: list[QuestTemplate]) -> str:
        return write_json(self.store, TEMPLATES_PATH, {"templates": [t.to_dict() for t in templates]})

    # System config ----------------------------------------------------------

    def load_system_config(self) -> dict:
        try:
            data = read_json(self.store, SYSTEM_PATH)
        except DocumentNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt %s: %s", SYSTEM_PATH, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save_system_config(self, data: dict) -> str:
        return write_json(self.store, SYSTEM_PATH, data)

    # Snapshots --------------------------------------------------------------

    def write_assignment(self, day: date | str, user: UserConfig) -> str:
        snapshot = {
            "userId": user.id,
            "date": _day(day),
            "questState": user.quest_state.to_dict(),
            "stats": user.stats.to_dict(),
        }
        return write_json(self.store, assignment_path(day, user.id), snapshot)

    def read_assignment(self, day: date | str, user_id: str) -> dict | None:
        try:
            return read_json(self.store, assignment_path(day, user_id))
        except DocumentNotFoundError:
            return None

    def assignment_paths_for(self, user_id: str) -> list[str]:
        suffix = f"/{check_user_id(user_id)}.json"
        return [p for p in self.store.list(ASSIGNMENTS_PREFIX) if p.endswith(suffix)]

    def publish_daily_catalog(self, day: date | str, level: int, quests: list[QuestInstance]) -> str:
        payload = {"date": _day(day), "level": int(level), "quests": [q.to_dict() for q in quests]}
        return write_json(self.store, quest_cache_path(day, level), payload)

    def read_daily_catalog(self, day: date | str, level: int) -> dict | None:
        try:
            return read_json(self.store, quest_cache_path(day, level))
        except DocumentNotFoundError:
            return None
