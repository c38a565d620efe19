from __future__ import annotations

import logging
from datetime import datetime

from questboard.config import Settings, setup_logging
from questboard.errors import QuestboardError
from questboard.models import UserPreferences
from questboard.repository import Repository
from questboard.resolver import PlayerContext
from questboard.service import QuestService
from questboard.storage import DocumentStore, get_store

logger = logging.getLogger(__name__)


def publish_daily_catalogs(service: QuestService, levels: set[int], now: datetime) -> list[str]:
    """Write the un-personalized daily resolution for each level in use."""
    resolver = service.resolver()
    paths = []
    for level in sorted(levels):
        player = PlayerContext(user_id=f"level-{level}", level=level, preferences=UserPreferences())
        quests = resolver.resolve(player, "daily", now.date())
        paths.append(service.repo.publish_daily_catalog(now.date(), level, quests))
    return paths


def run_rollover_tick(store: DocumentStore, now: datetime) -> dict:
    service = QuestService(Repository(store), clock=lambda: now)
    rolled = []
    failed = []
    levels = {1}
    for user_id in service.repo.list_user_ids():
        try:
            view = service.load_quests(user_id, now)
        except QuestboardError as exc:
            logger.error("Rollover failed for %s: %s", user_id, exc)
            failed.append(user_id)
            continue
        rolled.append(user_id)
        levels.add(view["stats"]["currentLevel"])
    published = publish_daily_catalogs(service, levels, now)
    logger.info("Rollover tick for %s: %d users, %d failed", now.date().isoformat(), len(rolled), len(failed))
    return {"today": now.date().isoformat(), "users": rolled, "failed": failed, "published": published}


def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    run_rollover_tick(get_store(settings.store_uri), settings.now())


if __name__ == "__main__":
    main()
