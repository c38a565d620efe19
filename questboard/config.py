from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_STORE_URI = f"file://{REPO_ROOT / 'data'}"
DEFAULT_ADMIN_PASSWORD = "admin123"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    store_uri: str = DEFAULT_STORE_URI
    timezone: str = "UTC"
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            store_uri=os.getenv("QUESTBOARD_STORE_URI", DEFAULT_STORE_URI),
            timezone=os.getenv("QUESTBOARD_TIMEZONE", "UTC"),
            admin_password=os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD),
            log_level=os.getenv("QUESTBOARD_LOG_LEVEL", "INFO").upper(),
        )

    def zone(self):
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back to UTC", self.timezone)
            return timezone.utc

    def now(self) -> datetime:
        return datetime.now(self.zone())

    def today(self) -> date:
        return self.now().date()


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once; leave it alone if handlers already exist."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
