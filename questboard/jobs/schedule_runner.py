from __future__ import annotations

from questboard.config import Settings, setup_logging
from questboard.jobs.rollover_tick import run_rollover_tick
from questboard.storage import get_store


def get_schedule_context(settings: Settings) -> dict:
    now = settings.now()
    return {
        "now": now,
        "local_date": now.date().isoformat(),
        "local_hour": now.hour,
        "local_minute": now.minute,
        "timezone": settings.timezone,
    }


def main() -> None:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    ctx = get_schedule_context(settings)

    # Run this command every 5-10 minutes via cron/systemd timer.
    if ctx["local_hour"] == 0 and ctx["local_minute"] < 15:
        run_rollover_tick(get_store(settings.store_uri), ctx["now"])


if __name__ == "__main__":
    main()
