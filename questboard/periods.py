from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from questboard.errors import InvalidGranularityError

SPECIAL_PERIOD_KEY = "special"


@dataclass(frozen=True)
class Period:
    granularity: str
    key: str
    start: date


def _as_date(when: date | datetime) -> date:
    if isinstance(when, datetime):
        return when.date()
    return when


def period_for(granularity: str, when: date | datetime) -> Period:
    day = _as_date(when)
    if granularity == "daily":
        return Period(granularity, day.isoformat(), day)
    if granularity == "weekly":
        iso_year, iso_week, weekday = day.isocalendar()
        return Period(granularity, f"{iso_year}-W{iso_week:02d}", day - timedelta(days=weekday - 1))
    if granularity == "monthly":
        return Period(granularity, f"{day.year}-{day.month:02d}", day.replace(day=1))
    if granularity == "special":
        return Period(granularity, SPECIAL_PERIOD_KEY, day)
    raise InvalidGranularityError(granularity)


def period_key(granularity: str, when: date | datetime) -> str:
    return period_for(granularity, when).key


def days_between(earlier_key: str, later: date | datetime) -> int | None:
    """Days from a stored daily key to ``later``; ``None`` when the key is not a date."""
    try:
        earlier = date.fromisoformat(earlier_key)
    except ValueError:
        return None
    return (_as_date(later) - earlier).days
