from __future__ import annotations

import unittest
from datetime import date, datetime

from questboard.errors import InvalidGranularityError
from questboard.periods import SPECIAL_PERIOD_KEY, days_between, period_for, period_key


class PeriodTests(unittest.TestCase):
    def test_daily_key_is_iso_date(self) -> None:
        period = period_for("daily", datetime(2026, 3, 4, 23, 59))
        self.assertEqual(period.key, "2026-03-04")
        self.assertEqual(period.start, date(2026, 3, 4))

    def test_weekly_key_uses_iso_week_starting_monday(self) -> None:
        self.assertEqual(period_key("weekly", date(2024, 1, 1)), "2024-W01")
        self.assertEqual(period_key("weekly", date(2024, 1, 7)), "2024-W01")
        self.assertEqual(period_key("weekly", date(2024, 1, 8)), "2024-W02")
        self.assertEqual(period_key("weekly", date(2024, 12, 30)), "2025-W01")
        self.assertEqual(period_for("weekly", date(2024, 1, 5)).start, date(2024, 1, 1))

    def test_monthly_key_and_start(self) -> None:
        period = period_for("monthly", date(2026, 2, 17))
        self.assertEqual(period.key, "2026-02")
        self.assertEqual(period.start, date(2026, 2, 1))

    def test_special_bucket_never_changes_period(self) -> None:
        self.assertEqual(period_key("special", date(2026, 1, 1)), SPECIAL_PERIOD_KEY)
        self.assertEqual(period_key("special", date(2027, 6, 1)), SPECIAL_PERIOD_KEY)

    def test_unknown_granularity(self) -> None:
        with self.assertRaises(InvalidGranularityError):
            period_for("hourly", date(2026, 1, 1))

    def test_days_between(self) -> None:
        self.assertEqual(days_between("2026-01-01", date(2026, 1, 3)), 2)
        self.assertIsNone(days_between("not-a-date", date(2026, 1, 3)))


if __name__ == "__main__":
    unittest.main()
