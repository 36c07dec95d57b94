"""Unit tests for recurring rule date arithmetic."""

from datetime import date

import pytest

from ledgerflow.models import EntryKind, Frequency, RecurringRule
from ledgerflow.services.calendar_math import (
    add_months,
    first_occurrence,
    next_occurrence,
    occurrence_on_or_after,
    occurrences_between,
)


def make_rule(frequency, start, interval=1, **fields) -> RecurringRule:
    """Build a transient rule (never persisted)."""
    return RecurringRule(
        owner_id=1,
        amount=10,
        kind=EntryKind.EXPENSE,
        frequency=Frequency(frequency),
        interval=interval,
        start_date=start,
        day_of_week=fields.get("day_of_week"),
        day_of_month=fields.get("day_of_month"),
        month_of_year=fields.get("month_of_year"),
        end_date=fields.get("end_date"),
    )


class TestMonthly:
    """Monthly rules clamp the day to the month length."""

    @pytest.mark.parametrize(
        "year,expected_day",
        [(2023, 28), (2024, 29), (2100, 28), (2000, 29)],
    )
    def test_day_31_lands_on_last_day_of_february(self, year, expected_day):
        rule = make_rule("monthly", date(year, 1, 31), day_of_month=31)

        assert next_occurrence(rule, date(year, 1, 31)) == date(year, 2, expected_day)

    def test_clamped_day_recovers_in_longer_month(self):
        rule = make_rule("monthly", date(2024, 1, 31), day_of_month=31)

        assert next_occurrence(rule, date(2024, 2, 29)) == date(2024, 3, 31)
        assert next_occurrence(rule, date(2024, 3, 31)) == date(2024, 4, 30)

    def test_interval_three_months_crosses_year(self):
        rule = make_rule("monthly", date(2024, 11, 15), interval=3)

        assert next_occurrence(rule, date(2024, 11, 15)) == date(2025, 2, 15)

    def test_day_of_month_defaults_to_start_day(self):
        rule = make_rule("monthly", date(2024, 1, 20))

        assert next_occurrence(rule, date(2024, 1, 20)) == date(2024, 2, 20)


class TestWeekly:
    """Weekly rules follow a series anchored on the start week."""

    def test_every_week_on_monday(self):
        # 2024-01-01 is a Monday
        rule = make_rule("weekly", date(2024, 1, 1), day_of_week=0)

        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 8)
        assert next_occurrence(rule, date(2024, 1, 3)) == date(2024, 1, 8)

    def test_every_second_week_adds_one_extra_week(self):
        rule = make_rule("weekly", date(2024, 1, 1), interval=2, day_of_week=0)

        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 15)
        assert next_occurrence(rule, date(2024, 1, 15)) == date(2024, 1, 29)

    def test_off_series_date_snaps_to_series(self):
        rule = make_rule("weekly", date(2024, 1, 1), interval=2, day_of_week=0)

        # Monday 2024-01-08 is not on the bi-weekly series
        assert next_occurrence(rule, date(2024, 1, 8)) == date(2024, 1, 15)

    def test_day_of_week_defaults_to_start_weekday(self):
        # 2024-01-03 is a Wednesday
        rule = make_rule("weekly", date(2024, 1, 3))

        assert next_occurrence(rule, date(2024, 1, 3)) == date(2024, 1, 10)

    def test_anchor_is_first_matching_weekday_after_start(self):
        rule = make_rule("weekly", date(2024, 1, 3), day_of_week=4)

        assert first_occurrence(rule) == date(2024, 1, 5)


class TestYearly:
    def test_leap_day_clamps_in_common_years(self):
        rule = make_rule("yearly", date(2024, 2, 29))

        assert next_occurrence(rule, date(2024, 2, 29)) == date(2025, 2, 28)

    def test_leap_day_restored_in_leap_years(self):
        rule = make_rule("yearly", date(2024, 2, 29), interval=4)

        assert next_occurrence(rule, date(2024, 2, 29)) == date(2028, 2, 29)

    def test_month_of_year_overrides_start_month(self):
        rule = make_rule("yearly", date(2024, 3, 10), month_of_year=7, day_of_month=4)

        assert first_occurrence(rule) == date(2024, 7, 4)
        assert next_occurrence(rule, date(2024, 7, 4)) == date(2025, 7, 4)


class TestDaily:
    def test_interval(self):
        rule = make_rule("daily", date(2024, 1, 1), interval=3)

        assert next_occurrence(rule, date(2024, 1, 30)) == date(2024, 2, 2)


class TestForwardProgress:
    """Malformed intervals must never stall the cursor."""

    @pytest.mark.parametrize("interval", [0, -1, None])
    def test_daily_bad_interval_moves_one_day(self, interval):
        rule = make_rule("daily", date(2024, 1, 1), interval=interval)

        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 2)

    def test_weekly_zero_interval_moves_one_week(self):
        rule = make_rule("weekly", date(2024, 1, 1), interval=0, day_of_week=0)

        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 8)

    def test_monthly_zero_interval_moves_forward(self):
        rule = make_rule("monthly", date(2024, 1, 10), interval=0)

        assert next_occurrence(rule, date(2024, 1, 10)) == date(2024, 2, 10)

    def test_yearly_negative_interval_moves_forward(self):
        rule = make_rule("yearly", date(2024, 5, 1), interval=-2)

        assert next_occurrence(rule, date(2024, 5, 1)) == date(2025, 5, 1)


class TestFirstOccurrence:
    def test_monthly_later_day_same_month(self):
        rule = make_rule("monthly", date(2024, 1, 15), day_of_month=31)

        assert first_occurrence(rule) == date(2024, 1, 31)

    def test_monthly_earlier_day_moves_to_next_month(self):
        rule = make_rule("monthly", date(2024, 1, 15), day_of_month=10)

        assert first_occurrence(rule) == date(2024, 2, 10)

    def test_yearly_passed_date_moves_to_next_year(self):
        rule = make_rule("yearly", date(2024, 6, 1), month_of_year=3, day_of_month=1)

        assert first_occurrence(rule) == date(2025, 3, 1)


class TestProjection:
    def test_occurrence_on_or_after(self):
        rule = make_rule("monthly", date(2024, 1, 31), day_of_month=31)

        assert occurrence_on_or_after(rule, date(2024, 2, 10)) == date(2024, 2, 29)
        assert occurrence_on_or_after(rule, date(2024, 2, 29)) == date(2024, 2, 29)

    def test_occurrences_between_respects_end_date(self):
        rule = make_rule("monthly", date(2024, 1, 5), end_date=date(2024, 3, 31))

        assert occurrences_between(rule, date(2024, 1, 1), date(2024, 12, 31)) == [
            date(2024, 1, 5),
            date(2024, 2, 5),
            date(2024, 3, 5),
        ]

    def test_occurrences_between_limit(self):
        rule = make_rule("daily", date(2024, 1, 1))

        assert len(occurrences_between(rule, date(2024, 1, 1), date(2024, 12, 31), limit=7)) == 7

    def test_add_months_clamps(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 12, 15), 2) == date(2025, 2, 15)
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
