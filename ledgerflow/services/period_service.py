"""Reporting periods and budget windows.

Period descriptors:
- "2024"      calendar year
- "2024-Q1"   calendar quarter
- "2024-01"   calendar month
- "2024-W05"  ISO week (Monday..Sunday)
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from ledgerflow.models.budget import BudgetPeriod
from ledgerflow.services.calendar_math import add_months

_YEAR_RE = re.compile(r"^(\d{4})$")
_QUARTER_RE = re.compile(r"^(\d{4})-Q([1-4])$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")


class Granularity(str, Enum):
    """Length of a reporting period."""

    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


@dataclass(frozen=True)
class Period:
    """Closed date range [start, end] aligned to a calendar granularity."""

    granularity: Granularity
    start: date
    end: date

    @property
    def key(self) -> str:
        if self.granularity == Granularity.YEAR:
            return f"{self.start.year}"
        if self.granularity == Granularity.QUARTER:
            return f"{self.start.year}-Q{(self.start.month - 1) // 3 + 1}"
        if self.granularity == Granularity.MONTH:
            return f"{self.start.year}-{self.start.month:02d}"
        iso_year, iso_week, _ = self.start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def previous(self) -> "Period":
        """Immediately preceding period of the same granularity."""
        return period_containing(self.start - timedelta(days=1), self.granularity)

    def next(self) -> "Period":
        """Immediately following period of the same granularity."""
        return period_containing(self.end + timedelta(days=1), self.granularity)

    def __str__(self) -> str:
        return self.key


def period_containing(day: date, granularity: Granularity) -> Period:
    """Return the period of the given granularity that contains `day`."""
    granularity = Granularity(granularity)
    if granularity == Granularity.YEAR:
        return Period(granularity, date(day.year, 1, 1), date(day.year, 12, 31))
    if granularity == Granularity.QUARTER:
        first_month = (day.month - 1) // 3 * 3 + 1
        start = date(day.year, first_month, 1)
        end = add_months(start, 2, 31)
        return Period(granularity, start, end)
    if granularity == Granularity.MONTH:
        last_day = calendar.monthrange(day.year, day.month)[1]
        return Period(granularity, day.replace(day=1), day.replace(day=last_day))
    start = day - timedelta(days=day.weekday())
    return Period(granularity, start, start + timedelta(days=6))


def parse_period(key: str) -> Period:
    """Parse a period descriptor.

    Raises:
        ValueError: If the descriptor is not recognized
    """
    key = (key or "").strip()

    match = _MONTH_RE.match(key)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month in period: {key}")
        return period_containing(date(year, month, 1), Granularity.MONTH)

    match = _QUARTER_RE.match(key)
    if match:
        year, quarter = int(match.group(1)), int(match.group(2))
        return period_containing(date(year, (quarter - 1) * 3 + 1, 1), Granularity.QUARTER)

    match = _YEAR_RE.match(key)
    if match:
        return period_containing(date(int(match.group(1)), 1, 1), Granularity.YEAR)

    match = _WEEK_RE.match(key)
    if match:
        try:
            monday = date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
        except ValueError as e:
            raise ValueError(f"Invalid ISO week in period: {key}") from e
        return period_containing(monday, Granularity.WEEK)

    raise ValueError(f"Unrecognized period descriptor: {key!r}")


def as_period(period: "Period | str") -> Period:
    return period if isinstance(period, Period) else parse_period(period)


def affected_periods(day: date) -> list[Period]:
    """Periods whose statistics change when an entry dated `day` changes.

    For every granularity: the period containing the day, and the period
    after it (its trend is computed against the containing period).
    """
    periods = []
    for granularity in Granularity:
        current = period_containing(day, granularity)
        periods.append(current)
        periods.append(current.next())
    return periods


def affected_period_keys(*days: date) -> list[str]:
    """Sorted, de-duplicated keys of `affected_periods` for all given days."""
    keys = {period.key for day in days for period in affected_periods(day)}
    return sorted(keys)


def budget_window(period: BudgetPeriod, as_of: date) -> tuple[date, date]:
    """Return the period-aligned budget window containing `as_of`.

    DAILY: the day itself; WEEKLY: ISO week; MONTHLY: calendar month;
    YEARLY: calendar year.
    """
    period = BudgetPeriod(period)
    if period == BudgetPeriod.DAILY:
        return as_of, as_of
    granularity = {
        BudgetPeriod.WEEKLY: Granularity.WEEK,
        BudgetPeriod.MONTHLY: Granularity.MONTH,
        BudgetPeriod.YEARLY: Granularity.YEAR,
    }[period]
    window = period_containing(as_of, granularity)
    return window.start, window.end


__all__ = [
    "Granularity",
    "Period",
    "period_containing",
    "parse_period",
    "as_period",
    "affected_periods",
    "affected_period_keys",
    "budget_window",
]
