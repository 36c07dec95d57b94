"""Pure date arithmetic for recurring rules.

All functions accept any object exposing the schedule fields of a
recurring rule (frequency, interval, day_of_week, day_of_month,
month_of_year, start_date), so they work on ORM rows and plain
dataclasses alike. Nothing here touches the database.

Frequency dispatch:
- DAILY: after + interval days
- WEEKLY: series anchor + k * 7 * interval, anchored on the first
  day_of_week on or after start_date
- MONTHLY: month of `after` + interval, day_of_month clamped
- YEARLY: year of `after` + interval, month_of_year / day_of_month clamped
"""

import calendar
from datetime import date, timedelta
from typing import Iterator

from ledgerflow.models.recurring_rule import Frequency


def clamp_day(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    return min(day, calendar.monthrange(year, month)[1])


def add_months(d: date, months: int, day: int | None = None) -> date:
    """Add months to d, placing the result on `day` (default d.day) clamped to month end."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, clamp_day(year, month, day or d.day))


def _weekly_anchor(rule) -> date:
    start = rule.start_date
    target_dow = rule.day_of_week if rule.day_of_week is not None else start.weekday()
    return start + timedelta(days=(target_dow - start.weekday()) % 7)


def _advance(rule, after: date, interval: int) -> date:
    frequency = Frequency(rule.frequency)

    if frequency == Frequency.DAILY:
        return after + timedelta(days=interval)

    if frequency == Frequency.WEEKLY:
        if interval < 1:
            return after
        anchor = _weekly_anchor(rule)
        if after < anchor:
            return anchor
        step = 7 * interval
        cycles = (after - anchor).days // step + 1
        return anchor + timedelta(days=cycles * step)

    if frequency == Frequency.MONTHLY:
        target_day = rule.day_of_month or rule.start_date.day
        return add_months(after, interval, target_day)

    # YEARLY
    target_month = rule.month_of_year or rule.start_date.month
    target_day = rule.day_of_month or rule.start_date.day
    year = after.year + interval
    return date(year, target_month, clamp_day(year, target_month, target_day))


def next_occurrence(rule, after: date) -> date:
    """Return the next occurrence of `rule` strictly after `after`.

    A malformed interval (zero or negative) that would not move forward is
    retried with interval 1, so callers iterating on this function always
    make progress.
    """
    candidate = _advance(rule, after, rule.interval or 0)
    if candidate <= after:
        candidate = _advance(rule, after, 1)
    return candidate


def first_occurrence(rule) -> date:
    """Return the first occurrence on or after the rule's start date."""
    start = rule.start_date
    interval = rule.interval if rule.interval and rule.interval > 0 else 1
    frequency = Frequency(rule.frequency)

    if frequency == Frequency.DAILY:
        return start

    if frequency == Frequency.WEEKLY:
        return _weekly_anchor(rule)

    if frequency == Frequency.MONTHLY:
        target_day = rule.day_of_month or start.day
        candidate = date(start.year, start.month, clamp_day(start.year, start.month, target_day))
        if candidate < start:
            candidate = add_months(candidate, interval, target_day)
        return candidate

    target_month = rule.month_of_year or start.month
    target_day = rule.day_of_month or start.day
    candidate = date(start.year, target_month, clamp_day(start.year, target_month, target_day))
    if candidate < start:
        year = start.year + interval
        candidate = date(year, target_month, clamp_day(year, target_month, target_day))
    return candidate


def occurrence_on_or_after(rule, day: date) -> date:
    """Return the first occurrence of the rule's series that is >= day."""
    current = first_occurrence(rule)
    while current < day:
        current = next_occurrence(rule, current)
    return current


def iter_occurrences(rule, start: date, end: date) -> Iterator[date]:
    """Yield occurrences within [start, end], honoring the rule's end_date."""
    stop = min(end, rule.end_date) if rule.end_date else end
    current = occurrence_on_or_after(rule, start)
    while current <= stop:
        yield current
        current = next_occurrence(rule, current)


def occurrences_between(rule, start: date, end: date, limit: int | None = None) -> list[date]:
    """Return occurrences within [start, end] (at most `limit` of them)."""
    result = []
    for occurrence in iter_occurrences(rule, start, end):
        if limit is not None and len(result) >= limit:
            break
        result.append(occurrence)
    return result


__all__ = [
    "clamp_day",
    "add_months",
    "next_occurrence",
    "first_occurrence",
    "occurrence_on_or_after",
    "iter_occurrences",
    "occurrences_between",
]
