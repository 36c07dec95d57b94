"""Statistics aggregator: period summaries with a versioned snapshot cache.

Summary for (owner, period):
- totals per kind, balance = income - expense (transfers excluded)
- per-category totals with percentage of the same kind's total
- top expense categories: total descending, category id ascending,
  uncategorized last
- trend: percentage change of income and expense against the preceding
  period of the same granularity; None when that period's total is 0

A snapshot is served from cache only while its version equals the owner's
generation counter for the period.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgerflow.models.ledger_entry import EntryKind, LedgerEntry
from ledgerflow.services.cache_service import SnapshotCache
from ledgerflow.services.errors import AggregationFailed, CacheInconsistency, StoreUnavailable
from ledgerflow.services.ledger_store import LedgerStore
from ledgerflow.services.period_service import Period, affected_period_keys, as_period

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
KIND_ORDER = {EntryKind.INCOME: 0, EntryKind.EXPENSE: 1, EntryKind.TRANSFER: 2}


@dataclass(frozen=True)
class CategoryTotal:
    """Total of one category within one entry kind."""

    category_id: int | None
    kind: EntryKind
    total: Decimal
    count: int
    percentage: Decimal


@dataclass(frozen=True)
class PeriodTrend:
    """Change against the immediately preceding period."""

    previous_period: str
    previous_income: Decimal
    previous_expense: Decimal
    income_change: Decimal | None
    expense_change: Decimal | None


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Immutable cached summary of one owner's period."""

    owner_id: int
    period: str
    start: date
    end: date
    version: int
    total_income: Decimal
    total_expense: Decimal
    total_transfer: Decimal
    balance: Decimal
    income_count: int
    expense_count: int
    transfer_count: int
    categories: tuple[CategoryTotal, ...]
    top_categories: tuple[CategoryTotal, ...]
    trend: PeriodTrend

    @property
    def transaction_count(self) -> int:
        return self.income_count + self.expense_count + self.transfer_count

    def category(self, category_id: int | None, kind: EntryKind = EntryKind.EXPENSE):
        for item in self.categories:
            if item.category_id == category_id and item.kind == kind:
                return item
        return None


def percent_change(current: Decimal, previous: Decimal) -> Decimal | None:
    """Percentage change, or None when the baseline is zero."""
    if previous == 0:
        return None
    return ((current - previous) / previous * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def _share(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return ZERO
    return (part / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def _category_sort_key(item: CategoryTotal):
    return (-item.total, item.category_id is None, item.category_id or 0)


class StatisticsAggregator:
    """Compute and cache period summaries."""

    def __init__(
        self,
        db: Session,
        ledger_store: LedgerStore | None = None,
        cache: SnapshotCache | None = None,
        top_n: int = 5,
    ):
        self.db = db
        self.ledger_store = ledger_store or LedgerStore(db)
        self.cache = cache if cache is not None else SnapshotCache()
        self.top_n = top_n

    def get_summary(self, owner_id: int, period: "Period | str") -> StatisticsSnapshot:
        """Return the summary of `period` for an owner.

        Args:
            owner_id: Owner to summarize
            period: Period or descriptor ("2024-01", "2024-Q1", "2024", "2024-W05")

        Returns:
            StatisticsSnapshot (cached or freshly computed)

        Raises:
            ValueError: If the period descriptor is invalid
            AggregationFailed: If the ledger cannot be read
        """
        period = as_period(period)
        try:
            # Version is read before the scan: a mutation committed during the
            # scan bumps the counter, so this snapshot can never be served stale.
            version = self.ledger_store.get_generation_counter(owner_id, period.key)
            try:
                cached = self.cache.get_current(owner_id, period.key, version)
            except CacheInconsistency as e:
                logger.debug("Discarding stale snapshot: %s", e)
                self.cache.invalidate(owner_id, period.key)
                cached = None
            if cached is not None:
                return cached

            entries = self.ledger_store.list_active_entries(owner_id, period.start, period.end)
            previous = period.previous()
            previous_totals = self.ledger_store.totals_by_kind(
                owner_id, previous.start, previous.end
            )
        except (SQLAlchemyError, StoreUnavailable) as e:
            logger.error("Statistics for owner %d period %s failed: %s", owner_id, period, e)
            raise AggregationFailed(
                f"Could not aggregate period {period.key} for owner {owner_id}"
            ) from e

        snapshot = self._build_snapshot(owner_id, period, version, entries, previous, previous_totals)
        self.cache.put(snapshot)
        return snapshot

    def invalidate_dates(self, owner_id: int, *days: date) -> list[str]:
        """Drop cached snapshots affected by entries dated on `days`.

        Returns:
            The period keys that were invalidated
        """
        keys = affected_period_keys(*days)
        self.cache.invalidate_many(owner_id, keys)
        return keys

    def invalidate_entries(self, entries: Iterable[LedgerEntry]) -> None:
        by_owner: dict[int, set[date]] = {}
        for entry in entries:
            by_owner.setdefault(entry.owner_id, set()).add(entry.occurrence_date)
        for owner_id, days in by_owner.items():
            self.invalidate_dates(owner_id, *days)

    def _build_snapshot(
        self,
        owner_id: int,
        period: Period,
        version: int,
        entries: list[LedgerEntry],
        previous: Period,
        previous_totals: dict[EntryKind, Decimal],
    ) -> StatisticsSnapshot:
        totals = {kind: ZERO for kind in EntryKind}
        counts = {kind: 0 for kind in EntryKind}
        by_category: dict[tuple[EntryKind, int | None], list] = {}

        for entry in entries:
            kind = EntryKind(entry.kind)
            amount = Decimal(str(entry.amount))
            totals[kind] += amount
            counts[kind] += 1
            bucket = by_category.setdefault((kind, entry.category_id), [ZERO, 0])
            bucket[0] += amount
            bucket[1] += 1

        categories = sorted(
            (
                CategoryTotal(
                    category_id=category_id,
                    kind=kind,
                    total=total,
                    count=count,
                    percentage=_share(total, totals[kind]),
                )
                for (kind, category_id), (total, count) in by_category.items()
            ),
            key=lambda item: (KIND_ORDER[item.kind],) + _category_sort_key(item),
        )
        top = [item for item in categories if item.kind == EntryKind.EXPENSE][: self.top_n]

        income = totals[EntryKind.INCOME]
        expense = totals[EntryKind.EXPENSE]
        previous_income = previous_totals.get(EntryKind.INCOME, ZERO)
        previous_expense = previous_totals.get(EntryKind.EXPENSE, ZERO)

        return StatisticsSnapshot(
            owner_id=owner_id,
            period=period.key,
            start=period.start,
            end=period.end,
            version=version,
            total_income=income,
            total_expense=expense,
            total_transfer=totals[EntryKind.TRANSFER],
            balance=income - expense,
            income_count=counts[EntryKind.INCOME],
            expense_count=counts[EntryKind.EXPENSE],
            transfer_count=counts[EntryKind.TRANSFER],
            categories=tuple(categories),
            top_categories=tuple(top),
            trend=PeriodTrend(
                previous_period=previous.key,
                previous_income=previous_income,
                previous_expense=previous_expense,
                income_change=percent_change(income, previous_income),
                expense_change=percent_change(expense, previous_expense),
            ),
        )


__all__ = [
    "StatisticsAggregator",
    "StatisticsSnapshot",
    "CategoryTotal",
    "PeriodTrend",
    "percent_change",
]
