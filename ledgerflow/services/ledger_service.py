"""Ledger mutation service: user-entered entries and their side effects.

Every mutation (create, edit, soft delete, restore):
1. commits the entry change together with the generation counter bumps
2. drops cached statistics for the affected periods
3. re-evaluates the owner's budgets (when a monitor is configured)
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from ledgerflow.models.ledger_entry import EntryKind, LedgerEntry
from ledgerflow.services.budget_monitor import BudgetMonitor, BudgetReport
from ledgerflow.services.errors import InvalidEntry, MaterializationConflict
from ledgerflow.services.ledger_store import LedgerStore
from ledgerflow.services.statistics_service import StatisticsAggregator

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = {"amount", "kind", "category_id", "occurrence_date", "description", "tags"}


def normalize_amount(amount, kind) -> tuple[Decimal, EntryKind]:
    """Return (positive magnitude, kind).

    Expenses and transfers may be given signed; income must be positive.

    Raises:
        InvalidEntry: If the amount is zero, not a number, or a negative income
    """
    try:
        kind = EntryKind(kind)
    except ValueError as e:
        raise InvalidEntry(f"Unknown entry kind: {kind!r}") from e
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidEntry(f"Invalid amount: {amount!r}") from e
    if value == 0:
        raise InvalidEntry("Amount must be non-zero")
    if value < 0 and kind == EntryKind.INCOME:
        raise InvalidEntry("Income amount must be positive")
    return abs(value), kind


def normalize_tags(tags) -> list[str]:
    return sorted({tag.strip() for tag in (tags or []) if tag and tag.strip()})


class LedgerService:
    """Record and change ledger entries for owners."""

    def __init__(
        self,
        db: Session,
        aggregator: StatisticsAggregator | None = None,
        monitor: BudgetMonitor | None = None,
        ledger_store: LedgerStore | None = None,
    ):
        self.db = db
        self.ledger_store = ledger_store or LedgerStore(db)
        self.aggregator = aggregator
        self.monitor = monitor
        self.last_budget_report: BudgetReport | None = None

    def record_entry(
        self,
        owner_id: int,
        amount,
        kind,
        occurrence_date: date,
        category_id: int | None = None,
        description: str | None = None,
        tags=None,
        as_of: date | None = None,
    ) -> LedgerEntry:
        """Create a user-entered entry.

        Args:
            as_of: Date used for budget evaluation (default: today)

        Raises:
            InvalidEntry: On invalid amount or kind
        """
        magnitude, kind = normalize_amount(amount, kind)
        entry, _ = self.ledger_store.create_entry(
            LedgerEntry(
                owner_id=owner_id,
                category_id=category_id,
                amount=magnitude,
                kind=kind,
                occurrence_date=occurrence_date,
                description=description,
                tags=normalize_tags(tags),
            )
        )
        logger.info(
            "Recorded entry: id=%d, owner=%d, %s %s on %s",
            entry.id,
            owner_id,
            kind.value,
            magnitude,
            occurrence_date,
        )
        self._after_mutation(owner_id, [occurrence_date], as_of)
        return entry

    def edit_entry(self, entry_id: int, as_of: date | None = None, **changes) -> LedgerEntry | None:
        """Edit mutable fields of a non-deleted entry.

        Returns:
            Updated entry, or None if not found

        Raises:
            InvalidEntry: On unknown fields, invalid values, a deleted entry, or
                a date already used by another entry of the same rule
        """
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise InvalidEntry(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        entry = self.ledger_store.get(entry_id)
        if not entry:
            return None
        if entry.is_deleted:
            raise InvalidEntry(f"Entry {entry_id} is deleted; restore it before editing")

        if "amount" in changes or "kind" in changes:
            magnitude, kind = normalize_amount(
                changes.get("amount", entry.amount), changes.get("kind", entry.kind)
            )
            changes["amount"], changes["kind"] = magnitude, kind
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])

        old_date = entry.occurrence_date
        try:
            self.ledger_store.update_entry(entry, **changes)
        except MaterializationConflict as e:
            raise InvalidEntry(
                f"Entry {entry_id} cannot move to {e.occurrence_date}: "
                f"rule {e.rule_id} already has an entry on that date"
            ) from e
        logger.info("Edited entry %d: fields=%s", entry_id, ",".join(sorted(changes)))
        self._after_mutation(entry.owner_id, [old_date, entry.occurrence_date], as_of)
        return entry

    def delete_entry(self, entry_id: int, as_of: date | None = None) -> bool:
        """Soft-delete an entry. Returns False if not found."""
        entry = self.ledger_store.get(entry_id)
        if not entry:
            return False
        self.ledger_store.soft_delete(entry)
        logger.info("Deleted entry %d", entry_id)
        self._after_mutation(entry.owner_id, [entry.occurrence_date], as_of)
        return True

    def restore_entry(self, entry_id: int, as_of: date | None = None) -> bool:
        """Undo a soft delete. Returns False if not found."""
        entry = self.ledger_store.get(entry_id)
        if not entry:
            return False
        self.ledger_store.restore(entry)
        logger.info("Restored entry %d", entry_id)
        self._after_mutation(entry.owner_id, [entry.occurrence_date], as_of)
        return True

    def _after_mutation(self, owner_id: int, days: list[date], as_of: date | None) -> None:
        if self.aggregator is not None:
            self.aggregator.invalidate_dates(owner_id, *days)
        if self.monitor is not None:
            self.last_budget_report = self.monitor.evaluate_owner(owner_id, as_of or date.today())


__all__ = ["LedgerService", "normalize_amount", "normalize_tags", "MUTABLE_FIELDS"]
