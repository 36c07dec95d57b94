"""Ledger store: persistence of ledger entries and generation counters."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledgerflow.models.ledger_entry import EntryKind, LedgerEntry
from ledgerflow.models.ledger_generation import LedgerGeneration
from ledgerflow.services.db import store_errors
from ledgerflow.services.errors import MaterializationConflict
from ledgerflow.services.period_service import affected_period_keys

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class LedgerStore:
    """Read/append/update operations on ledger entries.

    Every mutation bumps the generation counters of the affected periods in
    the same commit, so cached statistics can detect staleness.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def get(self, entry_id: int) -> LedgerEntry | None:
        with store_errors(self.db):
            return self.db.query(LedgerEntry).filter(LedgerEntry.id == entry_id).first()

    def list_active_entries(
        self,
        owner_id: int,
        start: date,
        end: date,
        category_id: int | None = None,
        kind: EntryKind | None = None,
    ) -> list[LedgerEntry]:
        """List non-deleted entries of an owner dated within [start, end].

        Args:
            owner_id: Owner to list entries for
            start: First date (inclusive)
            end: Last date (inclusive)
            category_id: Optional category filter
            kind: Optional kind filter

        Returns:
            Entries ordered by occurrence date, then id
        """
        with store_errors(self.db):
            query = self._active_query(owner_id, start, end)
            if category_id is not None:
                query = query.filter(LedgerEntry.category_id == category_id)
            if kind is not None:
                query = query.filter(LedgerEntry.kind == EntryKind(kind))
            return query.order_by(LedgerEntry.occurrence_date, LedgerEntry.id).all()

    def find_generated(self, rule_id: int, occurrence_date: date) -> LedgerEntry | None:
        """Find the entry a rule generated for a date (deleted or not)."""
        with store_errors(self.db):
            return (
                self.db.query(LedgerEntry)
                .filter(
                    LedgerEntry.recurring_rule_id == rule_id,
                    LedgerEntry.occurrence_date == occurrence_date,
                )
                .first()
            )

    def create_entry(self, entry: LedgerEntry) -> tuple[LedgerEntry, bool]:
        """Persist a new entry.

        Rule-originated entries are idempotent by (rule id, occurrence date):
        when one already exists it is returned with conflict=True and nothing
        is written.

        Returns:
            (entry, conflict) tuple
        """
        try:
            return self.insert_entry(entry), False
        except MaterializationConflict as e:
            logger.debug("%s; keeping the existing entry", e)
            return self.find_generated(e.rule_id, e.occurrence_date), True

    def insert_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Insert an entry and bump its generation counters in one commit.

        Raises:
            MaterializationConflict: If the rule already has an entry for that date
        """
        rule_id = entry.recurring_rule_id
        if rule_id is not None and self.find_generated(rule_id, entry.occurrence_date):
            raise MaterializationConflict(rule_id, entry.occurrence_date)

        with store_errors(self.db):
            try:
                self.db.add(entry)
                self.db.flush()
                self.bump_generation(entry.owner_id, affected_period_keys(entry.occurrence_date))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                # Lost a race with a concurrent tick
                if rule_id is not None and self.find_generated(rule_id, entry.occurrence_date):
                    raise MaterializationConflict(rule_id, entry.occurrence_date) from None
                raise
        return entry

    def update_entry(self, entry: LedgerEntry, **changes) -> LedgerEntry:
        """Apply field changes to an entry and bump affected generations.

        A date change bumps the periods of both the old and the new date.
        On failure the session is rolled back and the entry keeps its stored
        values.

        Raises:
            MaterializationConflict: If the new date collides with another
                entry generated by the same rule
        """
        old_date = entry.occurrence_date
        rule_id = entry.recurring_rule_id
        new_date = changes.get("occurrence_date", old_date)
        with store_errors(self.db):
            try:
                for field, value in changes.items():
                    setattr(entry, field, value)
                self.bump_generation(entry.owner_id, affected_period_keys(old_date, new_date))
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if rule_id is not None and self.find_generated(rule_id, new_date):
                    raise MaterializationConflict(rule_id, new_date) from None
                raise
        return entry

    def soft_delete(self, entry: LedgerEntry, at: datetime | None = None) -> LedgerEntry:
        """Mark an entry deleted; deleted entries disappear from all aggregations."""
        if entry.deleted_at is not None:
            return entry
        return self.update_entry(entry, deleted_at=at or datetime.now(timezone.utc))

    def restore(self, entry: LedgerEntry) -> LedgerEntry:
        """Undo a soft delete."""
        if entry.deleted_at is None:
            return entry
        return self.update_entry(entry, deleted_at=None)

    def sum_expenses(
        self,
        owner_id: int,
        start: date,
        end: date,
        category_id: int | None = None,
    ) -> Decimal:
        """Sum of non-deleted expense magnitudes within [start, end]."""
        with store_errors(self.db):
            query = self.db.query(func.sum(LedgerEntry.amount)).filter(
                LedgerEntry.owner_id == owner_id,
                LedgerEntry.deleted_at.is_(None),
                LedgerEntry.kind == EntryKind.EXPENSE,
                LedgerEntry.occurrence_date >= start,
                LedgerEntry.occurrence_date <= end,
            )
            if category_id is not None:
                query = query.filter(LedgerEntry.category_id == category_id)
            total = query.scalar()
        return _to_money(total)

    def totals_by_kind(self, owner_id: int, start: date, end: date) -> dict[EntryKind, Decimal]:
        """Non-deleted totals per entry kind within [start, end] (missing kinds are zero)."""
        with store_errors(self.db):
            rows = (
                self.db.query(LedgerEntry.kind, func.sum(LedgerEntry.amount))
                .filter(
                    LedgerEntry.owner_id == owner_id,
                    LedgerEntry.deleted_at.is_(None),
                    LedgerEntry.occurrence_date >= start,
                    LedgerEntry.occurrence_date <= end,
                )
                .group_by(LedgerEntry.kind)
                .all()
            )
        totals = {kind: ZERO for kind in EntryKind}
        for kind, total in rows:
            totals[EntryKind(kind)] = _to_money(total)
        return totals

    def get_generation_counter(self, owner_id: int, period_key: str) -> int:
        """Current generation counter for (owner, period); 0 if never mutated."""
        with store_errors(self.db):
            counter = (
                self.db.query(LedgerGeneration.counter)
                .filter(
                    LedgerGeneration.owner_id == owner_id,
                    LedgerGeneration.period_key == period_key,
                )
                .scalar()
            )
        return counter or 0

    def bump_generation(self, owner_id: int, period_keys: Iterable[str]) -> None:
        """Increment generation counters (part of the caller's transaction, no commit)."""
        for key in period_keys:
            result = self.db.execute(
                update(LedgerGeneration)
                .where(
                    LedgerGeneration.owner_id == owner_id,
                    LedgerGeneration.period_key == key,
                )
                .values(counter=LedgerGeneration.counter + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.add(LedgerGeneration(owner_id=owner_id, period_key=key, counter=1))
                self.db.flush()

    def _active_query(self, owner_id: int, start: date, end: date):
        return self.db.query(LedgerEntry).filter(
            LedgerEntry.owner_id == owner_id,
            LedgerEntry.deleted_at.is_(None),
            LedgerEntry.occurrence_date >= start,
            LedgerEntry.occurrence_date <= end,
        )


def _to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


__all__ = ["LedgerStore"]
