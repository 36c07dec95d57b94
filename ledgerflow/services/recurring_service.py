"""Recurring rule management: creation, validation, edits and previews."""

import calendar
import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from ledgerflow.models.ledger_entry import EntryKind
from ledgerflow.models.recurring_rule import Frequency, RecurringRule
from ledgerflow.services.calendar_math import (
    first_occurrence,
    occurrence_on_or_after,
    occurrences_between,
)
from ledgerflow.services.db import store_errors
from ledgerflow.services.errors import InvalidRuleConfig

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "amount",
    "kind",
    "category_id",
    "description",
    "frequency",
    "interval",
    "day_of_week",
    "day_of_month",
    "month_of_year",
    "start_date",
    "end_date",
}


def validate_rule_config(
    amount,
    kind,
    frequency,
    start_date: date,
    interval: int = 1,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    month_of_year: int | None = None,
    end_date: date | None = None,
) -> tuple[Decimal, EntryKind, Frequency]:
    """Validate a rule configuration.

    Returns:
        Normalized (amount, kind, frequency)

    Raises:
        InvalidRuleConfig: On any invalid field
    """
    try:
        amount = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidRuleConfig(f"Invalid amount: {amount!r}") from e
    if amount <= 0:
        raise InvalidRuleConfig("Amount must be positive")

    try:
        kind = EntryKind(kind)
    except ValueError as e:
        raise InvalidRuleConfig(f"Unknown entry kind: {kind!r}") from e
    try:
        frequency = Frequency(frequency)
    except ValueError as e:
        raise InvalidRuleConfig(f"Unknown frequency: {frequency!r}") from e

    if not isinstance(interval, int) or interval < 1:
        raise InvalidRuleConfig("Interval must be a positive integer")
    if start_date is None:
        raise InvalidRuleConfig("Start date is required")
    if end_date is not None and end_date < start_date:
        raise InvalidRuleConfig("End date must not be before start date")

    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise InvalidRuleConfig("day_of_week must be 0 (Monday) to 6 (Sunday)")
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise InvalidRuleConfig("day_of_month must be 1 to 31")
    if month_of_year is not None and not 1 <= month_of_year <= 12:
        raise InvalidRuleConfig("month_of_year must be 1 to 12")

    if frequency == Frequency.YEARLY:
        month = month_of_year or start_date.month
        day = day_of_month or start_date.day
        # Feb 29 clamps in common years; Feb 30 or Apr 31 never exist
        if day > calendar.monthrange(2000, month)[1]:
            raise InvalidRuleConfig(f"Day {day} never occurs in month {month}")

    return amount, kind, frequency


class RecurringRuleService:
    """Service for recurring rule lifecycle operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def get_by_id(self, rule_id: int) -> RecurringRule | None:
        with store_errors(self.db):
            return self.db.query(RecurringRule).filter(RecurringRule.id == rule_id).first()

    def list_rules(self, owner_id: int, active_only: bool = False) -> list[RecurringRule]:
        with store_errors(self.db):
            query = self.db.query(RecurringRule).filter(RecurringRule.owner_id == owner_id)
            if active_only:
                query = query.filter(RecurringRule.is_active.is_(True))
            return query.order_by(RecurringRule.next_due, RecurringRule.id).all()

    def list_needing_review(self, owner_id: int) -> list[RecurringRule]:
        with store_errors(self.db):
            return (
                self.db.query(RecurringRule)
                .filter(RecurringRule.owner_id == owner_id, RecurringRule.needs_review.is_(True))
                .order_by(RecurringRule.id)
                .all()
            )

    def create_rule(
        self,
        owner_id: int,
        amount,
        kind,
        frequency,
        start_date: date,
        interval: int = 1,
        category_id: int | None = None,
        description: str | None = None,
        day_of_week: int | None = None,
        day_of_month: int | None = None,
        month_of_year: int | None = None,
        end_date: date | None = None,
    ) -> RecurringRule:
        """Create a rule; its cursor starts at the first occurrence on or after start_date.

        Raises:
            InvalidRuleConfig: If the configuration is invalid or no
                occurrence falls between start_date and end_date
        """
        amount, kind, frequency = validate_rule_config(
            amount,
            kind,
            frequency,
            start_date,
            interval=interval,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            end_date=end_date,
        )
        rule = RecurringRule(
            owner_id=owner_id,
            category_id=category_id,
            amount=amount,
            kind=kind,
            description=description,
            frequency=frequency,
            interval=interval,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
            needs_review=False,
        )
        rule.next_due = first_occurrence(rule)
        if end_date is not None and rule.next_due > end_date:
            raise InvalidRuleConfig("No occurrence between start date and end date")

        with store_errors(self.db):
            self.db.add(rule)
            self.db.commit()

        logger.info(
            "Created recurring rule: id=%d, owner=%d, %s every %d, next_due=%s",
            rule.id,
            owner_id,
            frequency.value,
            interval,
            rule.next_due,
        )
        return rule

    def update_rule(self, rule_id: int, today: date | None = None, **changes) -> RecurringRule | None:
        """Edit a rule and re-derive its cursor.

        The new next_due is the first occurrence on or after today (and after
        the last materialized occurrence), so an edit never backfills.

        Returns:
            Updated rule, or None if not found

        Raises:
            InvalidRuleConfig: On unknown fields or an invalid resulting configuration
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRuleConfig(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        rule = self.get_by_id(rule_id)
        if not rule:
            return None

        merged = {field: getattr(rule, field) for field in EDITABLE_FIELDS}
        merged.update(changes)
        amount, kind, frequency = validate_rule_config(
            merged["amount"],
            merged["kind"],
            merged["frequency"],
            merged["start_date"],
            interval=merged["interval"],
            day_of_week=merged["day_of_week"],
            day_of_month=merged["day_of_month"],
            month_of_year=merged["month_of_year"],
            end_date=merged["end_date"],
        )
        merged.update(amount=amount, kind=kind, frequency=frequency)

        with store_errors(self.db):
            for field, value in merged.items():
                setattr(rule, field, value)
            self._rederive_cursor(rule, today or date.today())
            self.db.commit()

        logger.info(
            "Updated recurring rule %d: fields=%s, next_due=%s, active=%s",
            rule_id,
            ",".join(sorted(changes)),
            rule.next_due,
            rule.is_active,
        )
        return rule

    def set_active(self, rule_id: int, is_active: bool, today: date | None = None) -> bool:
        """Pause or resume a rule. Resuming skips occurrences missed while paused.

        Returns:
            True if successful, False if rule not found
        """
        rule = self.get_by_id(rule_id)
        if not rule:
            return False
        with store_errors(self.db):
            if is_active:
                rule.is_active = True
                self._rederive_cursor(rule, today or date.today())
            else:
                rule.is_active = False
            self.db.commit()
        logger.info("Recurring rule %d active=%s", rule_id, rule.is_active)
        return True

    def acknowledge_review(self, rule_id: int) -> bool:
        rule = self.get_by_id(rule_id)
        if not rule:
            return False
        with store_errors(self.db):
            rule.needs_review = False
            self.db.commit()
        return True

    def preview(self, rule: RecurringRule, start: date, end: date, limit: int = 50) -> list[date]:
        """Upcoming occurrence dates within [start, end] without materializing them."""
        return occurrences_between(rule, max(start, rule.start_date), end, limit=limit)

    @staticmethod
    def _rederive_cursor(rule: RecurringRule, today: date) -> None:
        floor = max(rule.start_date, today)
        if rule.last_generated_on is not None:
            floor = max(floor, rule.last_generated_on + timedelta(days=1))
        rule.next_due = occurrence_on_or_after(rule, floor)
        if rule.end_date is not None and rule.next_due > rule.end_date:
            rule.is_active = False


__all__ = ["RecurringRuleService", "validate_rule_config", "EDITABLE_FIELDS"]
