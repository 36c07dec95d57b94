"""Rule store: persistence operations on recurring rules used by the engine."""

import logging
from datetime import date

from sqlalchemy import update
from sqlalchemy.orm import Session

from ledgerflow.models.recurring_rule import RecurringRule
from ledgerflow.services.db import store_errors

logger = logging.getLogger(__name__)


class RuleStore:
    """Cursor-level operations on recurring rules."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def get(self, rule_id: int) -> RecurringRule | None:
        with store_errors(self.db):
            return self.db.query(RecurringRule).filter(RecurringRule.id == rule_id).first()

    def list_active_rules(
        self,
        due_before: date,
        limit: int | None = None,
        after_id: int = 0,
    ) -> list[RecurringRule]:
        """List active rules with next_due <= due_before.

        Args:
            due_before: Inclusive cut-off for next_due
            limit: Page size (None = no limit)
            after_id: Keyset pagination cursor; only rules with a larger id

        Returns:
            Rules ordered by id
        """
        with store_errors(self.db):
            query = (
                self.db.query(RecurringRule)
                .filter(
                    RecurringRule.is_active.is_(True),
                    RecurringRule.next_due <= due_before,
                    RecurringRule.id > after_id,
                )
                .order_by(RecurringRule.id)
            )
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def advance_cursor(
        self,
        rule_id: int,
        new_next_due: date,
        last_generated_on: date | None = None,
        commit: bool = True,
    ) -> bool:
        """Move a rule's cursor forward.

        The cursor never moves backwards: an overlapping tick that already
        advanced further wins.

        Returns:
            True if the cursor moved
        """
        values = {"next_due": new_next_due}
        if last_generated_on is not None:
            values["last_generated_on"] = last_generated_on
        with store_errors(self.db):
            result = self.db.execute(
                update(RecurringRule)
                .where(RecurringRule.id == rule_id, RecurringRule.next_due < new_next_due)
                .values(**values)
                .execution_options(synchronize_session="fetch")
            )
            if commit:
                self.db.commit()
        moved = result.rowcount > 0
        if not moved:
            logger.debug("Cursor of rule %d already at or past %s", rule_id, new_next_due)
        return moved

    def deactivate(self, rule_id: int, commit: bool = True) -> None:
        with store_errors(self.db):
            self.db.execute(
                update(RecurringRule)
                .where(RecurringRule.id == rule_id)
                .values(is_active=False)
                .execution_options(synchronize_session="fetch")
            )
            if commit:
                self.db.commit()
        logger.info("Deactivated recurring rule %d", rule_id)

    def flag_for_review(self, rule_id: int, commit: bool = True) -> None:
        """Mark a rule whose catch-up was capped so the owner can review it."""
        with store_errors(self.db):
            self.db.execute(
                update(RecurringRule)
                .where(RecurringRule.id == rule_id)
                .values(needs_review=True)
                .execution_options(synchronize_session="fetch")
            )
            if commit:
                self.db.commit()


__all__ = ["RuleStore"]
