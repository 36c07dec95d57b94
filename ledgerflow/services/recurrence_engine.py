"""Recurrence engine: materializes due occurrences of recurring rules.

One tick:
1. Page through active rules with next_due <= now (keyset by id)
2. For each rule, create one entry per due occurrence (bounded by the
   catch-up cap), then advance the cursor past `now`
3. Deactivate rules whose cursor passed their end date

Rules are processed in isolation: a failing rule is rolled back, keeps its
cursor and is reported, the others continue. Entry creation is idempotent
by (rule, occurrence date), so a rule retried after a partial failure or
processed by an overlapping tick never produces duplicates.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgerflow.models.ledger_entry import LedgerEntry
from ledgerflow.models.recurring_rule import RecurringRule
from ledgerflow.services.calendar_math import next_occurrence
from ledgerflow.services.config import get_settings
from ledgerflow.services.errors import LedgerFlowError
from ledgerflow.services.ledger_store import LedgerStore
from ledgerflow.services.rule_store import RuleStore

logger = logging.getLogger(__name__)

RECURRING_TAG = "recurring"


@dataclass
class OccurrencePlan:
    """What a tick will do for one rule."""

    dates: list[date]
    """Occurrence dates to materialize, oldest first"""

    next_due: date
    """Cursor value after the tick (always > now unless stopped by end_date)"""

    capped: bool = False
    """Whether the catch-up cap was hit and the cursor jumped forward"""


@dataclass
class RuleOutcome:
    """Per-rule result of a tick."""

    rule_id: int
    succeeded: bool
    created: int = 0
    conflicts: int = 0
    next_due: date | None = None
    deactivated: bool = False
    flagged_for_review: bool = False
    error: str | None = None


@dataclass
class TickResult:
    """Result of one engine tick."""

    now: date
    created: list[LedgerEntry] = field(default_factory=list)
    outcomes: list[RuleOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def affected_owners(self) -> set[int]:
        return {entry.owner_id for entry in self.created}

    def record(self, outcome: RuleOutcome) -> None:
        """Store a rule outcome, replacing the one from an interrupted attempt."""
        self.outcomes = [o for o in self.outcomes if o.rule_id != outcome.rule_id]
        self.outcomes.append(outcome)


class RecurrenceEngine:
    """Turns recurring rules into ledger entries, one tick at a time."""

    def __init__(
        self,
        db: Session,
        ledger_store: LedgerStore | None = None,
        rule_store: RuleStore | None = None,
        catch_up_cap: int | None = None,
        batch_size: int | None = None,
        time_budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.db = db
        self.ledger_store = ledger_store or LedgerStore(db)
        self.rule_store = rule_store or RuleStore(db)
        self.catch_up_cap = catch_up_cap or settings.catch_up_cap
        self.batch_size = batch_size or settings.tick_batch_size
        self.time_budget_seconds = (
            time_budget_seconds
            if time_budget_seconds is not None
            else settings.tick_time_budget_seconds
        )
        self.clock = clock

    def tick(self, now: date, result: TickResult | None = None) -> TickResult:
        """Materialize every occurrence due on or before `now`.

        Args:
            now: Materialize occurrences dated on or before this day
            result: Result of an interrupted attempt to keep accumulating into

        Raises:
            StoreUnavailable: If due rules cannot be listed
        """
        result = result if result is not None else TickResult(now=now)
        deadline = self.clock() + self.time_budget_seconds
        after_id = 0

        while not result.cancelled:
            rules = self.rule_store.list_active_rules(
                now, limit=self.batch_size, after_id=after_id
            )
            if not rules:
                break

            for rule in rules:
                if self.clock() >= deadline:
                    result.cancelled = True
                    logger.warning(
                        "Tick for %s exceeded its %.1fs budget; stopping before rule %d",
                        now,
                        self.time_budget_seconds,
                        rule.id,
                    )
                    break
                after_id = rule.id
                result.record(self._process_rule(rule, now, result))

            if len(rules) < self.batch_size:
                break

        logger.info(
            "Tick %s: created=%d succeeded=%d failed=%d cancelled=%s",
            now,
            len(result.created),
            result.succeeded,
            result.failed,
            result.cancelled,
        )
        return result

    def plan_occurrences(self, rule: RecurringRule, now: date) -> OccurrencePlan:
        """Compute the occurrences to materialize and the new cursor (no side effects)."""
        end = rule.end_date
        dates: list[date] = []
        current = rule.next_due
        capped = False

        while current <= now and (end is None or current <= end):
            if len(dates) >= self.catch_up_cap:
                capped = True
                break
            dates.append(current)
            current = next_occurrence(rule, current)

        if capped:
            # Skip the remaining backlog instead of backfilling it
            while current <= now:
                current = next_occurrence(rule, current)

        return OccurrencePlan(dates=dates, next_due=current, capped=capped)

    def _process_rule(self, rule: RecurringRule, now: date, result: TickResult) -> RuleOutcome:
        rule_id = rule.id
        outcome = RuleOutcome(rule_id=rule_id, succeeded=False)
        try:
            plan = self.plan_occurrences(rule, now)
            template = self._entry_template(rule)
            end_date = rule.end_date

            for occurrence in plan.dates:
                entry, conflict = self.ledger_store.create_entry(
                    self._build_entry(template, occurrence)
                )
                if conflict:
                    outcome.conflicts += 1
                else:
                    outcome.created += 1
                    result.created.append(entry)

            self.rule_store.advance_cursor(
                rule_id,
                plan.next_due,
                last_generated_on=plan.dates[-1] if plan.dates else None,
                commit=False,
            )
            if plan.capped:
                self.rule_store.flag_for_review(rule_id, commit=False)
                outcome.flagged_for_review = True
                logger.warning(
                    "Rule %d hit the catch-up cap of %d; cursor jumped to %s",
                    rule_id,
                    self.catch_up_cap,
                    plan.next_due,
                )
            if end_date is not None and plan.next_due > end_date:
                self.rule_store.deactivate(rule_id, commit=False)
                outcome.deactivated = True
            self.db.commit()
        except (SQLAlchemyError, LedgerFlowError) as e:
            self.db.rollback()
            logger.error("Recurring rule %d failed: %s", rule_id, e, exc_info=True)
            outcome.error = str(e)
            return outcome

        outcome.succeeded = True
        outcome.next_due = plan.next_due
        return outcome

    @staticmethod
    def _build_entry(template: dict, occurrence: date) -> LedgerEntry:
        return LedgerEntry(occurrence_date=occurrence, **dict(template, tags=list(template["tags"])))

    @staticmethod
    def _entry_template(rule: RecurringRule) -> dict:
        return {
            "owner_id": rule.owner_id,
            "category_id": rule.category_id,
            "amount": rule.amount,
            "kind": rule.kind,
            "description": rule.description,
            "recurring_rule_id": rule.id,
            "tags": [RECURRING_TAG, f"rule:{rule.id}"],
        }


__all__ = ["RecurrenceEngine", "TickResult", "RuleOutcome", "OccurrencePlan"]
