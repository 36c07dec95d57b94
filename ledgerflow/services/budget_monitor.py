"""Budget monitor: consumption tracking and once-per-window alerts.

Evaluation rules:
- Consumption = sum of non-deleted expense magnitudes of the owner (and
  category, when the budget has one) dated inside the current window
- An evaluation after window_end rolls the window forward to the
  period-aligned window containing as_of; alerts are keyed by window, so
  the new window starts with nothing fired
- THRESHOLD alert fires once per window when consumption reaches
  target * alert_threshold
- OVER_BUDGET alert fires once per window when consumption reaches target,
  independently of the threshold alert
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgerflow.models.budget import AlertType, Budget, BudgetAlert
from ledgerflow.services.budget_store import BudgetStore
from ledgerflow.services.errors import InvalidBudget, LedgerFlowError
from ledgerflow.services.ledger_store import LedgerStore
from ledgerflow.services.notification_service import BudgetAlertEvent, NotificationSink
from ledgerflow.services.period_service import budget_window

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class BudgetEvaluation:
    """Consumption of one budget in its current window."""

    budget_id: int
    owner_id: int
    window_start: date
    window_end: date
    target: Decimal
    consumption: Decimal
    ratio: Decimal
    percentage: Decimal
    rolled_over: bool = False
    alert_event: BudgetAlertEvent | None = None
    over_budget_event: BudgetAlertEvent | None = None

    @property
    def remaining(self) -> Decimal:
        return self.target - self.consumption

    @property
    def events(self) -> list[BudgetAlertEvent]:
        return [e for e in (self.alert_event, self.over_budget_event) if e is not None]


@dataclass
class BudgetReport:
    """Evaluation of all active budgets of an owner."""

    owner_id: int
    as_of: date
    evaluations: list[BudgetEvaluation] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.evaluations)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def events(self) -> list[BudgetAlertEvent]:
        return [event for evaluation in self.evaluations for event in evaluation.events]


class BudgetMonitor:
    """Evaluate budgets against ledger entries and raise alerts."""

    def __init__(
        self,
        db: Session,
        ledger_store: LedgerStore | None = None,
        budget_store: BudgetStore | None = None,
        sink: NotificationSink | None = None,
    ):
        self.db = db
        self.ledger_store = ledger_store or LedgerStore(db)
        self.budget_store = budget_store or BudgetStore(db)
        self.sink = sink

    def evaluate(self, budget: Budget, as_of: date) -> BudgetEvaluation:
        """Compute consumption for the budget's current window and fire due alerts.

        Args:
            budget: Budget to evaluate
            as_of: Evaluation date; a date after window_end rolls the window

        Returns:
            BudgetEvaluation with any alert events raised by this call

        Raises:
            InvalidBudget: If the stored target is not positive
        """
        target = Decimal(str(budget.target_amount))
        if target <= 0:
            raise InvalidBudget(f"Budget {budget.id} has non-positive target {target}")

        rolled_over = False
        if as_of > budget.window_end:
            window_start, window_end = budget_window(budget.period, as_of)
            self.budget_store.move_window(budget, window_start, window_end)
            rolled_over = True

        window_start, window_end = budget.window_start, budget.window_end
        threshold = Decimal(str(budget.alert_threshold))
        consumption = self.ledger_store.sum_expenses(
            budget.owner_id, window_start, window_end, budget.category_id
        )
        ratio = consumption / target
        evaluation = BudgetEvaluation(
            budget_id=budget.id,
            owner_id=budget.owner_id,
            window_start=window_start,
            window_end=window_end,
            target=target,
            consumption=consumption,
            ratio=ratio,
            percentage=(ratio * 100).quantize(CENT, rounding=ROUND_HALF_UP),
            rolled_over=rolled_over,
        )

        if consumption >= target * threshold:
            evaluation.alert_event = self._raise_alert(budget, evaluation, AlertType.THRESHOLD)
        if consumption >= target:
            evaluation.over_budget_event = self._raise_alert(
                budget, evaluation, AlertType.OVER_BUDGET
            )
        return evaluation

    def evaluate_owner(self, owner_id: int, as_of: date) -> BudgetReport:
        """Evaluate every active budget of an owner; failures are isolated per budget."""
        report = BudgetReport(owner_id=owner_id, as_of=as_of)
        for budget in self.budget_store.list_active_budgets(owner_id):
            budget_id = budget.id
            try:
                report.evaluations.append(self.evaluate(budget, as_of))
            except (SQLAlchemyError, LedgerFlowError) as e:
                self.db.rollback()
                logger.error("Budget %d evaluation failed: %s", budget_id, e, exc_info=True)
                report.failures[budget_id] = str(e)
        return report

    def _raise_alert(
        self,
        budget: Budget,
        evaluation: BudgetEvaluation,
        alert_type: AlertType,
    ) -> BudgetAlertEvent | None:
        if self.budget_store.has_alert(budget.id, evaluation.window_start, alert_type):
            return None

        alert = self.budget_store.record_alert(
            BudgetAlert(
                owner_id=budget.owner_id,
                budget_id=budget.id,
                alert_type=alert_type,
                window_start=evaluation.window_start,
                window_end=evaluation.window_end,
                percentage_used=evaluation.percentage,
            )
        )
        if alert is None:
            return None

        event = BudgetAlertEvent.from_alert(alert)
        if self.sink is not None:
            self.sink.enqueue(event)
        return event


__all__ = ["BudgetMonitor", "BudgetEvaluation", "BudgetReport"]
