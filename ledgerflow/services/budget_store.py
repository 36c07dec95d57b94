"""Budget store: budgets, their windows and recorded alerts."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledgerflow.models.budget import AlertType, Budget, BudgetAlert, BudgetPeriod
from ledgerflow.services.config import get_settings
from ledgerflow.services.db import store_errors
from ledgerflow.services.errors import InvalidBudget
from ledgerflow.services.period_service import budget_window

logger = logging.getLogger(__name__)


class BudgetStore:
    """Service for budget and budget alert database operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def create_budget(
        self,
        owner_id: int,
        target_amount: Decimal,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        category_id: int | None = None,
        alert_threshold: Decimal | None = None,
        as_of: date | None = None,
    ) -> Budget:
        """Create a budget whose first window contains `as_of` (default: today).

        Raises:
            InvalidBudget: If target is not positive or threshold not in (0, 1]
        """
        target = Decimal(str(target_amount))
        if target <= 0:
            raise InvalidBudget("Budget target must be positive")
        threshold = (
            Decimal(str(alert_threshold))
            if alert_threshold is not None
            else get_settings().default_alert_threshold
        )
        if not Decimal(0) < threshold <= Decimal(1):
            raise InvalidBudget("Alert threshold must be in (0, 1]")

        window_start, window_end = budget_window(period, as_of or date.today())
        budget = Budget(
            owner_id=owner_id,
            category_id=category_id,
            target_amount=target,
            period=BudgetPeriod(period),
            window_start=window_start,
            window_end=window_end,
            alert_threshold=threshold,
            is_active=True,
        )
        with store_errors(self.db):
            self.db.add(budget)
            self.db.commit()

        logger.info(
            "Created budget: id=%d, owner=%d, target=%s, period=%s, window=%s..%s",
            budget.id,
            owner_id,
            target,
            budget.period.value,
            window_start,
            window_end,
        )
        return budget

    def get(self, budget_id: int) -> Budget | None:
        with store_errors(self.db):
            return self.db.query(Budget).filter(Budget.id == budget_id).first()

    def list_active_budgets(self, owner_id: int) -> list[Budget]:
        with store_errors(self.db):
            return (
                self.db.query(Budget)
                .filter(Budget.owner_id == owner_id, Budget.is_active.is_(True))
                .order_by(Budget.id)
                .all()
            )

    def move_window(self, budget: Budget, window_start: date, window_end: date) -> Budget:
        """Persist new window bounds (rollover)."""
        with store_errors(self.db):
            budget.window_start = window_start
            budget.window_end = window_end
            self.db.commit()
        logger.info(
            "Budget %d rolled over to window %s..%s", budget.id, window_start, window_end
        )
        return budget

    def has_alert(
        self,
        budget_id: int,
        window_start: date,
        alert_type: AlertType = AlertType.THRESHOLD,
    ) -> bool:
        """Whether an alert of this type was already recorded for the window."""
        with store_errors(self.db):
            return (
                self.db.query(BudgetAlert.id)
                .filter(
                    BudgetAlert.budget_id == budget_id,
                    BudgetAlert.window_start == window_start,
                    BudgetAlert.alert_type == alert_type,
                )
                .first()
                is not None
            )

    def has_undelivered_alert(self, budget_id: int, window_start: date) -> bool:
        with store_errors(self.db):
            return (
                self.db.query(BudgetAlert.id)
                .filter(
                    BudgetAlert.budget_id == budget_id,
                    BudgetAlert.window_start == window_start,
                    BudgetAlert.delivered.is_(False),
                )
                .first()
                is not None
            )

    def record_alert(self, alert: BudgetAlert) -> BudgetAlert | None:
        """Persist an alert.

        Returns:
            The stored alert, or None if one of the same type already exists
            for the (budget, window)
        """
        with store_errors(self.db):
            try:
                self.db.add(alert)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.debug(
                    "Alert %s for budget %d window %s already recorded",
                    alert.alert_type,
                    alert.budget_id,
                    alert.window_start,
                )
                return None
        logger.info(
            "Recorded %s alert for budget %d at %s%%",
            alert.alert_type.value,
            alert.budget_id,
            alert.percentage_used,
        )
        return alert

    def list_undelivered_alerts(self, owner_id: int | None = None) -> list[BudgetAlert]:
        with store_errors(self.db):
            query = self.db.query(BudgetAlert).filter(BudgetAlert.delivered.is_(False))
            if owner_id is not None:
                query = query.filter(BudgetAlert.owner_id == owner_id)
            return query.order_by(BudgetAlert.triggered_at, BudgetAlert.id).all()

    def mark_delivered(self, alert_id: int) -> bool:
        """Mark an alert delivered. Returns False if the alert does not exist."""
        with store_errors(self.db):
            alert = self.db.query(BudgetAlert).filter(BudgetAlert.id == alert_id).first()
            if not alert:
                return False
            alert.delivered = True
            alert.delivered_at = datetime.now(timezone.utc)
            self.db.commit()
        return True

    def reset_alerts(self, budget_id: int, window_start: date) -> int:
        """Explicitly clear a window's alerts so they may fire again.

        Returns:
            Number of alerts removed
        """
        with store_errors(self.db):
            removed = (
                self.db.query(BudgetAlert)
                .filter(
                    BudgetAlert.budget_id == budget_id,
                    BudgetAlert.window_start == window_start,
                )
                .delete(synchronize_session="fetch")
            )
            self.db.commit()
        logger.info("Reset %d alert(s) for budget %d window %s", removed, budget_id, window_start)
        return removed


__all__ = ["BudgetStore"]
