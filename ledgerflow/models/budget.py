"""Budget and budget alert ORM models."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledgerflow.models import Base, BaseModel


class BudgetPeriod(str, Enum):
    """Length of a budget window."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AlertType(str, Enum):
    """Kind of budget alert."""

    THRESHOLD = "threshold"  # consumption reached alert_threshold
    OVER_BUDGET = "over_budget"  # consumption reached 100% of target


class Budget(Base, BaseModel):
    """Model representing a spending target over a recurring window.

    Consumption is derived from ledger entries and never stored. The
    window bounds move forward (period-aligned) when an evaluation happens
    after ``window_end``.
    """

    __tablename__ = "budgets"

    owner_id: Mapped[int] = mapped_column(
        nullable=False,
        index=True,
        comment="Owning user",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
        comment="Tracked category; NULL tracks all expense categories",
    )
    target_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    period: Mapped[BudgetPeriod] = mapped_column(
        SQLEnum(BudgetPeriod),
        nullable=False,
        default=BudgetPeriod.MONTHLY,
    )
    window_start: Mapped[date] = mapped_column(Date, nullable=False)
    window_end: Mapped[date] = mapped_column(Date, nullable=False)
    alert_threshold: Mapped[Decimal] = mapped_column(
        Numeric(4, 3),
        nullable=False,
        default=Decimal("0.8"),
        comment="Fraction of target that triggers the threshold alert",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    alerts: Mapped[list["BudgetAlert"]] = relationship(
        "BudgetAlert",
        back_populates="budget",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<Budget(id={self.id}, owner_id={self.owner_id}, category_id={self.category_id}, "
            f"target={self.target_amount}, period={self.period}, "
            f"window={self.window_start}..{self.window_end})>"
        )


class BudgetAlert(Base, BaseModel):
    """Alert recorded when a budget window crosses a threshold.

    At most one alert of each type exists per (budget, window).
    """

    __tablename__ = "budget_alerts"

    owner_id: Mapped[int] = mapped_column(nullable=False, index=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id"),
        nullable=False,
        index=True,
    )
    alert_type: Mapped[AlertType] = mapped_column(
        SQLEnum(AlertType),
        nullable=False,
        default=AlertType.THRESHOLD,
    )
    window_start: Mapped[date] = mapped_column(Date, nullable=False)
    window_end: Mapped[date] = mapped_column(Date, nullable=False)
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    percentage_used: Mapped[Decimal] = mapped_column(
        Numeric(8, 2),
        nullable=False,
        comment="Percentage of target consumed when the alert fired",
    )
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    budget: Mapped["Budget"] = relationship("Budget", back_populates="alerts")

    __table_args__ = (
        UniqueConstraint(
            "budget_id", "window_start", "alert_type", name="uq_alert_budget_window_type"
        ),
        Index("idx_alert_undelivered", "budget_id", "delivered"),
    )

    def __repr__(self) -> str:
        return (
            f"<BudgetAlert(id={self.id}, budget_id={self.budget_id}, type={self.alert_type}, "
            f"window_start={self.window_start}, pct={self.percentage_used}, "
            f"delivered={self.delivered})>"
        )


__all__ = ["Budget", "BudgetAlert", "BudgetPeriod", "AlertType"]
