"""Recurring rule ORM model: template for generated ledger entries."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledgerflow.models import Base, BaseModel
from ledgerflow.models.ledger_entry import EntryKind


class Frequency(str, Enum):
    """Recurrence unit of a rule."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringRule(Base, BaseModel):
    """Model representing a recurring income/expense rule.

    ``next_due`` is the cursor: the next occurrence date that has not been
    materialized yet. It only moves forward (advanced by the recurrence
    engine) or is re-derived on user edits. Once it passes ``end_date``
    the rule is deactivated.

    Day fields:
    - day_of_week: 0=Monday..6=Sunday (weekly; defaults to start weekday)
    - day_of_month: 1..31, clamped to the month length (monthly/yearly)
    - month_of_year: 1..12 (yearly; defaults to start month)
    """

    __tablename__ = "recurring_rules"

    owner_id: Mapped[int] = mapped_column(
        nullable=False,
        index=True,
        comment="Owning user",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
        comment="Category copied to generated entries",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Positive magnitude copied to generated entries",
    )
    kind: Mapped[EntryKind] = mapped_column(
        SQLEnum(EntryKind),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(nullable=True)

    # Schedule
    frequency: Mapped[Frequency] = mapped_column(
        SQLEnum(Frequency),
        nullable=False,
    )
    interval: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        comment="Every N frequency units",
    )
    day_of_week: Mapped[int | None] = mapped_column(nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(nullable=True)
    month_of_year: Mapped[int | None] = mapped_column(nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Cursor and lifecycle
    next_due: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Next occurrence not yet materialized",
    )
    last_generated_on: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Occurrence date of the latest materialized entry",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    needs_review: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set when catch-up was capped and the cursor jumped forward",
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(  # noqa: F821
        "LedgerEntry",
        back_populates="recurring_rule",
    )

    __table_args__ = (Index("idx_rule_active_due", "is_active", "next_due"),)

    def __repr__(self) -> str:
        return (
            f"<RecurringRule(id={self.id}, owner_id={self.owner_id}, "
            f"frequency={self.frequency}, interval={self.interval}, next_due={self.next_due}, "
            f"active={self.is_active})>"
        )


__all__ = ["RecurringRule", "Frequency"]
