"""Ledger entry ORM model for income, expense and transfer records."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledgerflow.models import Base, BaseModel


class EntryKind(str, Enum):
    """Kind of ledger entry; determines the sign of the amount."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class LedgerEntry(Base, BaseModel):
    """Model representing a single dated ledger entry.

    The amount is stored as a strictly positive magnitude; its sign is
    implied by ``kind`` (see ``signed_amount``). Entries are never
    physically removed: ``deleted_at`` marks a soft delete and such rows
    are excluded from every aggregation.

    Entries generated by a recurring rule carry ``recurring_rule_id``;
    the (rule, occurrence date) pair is unique so repeated or overlapping
    ticks cannot materialize the same occurrence twice.
    """

    __tablename__ = "ledger_entries"

    owner_id: Mapped[int] = mapped_column(
        nullable=False,
        index=True,
        comment="Owning user",
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id"),
        nullable=True,
        index=True,
        comment="Optional category",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Positive magnitude in the owner's ledger currency",
    )
    kind: Mapped[EntryKind] = mapped_column(
        SQLEnum(EntryKind),
        nullable=False,
        comment="income, expense or transfer",
    )
    occurrence_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Calendar date the entry belongs to",
    )
    description: Mapped[str | None] = mapped_column(
        nullable=True,
        comment="Free-text description",
    )
    tags: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Tag set stored as a sorted JSON list",
    )
    recurring_rule_id: Mapped[int | None] = mapped_column(
        ForeignKey("recurring_rules.id"),
        nullable=True,
        index=True,
        comment="Rule that generated this entry, if any",
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft-delete marker",
    )

    # Relationships
    category: Mapped["Category | None"] = relationship(  # noqa: F821
        "Category",
        foreign_keys=[category_id],
    )
    recurring_rule: Mapped["RecurringRule | None"] = relationship(  # noqa: F821
        "RecurringRule",
        back_populates="entries",
        foreign_keys=[recurring_rule_id],
    )

    __table_args__ = (
        UniqueConstraint(
            "recurring_rule_id", "occurrence_date", name="uq_entry_rule_occurrence"
        ),
        CheckConstraint("amount > 0", name="ck_entry_amount_positive"),
        Index("idx_entry_owner_date", "owner_id", "occurrence_date"),
        Index("idx_entry_owner_category", "owner_id", "category_id"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def signed_amount(self) -> Decimal:
        """Amount with its semantic sign: expenses negative, everything else positive."""
        if self.kind == EntryKind.EXPENSE:
            return -self.amount
        return self.amount

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, owner_id={self.owner_id}, kind={self.kind}, "
            f"amount={self.amount}, date={self.occurrence_date}, rule_id={self.recurring_rule_id})>"
        )


__all__ = ["LedgerEntry", "EntryKind"]
