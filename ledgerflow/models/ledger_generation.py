"""Generation counter ORM model used to version cached statistics."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledgerflow.models import Base, BaseModel


class LedgerGeneration(Base, BaseModel):
    """Per-(owner, period) version stamp.

    Incremented in the same commit as any entry mutation affecting the
    period, so a cached snapshot whose version differs is stale.
    """

    __tablename__ = "ledger_generations"

    owner_id: Mapped[int] = mapped_column(nullable=False)
    period_key: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="Period descriptor (e.g. '2024-01', '2024-Q1', '2024', '2024-W05')",
    )
    counter: Mapped[int] = mapped_column(nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("owner_id", "period_key", name="uq_generation_owner_period"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerGeneration(owner_id={self.owner_id}, period={self.period_key}, "
            f"counter={self.counter})>"
        )


__all__ = ["LedgerGeneration"]
