"""Category ORM model for grouping ledger entries."""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledgerflow.models import Base, BaseModel


class Category(Base, BaseModel):
    """Model representing a user-defined entry category (e.g. "food", "salary")."""

    __tablename__ = "categories"

    owner_id: Mapped[int] = mapped_column(
        nullable=False,
        index=True,
        comment="Owning user",
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Category name, unique per owner",
    )
    kind: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Optional preferred entry kind (income/expense/transfer)",
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_category_owner_name"),
        Index("idx_category_owner", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, owner_id={self.owner_id}, name={self.name!r})>"


__all__ = ["Category"]
