"""Pytest configuration and shared fixtures."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ledgerflow.models import Base, Category, EntryKind, LedgerEntry
from ledgerflow.services.config import reset_settings
from ledgerflow.services.ledger_store import LedgerStore


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings from the environment in every test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def owner_id() -> int:
    return 1


@pytest.fixture
def food(db_session, owner_id) -> Category:
    category = Category(owner_id=owner_id, name="food", kind="expense")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def rent(db_session, owner_id) -> Category:
    category = Category(owner_id=owner_id, name="rent", kind="expense")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def add_entry(db_session, owner_id):
    """Factory that stores an entry through the ledger store."""
    store = LedgerStore(db_session)

    def _add(amount, on: date, kind=EntryKind.EXPENSE, category=None, owner=None):
        entry, _ = store.create_entry(
            LedgerEntry(
                owner_id=owner if owner is not None else owner_id,
                category_id=category.id if category is not None else None,
                amount=Decimal(str(amount)),
                kind=kind,
                occurrence_date=on,
                tags=[],
            )
        )
        return entry

    return _add
