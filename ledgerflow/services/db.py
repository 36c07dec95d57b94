"""Database connection and session management."""

from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledgerflow.models import Base
from ledgerflow.services.config import get_settings
from ledgerflow.services.errors import StoreUnavailable

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine (SQLite uses StaticPool for simplicity in dev/test)."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def get_engine() -> Engine:
    """Get or create the process-wide engine from settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(settings.database_url, settings.database_echo)
    return _engine


def SessionLocal() -> Session:  # noqa: N802
    """Open a new session bound to the configured engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory()


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def store_errors(db: Session) -> Iterator[None]:
    """Translate transient driver failures into StoreUnavailable.

    The session is rolled back so the caller can keep using it.
    """
    try:
        yield
    except (OperationalError, DisconnectionError) as e:
        db.rollback()
        raise StoreUnavailable(f"Ledger store unavailable: {e}") from e


__all__ = [
    "create_db_engine",
    "get_engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "store_errors",
]
