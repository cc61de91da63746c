"""Database session management."""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from prodai_engine.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine; pool sizing only applies to server databases."""
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)
    return create_engine(database_url, **kwargs)


# Create engine
engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_session() -> Generator[Session, None, None]:
    """Get a database session (for FastAPI dependency injection)."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_session_context() -> Generator[Session, None, None]:
    """Get a database session as a context manager (for use outside of FastAPI)."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Verify database connectivity."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
