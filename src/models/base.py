"""
Base SQLAlchemy configuration and utilities for Metapel models.
"""

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

import structlog
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator

logger = structlog.get_logger(__name__)


class JSONType(TypeDecorator):
    """Cross-database JSON type that works with both PostgreSQL and SQLite.

    Uses JSONB on PostgreSQL for performance, falls back to JSON on SQLite.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Database URL from environment or default to a local SQLite file
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./metapel.db"
)

if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://", 1)


def get_engine(database_url: str | None = None):
    """Create SQLAlchemy engine.

    Args:
        database_url: Optional database URL override.

    Returns:
        SQLAlchemy engine instance.
    """
    url = database_url or DATABASE_URL

    # SQLite-specific settings
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=os.getenv("SQL_ECHO", "false").lower() == "true"
        )

    # PostgreSQL settings
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=os.getenv("SQL_ECHO", "false").lower() == "true"
    )


# Default engine and session factory
_engine = None
_SessionLocal = None


def get_session_factory(engine=None):
    """Get or create session factory."""
    global _engine, _SessionLocal

    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, bind=engine)

    if _SessionLocal is None:
        _engine = get_engine()
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _SessionLocal


@contextmanager
def transaction(session_factory) -> Iterator[Session]:
    """Run a unit of work in a single transaction.

    Commits when the block exits cleanly; any exception rolls back every
    change made inside the block and propagates to the caller.

    Args:
        session_factory: SQLAlchemy session factory.

    Yields:
        SQLAlchemy session bound to the open transaction.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        try:
            session.rollback()
        except Exception:
            logger.error("transaction_rollback_failed")
            raise
        raise
    finally:
        session.close()

