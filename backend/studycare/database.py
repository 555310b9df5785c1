"""
StudyCare Backend — Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, FastAPI session dependency,
       and the duplicate-tolerant create helper shared by every service.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling, provides a session
       dependency that commits on success and rolls back on error.
Who:   Route handlers (via Depends), background tasks (via the factory),
       services (via create_or_fetch).
When:  Engine is created at module import; sessions are created per request.

Connection Pooling Strategy:
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour
"""

import logging
from typing import AsyncGenerator, Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from studycare.config import settings
from studycare.exceptions import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
    pool_recycle=3600,
    echo=settings.log_level == "DEBUG",
)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: ORM objects stay readable after the request commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    A single metadata object is shared so Alembic and the test suite can
    create the complete schema from `Base.metadata`.
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler (and to any dependency sharing it,
           e.g. the authentication dependency)
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ══════════════════════════════════════════════════════════════════════════
# Duplicate-Tolerant Create
# ══════════════════════════════════════════════════════════════════════════

async def create_or_fetch(
    db: AsyncSession,
    attempts: Sequence[Callable[[], Awaitable[Optional[T]]]],
    fetch: Callable[[], Awaitable[Optional[T]]],
    description: str = "record",
) -> Tuple[T, bool]:
    """
    Create a record, tolerating a concurrent caller creating it first.

    Contract:
        - Each callable in `attempts` is tried in order inside its own
          SAVEPOINT. The first to return a non-None value wins and the
          result is `(record, True)`.
        - A unique-key violation (IntegrityError) means the row already
          exists: `fetch()` is called and `(existing, False)` is returned.
          The conflict itself is never raised to the caller.
        - Any other database failure moves on to the next attempt (e.g. a
          direct insert falling back to a privileged SQL function).
        - An attempt returning None (e.g. `INSERT ... ON CONFLICT DO NOTHING
          RETURNING id`) also moves on.
        - When every attempt is exhausted, one last `fetch()` decides between
          `(existing, False)` and DatabaseError.

    Why SAVEPOINTs:
        In PostgreSQL a failed statement aborts the whole transaction. Running
        each attempt in `begin_nested()` rolls back only that attempt, so the
        request's session stays usable for the fetch that follows.

    Args:
        db:          The request-scoped session.
        attempts:    Zero-argument coroutine factories that create the row.
        fetch:       Zero-argument coroutine factory that loads the row.
        description: Used in log lines only.

    Returns:
        (record, created)
    """
    last_error: Optional[Exception] = None

    for index, attempt in enumerate(attempts):
        try:
            async with db.begin_nested():
                record = await attempt()
            if record is not None:
                return record, True
            logger.info("Create attempt %d for %s produced no row", index + 1, description)
        except IntegrityError as e:
            existing = await fetch()
            if existing is not None:
                logger.info(
                    "Duplicate key creating %s; using the row created concurrently",
                    description,
                )
                return existing, False
            # Integrity failure that is not a duplicate of this record (e.g. FK)
            logger.warning("Integrity error creating %s: %s", description, str(e.orig))
            last_error = e
        except SQLAlchemyError as e:
            logger.warning(
                "Create attempt %d for %s failed: %s",
                index + 1,
                description,
                type(e).__name__,
            )
            last_error = e

    existing = await fetch()
    if existing is not None:
        return existing, False

    raise DatabaseError(
        message=f"Failed to create {description}",
        context={"error_type": type(last_error).__name__ if last_error else None},
    )


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections during application shutdown."""
    await engine.dispose()
