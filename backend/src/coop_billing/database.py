"""Database session management with async SQLAlchemy."""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError

from coop_billing.config import settings
from coop_billing.exceptions import ConflictError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# SQLSTATEs raised by the server when a transaction lost a race
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_pre_ping": True, "pool_size": 20, "max_overflow": 10}


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one all-or-nothing unit.

    Opens a transaction that commits on exit, or joins the transaction the
    caller already holds. In the latter case the caller owns commit and
    rollback, and an exception raised inside the block propagates to it
    before anything is flushed.
    """
    if session.in_transaction():
        yield session
        await session.flush()
    else:
        async with session.begin():
            yield session


def is_retryable_conflict(exc: BaseException) -> bool:
    """Whether an error is an optimistic-concurrency conflict worth replaying."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return sqlstate in RETRYABLE_SQLSTATES
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    max_attempts: int | None = None,
) -> T:
    """
    Run a unit of work in a fresh session, replaying it on conflict.

    Every attempt reads current state again, so validation always runs against
    the rows that the committing transaction will overwrite. Business-rule
    failures propagate on the first attempt.

    Raises:
        ConflictError: If every attempt lost a concurrent race
    """
    attempts = max_attempts or settings.transaction_max_attempts
    for attempt in range(1, attempts + 1):
        async with session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except Exception as exc:
                if not is_retryable_conflict(exc):
                    raise
                logger.warning(
                    "transaction_conflict",
                    attempt=attempt,
                    max_attempts=attempts,
                    error_type=type(exc).__name__,
                )
                if attempt == attempts:
                    raise ConflictError(
                        "Concurrent billing update detected; please retry."
                    ) from exc
    raise ConflictError("Concurrent billing update detected; please retry.")


# Declarative base for all models
Base = declarative_base()
