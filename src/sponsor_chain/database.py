"""Database connection, session management and store retry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sponsor_chain.config import get_settings
from sponsor_chain.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    if _is_memory_sqlite(url):
        # One shared connection so in-memory databases survive across sessions
        return create_async_engine(
            url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def _is_memory_sqlite(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    path = url.split("://", 1)[-1]
    return path in ("", "/", "/:memory:") or "mode=memory" in path


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the settings every service expects."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = build_session_factory(_engine)
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def acquire_agent_xact_lock(session: AsyncSession, agent_id: str) -> None:
    """Take a transaction-scoped advisory lock on an agent (PostgreSQL only).

    Released automatically at commit/rollback. Other dialects rely on the
    in-process lock and row locks.
    """
    if session.bind is None or session.bind.dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:agent_id))"),
        {"agent_id": agent_id},
    )


def is_transient(exc: BaseException) -> bool:
    """Whether a store failure is worth retrying."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def with_store_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int | None = None,
    base_delay: float | None = None,
) -> T:
    """Run ``operation`` retrying transient store failures with backoff.

    The delay doubles after each failed attempt. Non-transient errors,
    including every workflow error, propagate immediately.
    """
    if attempts is None or base_delay is None:
        settings = get_settings()
        attempts = settings.store_retry_attempts if attempts is None else attempts
        base_delay = settings.store_retry_base_delay if base_delay is None else base_delay
    max_attempts = max(1, attempts)
    delay = base_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except (OperationalError, DBAPIError) as exc:
            if not is_transient(exc) or attempt == max_attempts:
                raise
            logger.warning(
                "Transient store failure (attempt %d/%d), retrying in %.3fs: %s",
                attempt,
                max_attempts,
                delay,
                exc.__class__.__name__,
            )
            await asyncio.sleep(delay)
            delay *= 2

    raise RuntimeError("unreachable")
