"""Database connection, session and transaction management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator, Awaitable, TypeVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from labor_cost_engine.config import get_settings
from labor_cost_engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.ext.asyncio import AsyncSessionTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionTimeoutError(Exception):
    """Raised when a storage operation exceeds its time budget."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Operation '{operation}' exceeded {timeout}s and was rolled back")


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let pysqlite/aiosqlite honour BEGIN and SAVEPOINT like a real server.

    The sqlite3 driver manages transactions on its own by default, which
    breaks nested transactions. We turn that off and emit BEGIN ourselves.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine, applying dialect-specific setup."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=False, **kwargs)
        enable_sqlite_savepoints(engine)
        return engine
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        **kwargs,
    )


def get_engine() -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    return create_engine_for_url(settings.database_url)


# Engine and session factory for the running process
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    assert _session_factory is not None
    return _engine, _session_factory


async def create_schema(engine: AsyncEngine) -> list[str]:
    """Create any missing tables. Returns the table names in creation order."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return [table.name for table in Base.metadata.sorted_tables]


async def dispose_db() -> None:
    """Dispose of the process engine, if one was created."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def atomic(session: AsyncSession) -> AsyncSessionTransaction:
    """Open an all-or-nothing unit of work on the session.

    Uses a SAVEPOINT when the session already has a transaction in progress so
    that a failure only discards this unit, not earlier work in the request.
    """
    if session.in_transaction():
        return session.begin_nested()
    return session.begin()


async def run_with_timeout(
    operation: str,
    awaitable: Awaitable[T],
    timeout: float | None,
) -> T:
    """Await an operation under a time budget.

    On timeout the inner task is cancelled, which rolls back any transaction
    it opened, and a TransactionTimeoutError is raised.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Operation %s timed out after %ss; rolled back", operation, timeout)
        raise TransactionTimeoutError(operation, timeout) from exc
