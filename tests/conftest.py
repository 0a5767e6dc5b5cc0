"""Pytest fixtures for labor cost engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from labor_cost_engine.config import PayPolicy
from labor_cost_engine.database import create_engine_for_url, create_schema
from labor_cost_engine.models import Job, TimeEntry, Worker
from labor_cost_engine.services.time_entry_service import TimeEntryService

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Sunday-to-Saturday week used throughout the tests
WEEK_START = date(2024, 1, 7)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database for each test."""
    engine = create_engine_for_url(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_workers(session: AsyncSession) -> dict[str, Worker]:
    """Create workers covering each permission level."""
    workers = {
        "alice": Worker(
            worker_id=uuid4(),
            name="Alice Field",
            email="alice@example.com",
            role="EMPLOYEE",
            skill_level="JOURNEYMAN",
        ),
        "hank": Worker(
            worker_id=uuid4(),
            name="Hank Helper",
            role="HELPER",
        ),
        "fran": Worker(
            worker_id=uuid4(),
            name="Fran Foreman",
            role="FOREMAN",
            skill_level="FOREMAN",
        ),
        "olive": Worker(
            worker_id=uuid4(),
            name="Olive Owner",
            role="OWNER_ADMIN",
        ),
    }
    session.add_all(workers.values())
    await session.flush()
    return workers


@pytest_asyncio.fixture
async def test_jobs(session: AsyncSession) -> dict[str, Job]:
    """Create two active jobs."""
    jobs = {
        "J1": Job(
            job_id=uuid4(),
            job_number="J-1001",
            title="Panel upgrade",
            customer_name="Acme Dental",
        ),
        "J2": Job(
            job_id=uuid4(),
            job_number="J-1002",
            title="Rooftop unit replacement",
            customer_name="Northside Grocers",
        ),
    }
    session.add_all(jobs.values())
    await session.flush()
    return jobs


@pytest_asyncio.fixture
async def seeded(
    session: AsyncSession,
    test_workers: dict[str, Worker],
    test_jobs: dict[str, Job],
) -> AsyncSession:
    """Commit reference data so that other sessions can see it."""
    await session.commit()
    return session


@pytest.fixture
def make_entry(
    session: AsyncSession,
) -> Callable[..., Awaitable[TimeEntry]]:
    """Insert a raw time entry, bypassing the service."""

    async def _make(
        worker: Worker,
        job: Job,
        work_date: date,
        hours: str | Decimal,
        status: str = "draft",
        has_breaks: bool = True,
    ) -> TimeEntry:
        entry = TimeEntry(
            time_entry_id=uuid4(),
            worker_id=worker.worker_id,
            job_id=job.job_id,
            work_date=work_date,
            hours=Decimal(hours),
            has_breaks=has_breaks,
            status=status,
        )
        session.add(entry)
        await session.flush()
        return entry

    return _make


@pytest.fixture
def policy() -> PayPolicy:
    return PayPolicy()


@pytest.fixture
def time_entries(session: AsyncSession, policy: PayPolicy) -> TimeEntryService:
    """Time entry service without permission checks."""
    return TimeEntryService(session, policy)
