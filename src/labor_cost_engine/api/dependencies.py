"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.config import Settings, get_settings
from labor_cost_engine.database import init_db
from labor_cost_engine.services.audit_service import AuditTrailWriter
from labor_cost_engine.services.bulk_service import BulkOperationService
from labor_cost_engine.services.collaborators import (
    NotificationDispatcher,
    NullNotificationDispatcher,
    RepositoryJobLookup,
    RoleTablePermissionChecker,
)
from labor_cost_engine.services.rate_source_service import RateSourceService
from labor_cost_engine.services.time_entry_service import TimeEntryService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the acting user ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


def get_notifier() -> NotificationDispatcher:
    return NullNotificationDispatcher()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentUserId = Annotated[UUID, Depends(get_user_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]


def get_time_entry_service(
    db: DbSession,
    settings: AppSettings,
    notifier: Notifier,
) -> TimeEntryService:
    return TimeEntryService(
        db,
        settings.pay_policy,
        permissions=RoleTablePermissionChecker(db),
        notifier=notifier,
        allow_degraded_rates=settings.allow_degraded_rates,
        baseline_skill_level=settings.baseline_skill_level,
        timeout=settings.transaction_timeout_seconds,
    )


TimeEntries = Annotated[TimeEntryService, Depends(get_time_entry_service)]


def get_bulk_service(db: DbSession, time_entries: TimeEntries) -> BulkOperationService:
    return BulkOperationService(db, time_entries, permissions=RoleTablePermissionChecker(db))


def get_rate_source_service(db: DbSession) -> RateSourceService:
    return RateSourceService(db, permissions=RoleTablePermissionChecker(db))


def get_audit_writer(db: DbSession, settings: AppSettings) -> AuditTrailWriter:
    return AuditTrailWriter(db, timeout=settings.transaction_timeout_seconds)


def get_job_lookup(db: DbSession) -> RepositoryJobLookup:
    return RepositoryJobLookup(db)


BulkOperations = Annotated[BulkOperationService, Depends(get_bulk_service)]
RateSources = Annotated[RateSourceService, Depends(get_rate_source_service)]
AuditTrail = Annotated[AuditTrailWriter, Depends(get_audit_writer)]
JobLookups = Annotated[RepositoryJobLookup, Depends(get_job_lookup)]
