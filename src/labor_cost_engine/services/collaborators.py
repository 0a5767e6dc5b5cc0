"""Injected collaborators: notifications, permissions and job lookup.

Services depend on the Protocols here, never on a concrete transport, so the
in-process defaults can be swapped for real integrations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.models import Job, Worker

logger = logging.getLogger(__name__)

PERMISSION_APPROVE = "time.approve"
PERMISSION_REJECT = "time.reject"
PERMISSION_EDIT = "time.edit"
PERMISSION_MANAGE_RATES = "rates.manage"

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "OWNER_ADMIN": frozenset(
        {PERMISSION_APPROVE, PERMISSION_REJECT, PERMISSION_EDIT, PERMISSION_MANAGE_RATES}
    ),
    "ADMIN": frozenset(
        {PERMISSION_APPROVE, PERMISSION_REJECT, PERMISSION_EDIT, PERMISSION_MANAGE_RATES}
    ),
    "FOREMAN": frozenset({PERMISSION_APPROVE, PERMISSION_REJECT, PERMISSION_EDIT}),
    "EMPLOYEE": frozenset({PERMISSION_EDIT}),
    "FIELD_CREW": frozenset({PERMISSION_EDIT}),
    "APPRENTICE": frozenset({PERMISSION_EDIT}),
    "HELPER": frozenset({PERMISSION_EDIT}),
}


class PermissionDeniedError(Exception):
    """Raised when the acting user lacks a permission."""

    def __init__(self, user_id: UUID, permission: str):
        self.user_id = user_id
        self.permission = permission
        super().__init__(f"User {user_id} lacks permission '{permission}'")


@dataclass
class TimeEntryEvent:
    """A notification-worthy change to a time entry."""

    kind: str
    entry_id: UUID
    worker_id: UUID
    actor_id: UUID
    details: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def dispatch(self, event: TimeEntryEvent) -> None:
        ...


@runtime_checkable
class PermissionChecker(Protocol):
    async def has_permission(self, user_id: UUID, permission: str) -> bool:
        ...


@dataclass(frozen=True)
class JobSummary:
    job_id: UUID
    job_number: str
    title: str
    customer_name: str | None = None


@runtime_checkable
class JobLookup(Protocol):
    async def describe(self, job_ids: Iterable[UUID]) -> dict[UUID, JobSummary]:
        ...


class NullNotificationDispatcher:
    """Drops events after logging them."""

    async def dispatch(self, event: TimeEntryEvent) -> None:
        logger.debug("Notification %s for entry %s not delivered", event.kind, event.entry_id)


class RoleTablePermissionChecker:
    """Grants permissions from a static role table keyed by the user's role.

    The acting user is looked up as a Worker. Unknown users and inactive
    workers get nothing. If the lookup itself fails the check fails closed
    and the failure is logged.
    """

    def __init__(
        self,
        session: AsyncSession,
        role_permissions: dict[str, frozenset[str]] | None = None,
    ):
        self.session = session
        self.role_permissions = role_permissions or ROLE_PERMISSIONS

    async def has_permission(self, user_id: UUID, permission: str) -> bool:
        try:
            user = await self.session.get(Worker, user_id)
        except SQLAlchemyError as exc:
            logger.warning(
                "Permission lookup failed for user %s (%s); denying: %s",
                user_id,
                permission,
                exc,
            )
            return False
        if user is None or not user.active:
            return False
        return permission in self.role_permissions.get(user.role, frozenset())


async def require(checker: PermissionChecker, user_id: UUID, permission: str) -> None:
    """Raise PermissionDeniedError unless the user holds the permission."""
    if not await checker.has_permission(user_id, permission):
        raise PermissionDeniedError(user_id, permission)


class RepositoryJobLookup:
    """Reads job display fields from the job table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def describe(self, job_ids: Iterable[UUID]) -> dict[UUID, JobSummary]:
        ids = {job_id for job_id in job_ids if job_id is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(Job).where(Job.job_id.in_(ids)))
        return {
            job.job_id: JobSummary(
                job_id=job.job_id,
                job_number=job.job_number,
                title=job.title,
                customer_name=job.customer_name,
            )
            for job in result.scalars().all()
        }
