"""Append-only audit trail for time entry mutations.

Every state-changing mutation of a TimeEntry writes exactly one
TimeEntryAudit row in the same unit of work as the mutation. If the audit
write fails the mutation is rolled back with it; a committed mutation without
its audit record is never a valid outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import func, inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.calculators.types import TimeEntrySnapshot
from labor_cost_engine.database import atomic, run_with_timeout
from labor_cost_engine.models import TimeEntry, TimeEntryAudit

logger = logging.getLogger(__name__)

T = TypeVar("T")

HOURS_PRECISION = Decimal("0.01")


class AuditAction(str, Enum):
    """Mutation kinds recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SUBMIT = "SUBMIT"
    RESUBMIT = "RESUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    VOID = "VOID"
    BULK_APPROVE = "BULK_APPROVE"
    BULK_REJECT = "BULK_REJECT"
    PAYROLL_EXPORT = "PAYROLL_EXPORT"
    LABOR_COST_GENERATED = "LABOR_COST_GENERATED"


class AuditWriteError(Exception):
    """Raised when an audit record cannot be persisted."""

    def __init__(
        self,
        entry_id: UUID | None,
        action: str,
        reason: str,
        correlation_id: str | None = None,
    ):
        self.entry_id = entry_id
        self.action = action
        self.reason = reason
        self.correlation_id = correlation_id
        msg = f"Failed to write {action} audit record for entry {entry_id}: {reason}"
        if correlation_id:
            msg += f" (correlation {correlation_id})"
        super().__init__(msg)


@dataclass(frozen=True)
class AuditOptions:
    """Optional context attached to an audit record."""

    notes: str | None = None
    change_reason: str | None = None
    correlation_id: str | None = None
    related_cost_run_id: str | None = None


@dataclass
class AuditQuery:
    """Filters for reading the audit trail. Unset filters match everything."""

    entry_id: UUID | None = None
    worker_id: UUID | None = None
    job_id: UUID | None = None
    action: AuditAction | str | None = None
    start: datetime | None = None
    end: datetime | None = None
    correlation_id: str | None = None
    limit: int = 100
    offset: int = 0


def _quantize(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(value).quantize(HOURS_PRECISION)


def snapshot_of(entry: TimeEntry) -> TimeEntrySnapshot:
    """Capture the trackable fields of an entry as a typed snapshot."""
    return TimeEntrySnapshot(
        hours=_quantize(entry.hours),
        regular_hours=_quantize(entry.regular_hours),
        overtime_hours=_quantize(entry.overtime_hours),
        doubletime_hours=_quantize(entry.doubletime_hours),
        total_pay=_quantize(entry.total_pay),
        job_id=entry.job_id,
        work_date=entry.work_date,
        description=entry.description,
        status=entry.status,
    )


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def capture_changes(
    old: TimeEntrySnapshot | None,
    new: TimeEntrySnapshot,
) -> dict[str, dict[str, Any]]:
    """Diff two snapshots over the tracked fields.

    A field is reported only when its value changed and it is set on both
    sides. A missing old snapshot (creation) yields an empty diff.
    """
    changes: dict[str, dict[str, Any]] = {}
    if old is None:
        return changes

    for name in TimeEntrySnapshot.TRACKED_FIELDS:
        before = getattr(old, name)
        after = getattr(new, name)
        if before is None or after is None or before == after:
            continue
        changes[name] = {"from": _json_value(before), "to": _json_value(after)}
    return changes


class AuditTrailWriter:
    """Writes and reads the time entry audit trail."""

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = timeout

    async def record(
        self,
        entry_id: UUID,
        worker_id: UUID,
        action: AuditAction,
        old_snapshot: TimeEntrySnapshot | None,
        new_snapshot: TimeEntrySnapshot,
        changed_by: UUID,
        options: AuditOptions | None = None,
    ) -> TimeEntryAudit:
        """Persist one audit record for a mutation.

        Raises:
            AuditWriteError: If the record cannot be written
        """
        options = options or AuditOptions()
        row = TimeEntryAudit(
            entry_id=entry_id,
            worker_id=worker_id,
            action=AuditAction(action).value,
            changes=capture_changes(old_snapshot, new_snapshot),
            old_job_id=old_snapshot.job_id if old_snapshot else None,
            new_job_id=new_snapshot.job_id,
            changed_by=changed_by,
            notes=options.notes,
            change_reason=options.change_reason,
            correlation_id=options.correlation_id,
            related_cost_run_id=options.related_cost_run_id,
        )
        try:
            await self._insert(row)
        except SQLAlchemyError as exc:
            logger.error(
                "Audit write failed for entry %s action %s correlation %s: %s",
                entry_id,
                row.action,
                options.correlation_id,
                exc,
            )
            raise AuditWriteError(
                entry_id, row.action, str(exc), options.correlation_id
            ) from exc

        logger.debug("Recorded %s audit for entry %s", row.action, entry_id)
        return row

    async def _insert(self, row: TimeEntryAudit) -> None:
        self.session.add(row)
        await self.session.flush()

    async def record_with_mutation(
        self,
        entry: TimeEntry,
        mutation: Callable[[TimeEntry], Awaitable[T]],
        *,
        action: AuditAction,
        changed_by: UUID,
        options: AuditOptions | None = None,
    ) -> T:
        """Apply a mutation and its audit record as one atomic unit.

        The old snapshot is taken before ``mutation`` runs (none for an entry
        not yet persisted), the mutation is flushed, then the audit row is
        written. Any failure, including a timeout, rolls both back.

        After a failure the rolled-back entry is expired; refresh it before
        reading its attributes again.
        """
        operation = f"{AuditAction(action).value} {entry.time_entry_id or 'new entry'}"
        try:
            return await run_with_timeout(
                operation,
                self._mutate_and_record(entry, mutation, action, changed_by, options),
                self.timeout,
            )
        except AuditWriteError:
            raise
        except Exception as exc:
            logger.warning("Rolled back %s: %s", operation, exc)
            raise

    async def _mutate_and_record(
        self,
        entry: TimeEntry,
        mutation: Callable[[TimeEntry], Awaitable[T]],
        action: AuditAction,
        changed_by: UUID,
        options: AuditOptions | None,
    ) -> T:
        async with atomic(self.session):
            old_snapshot = snapshot_of(entry) if inspect(entry).persistent else None
            result = await mutation(entry)
            await self.session.flush()
            await self.record(
                entry.time_entry_id,
                entry.worker_id,
                action,
                old_snapshot,
                snapshot_of(entry),
                changed_by,
                options,
            )
        return result

    def _filtered(self, filters: AuditQuery) -> Any:
        query = select(TimeEntryAudit)
        if filters.entry_id:
            query = query.where(TimeEntryAudit.entry_id == filters.entry_id)
        if filters.worker_id:
            query = query.where(TimeEntryAudit.worker_id == filters.worker_id)
        if filters.job_id:
            query = query.where(
                or_(
                    TimeEntryAudit.old_job_id == filters.job_id,
                    TimeEntryAudit.new_job_id == filters.job_id,
                )
            )
        if filters.action:
            query = query.where(TimeEntryAudit.action == AuditAction(filters.action).value)
        if filters.start:
            query = query.where(TimeEntryAudit.changed_at >= filters.start)
        if filters.end:
            query = query.where(TimeEntryAudit.changed_at <= filters.end)
        if filters.correlation_id:
            query = query.where(TimeEntryAudit.correlation_id == filters.correlation_id)
        return query

    async def query(self, filters: AuditQuery | None = None) -> list[TimeEntryAudit]:
        """Return matching audit records, newest first, one page at a time."""
        filters = filters or AuditQuery()
        query = (
            self._filtered(filters)
            .order_by(TimeEntryAudit.changed_at.desc(), TimeEntryAudit.audit_id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, filters: AuditQuery | None = None) -> int:
        """Count audit records matching the filters, ignoring pagination."""
        filters = filters or AuditQuery()
        total = await self.session.scalar(
            select(func.count()).select_from(self._filtered(filters).subquery())
        )
        return total or 0

    async def get_for_entry(self, entry_id: UUID) -> list[TimeEntryAudit]:
        """Full history of one entry, oldest first."""
        result = await self.session.execute(
            select(TimeEntryAudit)
            .where(TimeEntryAudit.entry_id == entry_id)
            .order_by(TimeEntryAudit.changed_at.asc(), TimeEntryAudit.audit_id.asc())
        )
        return list(result.scalars().all())

    async def get_by_correlation(self, correlation_id: str) -> list[TimeEntryAudit]:
        """Every audit record one bulk operation produced, in creation order."""
        result = await self.session.execute(
            select(TimeEntryAudit)
            .where(TimeEntryAudit.correlation_id == correlation_id)
            .order_by(TimeEntryAudit.changed_at.asc(), TimeEntryAudit.audit_id.asc())
        )
        return list(result.scalars().all())
