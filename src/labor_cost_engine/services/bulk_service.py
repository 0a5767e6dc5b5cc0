"""Batch operations over time entries, tied together by a correlation id."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.calculators import ResolutionError, week_bounds
from labor_cost_engine.database import TransactionTimeoutError
from labor_cost_engine.models import TimeEntry
from labor_cost_engine.services.audit_service import AuditAction, AuditWriteError
from labor_cost_engine.services.collaborators import (
    PERMISSION_APPROVE,
    PERMISSION_REJECT,
    PermissionChecker,
    require,
)
from labor_cost_engine.services.correlation import BulkOperation, generate_correlation_id
from labor_cost_engine.services.state_machine import InvalidTransitionError, TimeEntryStatus
from labor_cost_engine.services.time_entry_service import (
    TimeEntryNotFoundError,
    TimeEntryService,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Per-entry failures that are reported in the result instead of aborting the batch.
ENTRY_FAILURES = (
    InvalidTransitionError,
    TimeEntryNotFoundError,
    ResolutionError,
    AuditWriteError,
    TransactionTimeoutError,
)


@dataclass
class EntrySelection:
    """Which entries a batch applies to: explicit ids, or a filter."""

    entry_ids: list[UUID] | None = None
    worker_id: UUID | None = None
    job_id: UUID | None = None
    start: date | None = None
    end: date | None = None
    statuses: tuple[str, ...] | None = None


@dataclass
class BulkFailure:
    entry_id: UUID
    error: str
    error_type: str


@dataclass
class BulkResult:
    """Outcome of one batch invocation."""

    correlation_id: str
    action: AuditAction
    succeeded: list[UUID] = field(default_factory=list)
    failures: list[BulkFailure] = field(default_factory=list)
    related_cost_run_id: str | None = None

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)


@dataclass
class WorkerPayrollSummary:
    """Approved pay for one worker over an export period."""

    worker_id: UUID
    entry_count: int = 0
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    doubletime_hours: Decimal = ZERO
    total_pay: Decimal = ZERO
    # Informational: hours past the weekly threshold, summed per calendar week.
    weekly_overtime_hours: Decimal = ZERO

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours + self.doubletime_hours


@dataclass
class PayrollExport:
    correlation_id: str
    period_start: date
    period_end: date
    workers: list[WorkerPayrollSummary]
    entry_ids: list[UUID]

    @property
    def total_pay(self) -> Decimal:
        return sum((w.total_pay for w in self.workers), ZERO)


class BulkOperationService:
    """Runs approve, reject, cost regeneration and payroll export in batches.

    Each invocation gets one correlation id that is written on every audit
    record it produces. Entries are processed one at a time, each in its own
    savepoint: a failing entry rolls back only its own mutation and audit
    record, and is reported in the result.
    """

    def __init__(
        self,
        session: AsyncSession,
        time_entries: TimeEntryService,
        permissions: PermissionChecker | None = None,
    ):
        self.session = session
        self.time_entries = time_entries
        self.permissions = permissions
        self.weekly_overtime_threshold = time_entries.policy.weekly_overtime_threshold

    async def select_entries(self, selection: EntrySelection) -> list[TimeEntry]:
        """Load the entries a selection names, oldest work date first."""
        query = select(TimeEntry)
        if selection.entry_ids is not None:
            query = query.where(TimeEntry.time_entry_id.in_(selection.entry_ids))
        if selection.worker_id:
            query = query.where(TimeEntry.worker_id == selection.worker_id)
        if selection.job_id:
            query = query.where(TimeEntry.job_id == selection.job_id)
        if selection.start:
            query = query.where(TimeEntry.work_date >= selection.start)
        if selection.end:
            query = query.where(TimeEntry.work_date <= selection.end)
        if selection.statuses:
            query = query.where(TimeEntry.status.in_(selection.statuses))
        result = await self.session.execute(
            query.order_by(TimeEntry.work_date, TimeEntry.created_at)
        )
        return list(result.scalars().all())

    async def _run(
        self,
        operation: BulkOperation,
        selection: EntrySelection,
        apply: Callable[[TimeEntry], Awaitable[Any]],
    ) -> BulkResult:
        result = BulkResult(
            correlation_id=operation.correlation_id,
            action=operation.action,
            related_cost_run_id=operation.related_cost_run_id,
        )
        entries = await self.select_entries(selection)

        # Explicitly requested ids that do not exist are failures too.
        if selection.entry_ids is not None:
            found = {entry.time_entry_id for entry in entries}
            for entry_id in selection.entry_ids:
                if entry_id not in found:
                    error = TimeEntryNotFoundError(entry_id)
                    result.failures.append(
                        BulkFailure(entry_id, str(error), type(error).__name__)
                    )

        for entry in entries:
            entry_id = entry.time_entry_id
            try:
                await apply(entry)
            except ENTRY_FAILURES as exc:
                logger.warning(
                    "Bulk %s skipped entry %s (correlation %s): %s",
                    operation.action.value,
                    entry_id,
                    operation.correlation_id,
                    exc,
                )
                result.failures.append(BulkFailure(entry_id, str(exc), type(exc).__name__))
            else:
                result.succeeded.append(entry_id)

        logger.info(
            "Bulk %s %s: %d succeeded, %d failed",
            operation.action.value,
            operation.correlation_id,
            len(result.succeeded),
            len(result.failures),
        )
        return result

    async def bulk_approve(
        self,
        selection: EntrySelection,
        approved_by: UUID,
        notes: str | None = None,
    ) -> BulkResult:
        """Approve every selected entry under one correlation id."""
        if self.permissions is not None:
            await require(self.permissions, approved_by, PERMISSION_APPROVE)
        if selection.entry_ids is None and selection.statuses is None:
            selection = replace(selection, statuses=(TimeEntryStatus.SUBMITTED.value,))

        operation = BulkOperation(
            action=AuditAction.BULK_APPROVE, started_by=approved_by, notes=notes
        )

        async def apply(entry: TimeEntry) -> None:
            await self.time_entries.approve(
                entry.time_entry_id,
                approved_by,
                notes,
                action=operation.action,
                options=operation.audit_options(),
            )

        return await self._run(operation, selection, apply)

    async def bulk_reject(
        self,
        selection: EntrySelection,
        rejected_by: UUID,
        reason: str,
    ) -> BulkResult:
        """Reject every selected entry with the same reason."""
        if self.permissions is not None:
            await require(self.permissions, rejected_by, PERMISSION_REJECT)
        if not reason:
            raise ValueError("Bulk reject requires a reason")
        if selection.entry_ids is None and selection.statuses is None:
            selection = replace(selection, statuses=(TimeEntryStatus.SUBMITTED.value,))

        operation = BulkOperation(
            action=AuditAction.BULK_REJECT, started_by=rejected_by, change_reason=reason
        )

        async def apply(entry: TimeEntry) -> None:
            await self.time_entries.reject(
                entry.time_entry_id,
                rejected_by,
                reason,
                action=operation.action,
                options=operation.audit_options(),
            )

        return await self._run(operation, selection, apply)

    async def regenerate_labor_costs(
        self,
        selection: EntrySelection,
        actor_id: UUID,
    ) -> BulkResult:
        """Re-price selected entries against the current rate tables.

        All records of one run share a correlation id and a cost run id.
        """
        if self.permissions is not None:
            await require(self.permissions, actor_id, PERMISSION_APPROVE)
        if selection.statuses is None:
            selection = replace(
                selection,
                statuses=tuple(
                    status.value for status in TimeEntryStatus if status != TimeEntryStatus.VOIDED
                ),
            )

        operation = BulkOperation(
            action=AuditAction.LABOR_COST_GENERATED,
            started_by=actor_id,
            related_cost_run_id=generate_correlation_id("costrun"),
        )

        async def apply(entry: TimeEntry) -> None:
            await self.time_entries.reprice(entry, actor_id, operation.audit_options())

        return await self._run(operation, selection, apply)

    async def export_payroll(
        self,
        period_start: date,
        period_end: date,
        exported_by: UUID,
        worker_id: UUID | None = None,
    ) -> PayrollExport:
        """Summarize approved pay per worker and audit each exported entry.

        Pay comes from each entry's persisted daily split. Weekly overtime is
        reported alongside for information only.
        """
        if self.permissions is not None:
            await require(self.permissions, exported_by, PERMISSION_APPROVE)
        if period_end < period_start:
            raise ValueError(f"period_end {period_end} is before period_start {period_start}")

        operation = BulkOperation(action=AuditAction.PAYROLL_EXPORT, started_by=exported_by)
        selection = EntrySelection(
            worker_id=worker_id,
            start=period_start,
            end=period_end,
            statuses=(TimeEntryStatus.APPROVED.value,),
        )
        entries = await self.select_entries(selection)

        async def unchanged(entry: TimeEntry) -> None:
            return None

        exported: list[UUID] = []
        for entry in entries:
            await self.time_entries.audit.record_with_mutation(
                entry,
                unchanged,
                action=AuditAction.PAYROLL_EXPORT,
                changed_by=exported_by,
                options=operation.audit_options(),
            )
            exported.append(entry.time_entry_id)

        export = PayrollExport(
            correlation_id=operation.correlation_id,
            period_start=period_start,
            period_end=period_end,
            workers=self._summarize(entries),
            entry_ids=exported,
        )
        logger.info(
            "Payroll export %s: %d entries for %d workers, total %s",
            operation.correlation_id,
            len(exported),
            len(export.workers),
            export.total_pay,
        )
        return export

    def _summarize(self, entries: list[TimeEntry]) -> list[WorkerPayrollSummary]:
        summaries: dict[UUID, WorkerPayrollSummary] = {}
        weekly_hours: dict[tuple[UUID, date], Decimal] = defaultdict(lambda: ZERO)

        for entry in entries:
            summary = summaries.setdefault(
                entry.worker_id, WorkerPayrollSummary(worker_id=entry.worker_id)
            )
            summary.entry_count += 1
            summary.regular_hours += entry.regular_hours
            summary.overtime_hours += entry.overtime_hours
            summary.doubletime_hours += entry.doubletime_hours
            summary.total_pay += entry.total_pay
            week_start, _ = week_bounds(entry.work_date)
            weekly_hours[(entry.worker_id, week_start)] += entry.hours

        for (worker_id, _), hours in weekly_hours.items():
            summaries[worker_id].weekly_overtime_hours += max(
                ZERO, hours - self.weekly_overtime_threshold
            )

        return sorted(summaries.values(), key=lambda s: str(s.worker_id))
