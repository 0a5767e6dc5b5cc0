"""Time entry service - lifecycle, pricing and auditing of logged hours."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.calculators import (
    CostSplitter,
    RateResolver,
    ResolvedRate,
    ValidationResult,
    WeeklyHoursValidator,
    round_hours,
)
from labor_cost_engine.config import PayPolicy
from labor_cost_engine.models import TimeEntry
from labor_cost_engine.models.base import utcnow
from labor_cost_engine.services.audit_service import AuditAction, AuditOptions, AuditTrailWriter
from labor_cost_engine.services.collaborators import (
    PERMISSION_APPROVE,
    PERMISSION_EDIT,
    PERMISSION_REJECT,
    NotificationDispatcher,
    NullNotificationDispatcher,
    PermissionChecker,
    TimeEntryEvent,
    require,
)
from labor_cost_engine.services.state_machine import (
    InvalidTransitionError,
    TimeEntryStateMachine,
    TimeEntryStatus,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("hours", "job_id", "work_date", "description", "has_breaks")
PRICING_FIELDS = ("hours", "job_id", "work_date")


class TimeEntryRejectedError(Exception):
    """Raised when hours trip an error-severity validation finding.

    This is a rejected request, not a failure: nothing was written.
    """

    def __init__(self, validation: ValidationResult):
        self.validation = validation
        messages = "; ".join(w.message for w in validation.errors)
        super().__init__(f"Time entry rejected: {messages}")


class TimeEntryNotFoundError(Exception):
    def __init__(self, entry_id: UUID):
        self.entry_id = entry_id
        super().__init__(f"Time entry {entry_id} not found")


@dataclass
class TimeEntryOutcome:
    """A mutated entry plus the advisory findings and rate that priced it."""

    entry: TimeEntry
    validation: ValidationResult | None = None
    rate: ResolvedRate | None = None

    @property
    def warnings(self) -> list[Any]:
        return self.validation.warnings if self.validation else []


class TimeEntryService:
    """Service for the time entry lifecycle.

    Operations:
    - create: log hours as a draft, priced and validated
    - update: edit a draft or rejected entry, re-pricing when needed
    - submit / resubmit: hand the entry to an approver
    - approve / reject: approver decisions
    - void: terminal retirement (entries are never deleted)
    - reprice: regenerate pricing against current rate tables

    Every operation writes exactly one audit record atomically with its
    mutation. Error-severity validation findings reject the request before
    anything is written.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: PayPolicy | None = None,
        *,
        permissions: PermissionChecker | None = None,
        notifier: NotificationDispatcher | None = None,
        allow_degraded_rates: bool = False,
        baseline_skill_level: str | None = None,
        timeout: float | None = None,
    ):
        self.session = session
        self.policy = policy or PayPolicy()
        resolver_kwargs: dict[str, Any] = {}
        if baseline_skill_level:
            resolver_kwargs["baseline_skill_level"] = baseline_skill_level
        self.resolver = RateResolver(
            session,
            overtime_multiplier=self.policy.overtime_multiplier,
            **resolver_kwargs,
        )
        self.splitter = CostSplitter(self.policy)
        self.validator = WeeklyHoursValidator(session, self.policy)
        self.audit = AuditTrailWriter(session, timeout=timeout)
        self.permissions = permissions
        self.notifier = notifier or NullNotificationDispatcher()
        self.allow_degraded_rates = allow_degraded_rates

    async def get(self, entry_id: UUID) -> TimeEntry:
        entry = await self.session.get(TimeEntry, entry_id)
        if entry is None:
            raise TimeEntryNotFoundError(entry_id)
        return entry

    async def _authorize(self, actor_id: UUID, permission: str, owner_id: UUID | None = None) -> None:
        # Workers may always edit their own entries.
        if permission == PERMISSION_EDIT and owner_id is not None and actor_id == owner_id:
            return
        if self.permissions is not None:
            await require(self.permissions, actor_id, permission)

    async def validate(
        self,
        worker_id: UUID,
        work_date: date,
        hours: Decimal,
        has_breaks: bool = False,
        exclude_entry_id: UUID | None = None,
    ) -> ValidationResult:
        """Classify hours without writing anything."""
        return await self.validator.evaluate(
            worker_id, work_date, round_hours(hours), has_breaks, exclude_entry_id
        )

    async def _validate_or_reject(
        self,
        worker_id: UUID,
        work_date: date,
        hours: Decimal,
        has_breaks: bool,
        exclude_entry_id: UUID | None = None,
    ) -> ValidationResult:
        validation = await self.validate(
            worker_id, work_date, hours, has_breaks, exclude_entry_id
        )
        if not validation.is_valid:
            logger.info(
                "Rejected %s hours for worker %s on %s: %s",
                hours,
                worker_id,
                work_date,
                [w.type.value for w in validation.errors],
            )
            raise TimeEntryRejectedError(validation)
        return validation

    async def resolve_rate(self, worker_id: UUID, job_id: UUID, work_date: date) -> ResolvedRate:
        """Resolve the rate for an entry, degrading only if configured to."""
        if self.allow_degraded_rates:
            return await self.resolver.resolve_with_fallback(worker_id, job_id, work_date)
        return await self.resolver.resolve(worker_id, job_id, work_date)

    def apply_pricing(self, entry: TimeEntry, rate: ResolvedRate) -> None:
        """Write the band split, applied rates and provenance onto an entry."""
        cost = self.splitter.price(round_hours(entry.hours), rate)
        entry.regular_hours = cost.regular_hours
        entry.overtime_hours = cost.overtime_hours
        entry.doubletime_hours = cost.doubletime_hours
        entry.applied_regular_rate = rate.regular_rate
        entry.applied_overtime_rate = rate.overtime_rate
        entry.rate_source = rate.source.value
        entry.overtime_threshold_applied = self.policy.daily_overtime_threshold
        entry.total_pay = cost.total_cost

    async def create(
        self,
        worker_id: UUID,
        job_id: UUID,
        work_date: date,
        hours: Decimal,
        created_by: UUID,
        description: str | None = None,
        has_breaks: bool = False,
    ) -> TimeEntryOutcome:
        """Log hours as a new draft entry."""
        await self._authorize(created_by, PERMISSION_EDIT, owner_id=worker_id)
        if hours < 0:
            raise ValueError(f"hours must be non-negative, got {hours}")
        # Priced at the precision the entry is stored at.
        hours = round_hours(hours)

        validation = await self._validate_or_reject(worker_id, work_date, hours, has_breaks)
        rate = await self.resolve_rate(worker_id, job_id, work_date)

        entry = TimeEntry(
            worker_id=worker_id,
            job_id=job_id,
            work_date=work_date,
            hours=hours,
            description=description,
            has_breaks=has_breaks,
            status=TimeEntryStatus.DRAFT.value,
        )

        async def mutation(target: TimeEntry) -> None:
            self.apply_pricing(target, rate)
            self.session.add(target)

        await self.audit.record_with_mutation(
            entry, mutation, action=AuditAction.CREATE, changed_by=created_by
        )
        logger.info("Created time entry %s for worker %s", entry.time_entry_id, worker_id)
        return TimeEntryOutcome(entry=entry, validation=validation, rate=rate)

    async def update(
        self,
        entry_id: UUID,
        changes: dict[str, Any],
        updated_by: UUID,
        change_reason: str | None = None,
    ) -> TimeEntryOutcome:
        """Edit a draft or rejected entry.

        Changing hours, job or date re-prices the entry. Unknown fields raise
        ValueError.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")

        entry = await self.get(entry_id)
        await self._authorize(updated_by, PERMISSION_EDIT, owner_id=entry.worker_id)
        if not TimeEntryStateMachine.can_edit(entry.status):
            raise InvalidTransitionError(
                entry.status, entry.status, "Entry can only be edited while draft or rejected"
            )

        changes = dict(changes)
        if "hours" in changes:
            if changes["hours"] < 0:
                raise ValueError(f"hours must be non-negative, got {changes['hours']}")
            changes["hours"] = round_hours(changes["hours"])
        hours = changes.get("hours", entry.hours)
        work_date = changes.get("work_date", entry.work_date)
        job_id = changes.get("job_id", entry.job_id)
        has_breaks = changes.get("has_breaks", entry.has_breaks)

        validation = await self._validate_or_reject(
            entry.worker_id, work_date, hours, has_breaks, entry.time_entry_id
        )
        rate = None
        if any(field in changes for field in PRICING_FIELDS):
            rate = await self.resolve_rate(entry.worker_id, job_id, work_date)

        async def mutation(target: TimeEntry) -> None:
            for name, value in changes.items():
                setattr(target, name, value)
            if rate is not None:
                self.apply_pricing(target, rate)

        await self.audit.record_with_mutation(
            entry,
            mutation,
            action=AuditAction.UPDATE,
            changed_by=updated_by,
            options=AuditOptions(change_reason=change_reason),
        )
        return TimeEntryOutcome(entry=entry, validation=validation, rate=rate)

    async def _transition(
        self,
        entry: TimeEntry,
        to_status: TimeEntryStatus,
        action: AuditAction,
        actor_id: UUID,
        options: AuditOptions | None,
        **fields: Any,
    ) -> TimeEntry:
        errors = TimeEntryStateMachine.validate_entry_for_transition(entry, to_status.value)
        if errors:
            raise InvalidTransitionError(entry.status, to_status.value, "; ".join(errors))

        async def mutation(target: TimeEntry) -> None:
            target.status = to_status.value
            for name, value in fields.items():
                setattr(target, name, value)

        await self.audit.record_with_mutation(
            entry, mutation, action=action, changed_by=actor_id, options=options
        )
        return entry

    async def submit(
        self,
        entry_id: UUID,
        submitted_by: UUID,
        options: AuditOptions | None = None,
    ) -> TimeEntryOutcome:
        """Submit a draft, or resubmit a rejected entry, for approval."""
        entry = await self.get(entry_id)
        await self._authorize(submitted_by, PERMISSION_EDIT, owner_id=entry.worker_id)

        validation = await self._validate_or_reject(
            entry.worker_id,
            entry.work_date,
            entry.hours,
            entry.has_breaks,
            entry.time_entry_id,
        )
        resubmit = TimeEntryStateMachine.is_resubmit(entry.status, TimeEntryStatus.SUBMITTED)
        await self._transition(
            entry,
            TimeEntryStatus.SUBMITTED,
            AuditAction.RESUBMIT if resubmit else AuditAction.SUBMIT,
            submitted_by,
            options,
            submitted_at=utcnow(),
            rejection_reason=None,
        )
        return TimeEntryOutcome(entry=entry, validation=validation)

    async def approve(
        self,
        entry_id: UUID,
        approved_by: UUID,
        notes: str | None = None,
        *,
        action: AuditAction = AuditAction.APPROVE,
        options: AuditOptions | None = None,
    ) -> TimeEntryOutcome:
        """Approve a submitted entry."""
        entry = await self.get(entry_id)
        await self._authorize(approved_by, PERMISSION_APPROVE)
        options = options or AuditOptions(notes=notes)
        await self._transition(
            entry,
            TimeEntryStatus.APPROVED,
            action,
            approved_by,
            options,
            approved_by=approved_by,
            approved_at=utcnow(),
            approval_notes=notes,
        )
        await self._notify("approved", entry, approved_by, {"notes": notes})
        return TimeEntryOutcome(entry=entry)

    async def reject(
        self,
        entry_id: UUID,
        rejected_by: UUID,
        reason: str | None,
        *,
        action: AuditAction = AuditAction.REJECT,
        options: AuditOptions | None = None,
    ) -> TimeEntryOutcome:
        """Send a submitted entry back to the worker with a reason."""
        entry = await self.get(entry_id)
        await self._authorize(rejected_by, PERMISSION_REJECT)
        if not reason:
            raise InvalidTransitionError(
                entry.status, TimeEntryStatus.REJECTED.value, "Reject requires a reason"
            )
        options = options or AuditOptions(change_reason=reason)
        await self._transition(
            entry,
            TimeEntryStatus.REJECTED,
            action,
            rejected_by,
            options,
            rejection_reason=reason,
        )
        await self._notify("rejected", entry, rejected_by, {"reason": reason})
        return TimeEntryOutcome(entry=entry)

    async def void(
        self,
        entry_id: UUID,
        voided_by: UUID,
        reason: str | None,
    ) -> TimeEntryOutcome:
        """Retire an entry permanently. Voided hours stop counting."""
        entry = await self.get(entry_id)
        await self._authorize(voided_by, PERMISSION_EDIT, owner_id=entry.worker_id)
        if not reason:
            raise InvalidTransitionError(
                entry.status, TimeEntryStatus.VOIDED.value, "Void requires a reason"
            )
        await self._transition(
            entry,
            TimeEntryStatus.VOIDED,
            AuditAction.VOID,
            voided_by,
            AuditOptions(change_reason=reason),
        )
        return TimeEntryOutcome(entry=entry)

    async def reprice(
        self,
        entry: TimeEntry,
        actor_id: UUID,
        options: AuditOptions | None = None,
    ) -> TimeEntryOutcome:
        """Regenerate an entry's pricing against the current rate tables."""
        if not TimeEntryStateMachine.can_reprice(entry.status):
            raise InvalidTransitionError(
                entry.status, entry.status, "Voided entries cannot be re-priced"
            )
        rate = await self.resolve_rate(entry.worker_id, entry.job_id, entry.work_date)

        async def mutation(target: TimeEntry) -> None:
            self.apply_pricing(target, rate)

        await self.audit.record_with_mutation(
            entry,
            mutation,
            action=AuditAction.LABOR_COST_GENERATED,
            changed_by=actor_id,
            options=options,
        )
        return TimeEntryOutcome(entry=entry, rate=rate)

    async def _notify(
        self,
        kind: str,
        entry: TimeEntry,
        actor_id: UUID,
        details: dict[str, Any],
    ) -> None:
        event = TimeEntryEvent(
            kind=kind,
            entry_id=entry.time_entry_id,
            worker_id=entry.worker_id,
            actor_id=actor_id,
            details=details,
        )
        try:
            await self.notifier.dispatch(event)
        except Exception:
            # Delivery is best effort; the recorded decision stands.
            logger.exception("Failed to dispatch %s notification for entry %s", kind, entry.time_entry_id)
