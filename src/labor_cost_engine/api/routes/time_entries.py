"""Time entry API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from labor_cost_engine.api.dependencies import AuditTrail, CurrentUserId, DbSession, TimeEntries
from labor_cost_engine.api.schemas import (
    ApprovalRequest,
    AuditRecordResponse,
    ErrorResponse,
    HoursValidationRequest,
    ReasonRequest,
    TimeEntryCreate,
    TimeEntryOutcomeResponse,
    TimeEntryResponse,
    TimeEntryUpdate,
    ValidationResponse,
    ValidationWarningResponse,
)
from labor_cost_engine.calculators import ValidationResult
from labor_cost_engine.services.time_entry_service import TimeEntryOutcome

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


def _warnings(validation: ValidationResult | None) -> list[ValidationWarningResponse]:
    if validation is None:
        return []
    return [ValidationWarningResponse(**w.to_dict()) for w in validation.warnings]


def _outcome_response(outcome: TimeEntryOutcome) -> TimeEntryOutcomeResponse:
    return TimeEntryOutcomeResponse(
        entry=TimeEntryResponse.model_validate(outcome.entry),
        warnings=_warnings(outcome.validation),
        degraded_rate=bool(outcome.rate and outcome.rate.degraded),
    )


@router.post(
    "",
    response_model=TimeEntryOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    payload: TimeEntryCreate,
) -> TimeEntryOutcomeResponse:
    """Log hours as a draft entry, priced and validated."""
    outcome = await service.create(
        worker_id=payload.worker_id,
        job_id=payload.job_id,
        work_date=payload.work_date,
        hours=payload.hours,
        created_by=user_id,
        description=payload.description,
        has_breaks=payload.has_breaks,
    )
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)


@router.post("/validate", response_model=ValidationResponse)
async def validate_hours(
    service: TimeEntries,
    payload: HoursValidationRequest,
) -> ValidationResponse:
    """Preview the findings for a day's hours without saving anything."""
    result = await service.validate(
        payload.worker_id, payload.work_date, payload.hours, payload.has_breaks
    )
    return ValidationResponse(
        is_valid=result.is_valid,
        weekly_hours=result.weekly_hours,
        overtime_hours=result.overtime_hours,
        warnings=_warnings(result),
    )


@router.get(
    "/{entry_id}",
    response_model=TimeEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_time_entry(
    service: TimeEntries,
    entry_id: Annotated[UUID, Path()],
) -> TimeEntryResponse:
    entry = await service.get(entry_id)
    return TimeEntryResponse.model_validate(entry)


@router.get("/{entry_id}/history", response_model=list[AuditRecordResponse])
async def get_time_entry_history(
    service: TimeEntries,
    audit: AuditTrail,
    entry_id: Annotated[UUID, Path()],
) -> list[AuditRecordResponse]:
    """Full audit history of one entry, oldest first."""
    await service.get(entry_id)
    records = await audit.get_for_entry(entry_id)
    return [AuditRecordResponse.model_validate(r) for r in records]


@router.patch(
    "/{entry_id}",
    response_model=TimeEntryOutcomeResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    entry_id: Annotated[UUID, Path()],
    payload: TimeEntryUpdate,
) -> TimeEntryOutcomeResponse:
    """Edit a draft or rejected entry."""
    changes = payload.model_dump(exclude_unset=True, exclude={"change_reason"})
    outcome = await service.update(entry_id, changes, user_id, payload.change_reason)
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)


@router.post("/{entry_id}/submit", response_model=TimeEntryOutcomeResponse)
async def submit_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    entry_id: Annotated[UUID, Path()],
) -> TimeEntryOutcomeResponse:
    """Submit (or resubmit after rejection) for approval."""
    outcome = await service.submit(entry_id, user_id)
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)


@router.post("/{entry_id}/approve", response_model=TimeEntryOutcomeResponse)
async def approve_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    entry_id: Annotated[UUID, Path()],
    payload: ApprovalRequest,
) -> TimeEntryOutcomeResponse:
    outcome = await service.approve(entry_id, user_id, payload.notes)
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)


@router.post("/{entry_id}/reject", response_model=TimeEntryOutcomeResponse)
async def reject_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    entry_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> TimeEntryOutcomeResponse:
    outcome = await service.reject(entry_id, user_id, payload.reason)
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)


@router.post("/{entry_id}/void", response_model=TimeEntryOutcomeResponse)
async def void_time_entry(
    db: DbSession,
    service: TimeEntries,
    user_id: CurrentUserId,
    entry_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> TimeEntryOutcomeResponse:
    """Void an entry. Entries are never deleted."""
    outcome = await service.void(entry_id, user_id, payload.reason)
    await db.commit()
    await db.refresh(outcome.entry)
    return _outcome_response(outcome)
