"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Time entry schemas
# ============================================================================


class TimeEntryCreate(BaseModel):
    """Schema for logging hours."""

    worker_id: UUID
    job_id: UUID
    work_date: date
    hours: Decimal = Field(ge=0)
    description: str | None = None
    has_breaks: bool = False


class TimeEntryUpdate(BaseModel):
    """Schema for editing a draft or rejected entry. Only set fields change."""

    hours: Decimal | None = Field(default=None, ge=0)
    job_id: UUID | None = None
    work_date: date | None = None
    description: str | None = None
    has_breaks: bool | None = None
    change_reason: str | None = None


class HoursValidationRequest(BaseModel):
    worker_id: UUID
    work_date: date
    hours: Decimal = Field(ge=0)
    has_breaks: bool = False


class ValidationWarningResponse(BaseModel):
    type: str
    severity: str
    message: str
    details: dict[str, Any] = {}


class ValidationResponse(BaseModel):
    """Advisory findings for a candidate day's hours."""

    is_valid: bool
    weekly_hours: Decimal
    overtime_hours: Decimal
    warnings: list[ValidationWarningResponse]


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""

    model_config = ConfigDict(from_attributes=True)

    time_entry_id: UUID
    worker_id: UUID
    job_id: UUID
    work_date: date
    hours: Decimal
    description: str | None = None
    has_breaks: bool
    regular_hours: Decimal
    overtime_hours: Decimal
    doubletime_hours: Decimal
    applied_regular_rate: Decimal | None = None
    applied_overtime_rate: Decimal | None = None
    rate_source: str | None = None
    total_pay: Decimal
    status: str
    submitted_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class TimeEntryOutcomeResponse(BaseModel):
    entry: TimeEntryResponse
    warnings: list[ValidationWarningResponse] = []
    degraded_rate: bool = False


class ApprovalRequest(BaseModel):
    notes: str | None = None


class ReasonRequest(BaseModel):
    reason: str = Field(min_length=1)


# ============================================================================
# Bulk schemas
# ============================================================================


class EntrySelectionRequest(BaseModel):
    """Explicit ids, or a worker/job/date-range filter."""

    entry_ids: list[UUID] | None = None
    worker_id: UUID | None = None
    job_id: UUID | None = None
    start: date | None = None
    end: date | None = None


class BulkApproveRequest(EntrySelectionRequest):
    notes: str | None = None


class BulkRejectRequest(EntrySelectionRequest):
    reason: str = Field(min_length=1)


class BulkFailureResponse(BaseModel):
    entry_id: UUID
    error: str
    error_type: str


class BulkResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    correlation_id: str
    action: str
    succeeded: list[UUID]
    failures: list[BulkFailureResponse]
    related_cost_run_id: str | None = None


class PayrollExportRequest(BaseModel):
    period_start: date
    period_end: date
    worker_id: UUID | None = None


class WorkerPayrollResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    worker_id: UUID
    entry_count: int
    regular_hours: Decimal
    overtime_hours: Decimal
    doubletime_hours: Decimal
    total_hours: Decimal
    total_pay: Decimal
    weekly_overtime_hours: Decimal


class PayrollExportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    correlation_id: str
    period_start: date
    period_end: date
    total_pay: Decimal
    workers: list[WorkerPayrollResponse]
    entry_ids: list[UUID]


# ============================================================================
# Rate schemas
# ============================================================================


class RateWindow(BaseModel):
    regular_rate: Decimal = Field(gt=0)
    overtime_rate: Decimal | None = Field(default=None, gt=0)
    effective_date: date
    expiry_date: date | None = None


class JobOverrideCreate(RateWindow):
    job_id: UUID
    worker_id: UUID
    reason: str | None = None


class WorkerRateCreate(RateWindow):
    worker_id: UUID


class SkillRateCreate(RateWindow):
    skill_level: str
    name: str | None = None


class RateRecordResponse(BaseModel):
    """A persisted rate row, whichever table it lives in."""

    rate_id: UUID
    kind: str
    regular_rate: Decimal
    overtime_rate: Decimal | None = None
    effective_date: date
    expiry_date: date | None = None
    active: bool


class ResolvedRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    regular_rate: Decimal
    overtime_rate: Decimal
    source: str
    source_record_id: UUID | None = None
    skill_level: str | None = None
    degraded: bool = False


# ============================================================================
# Audit schemas
# ============================================================================


class AuditRecordResponse(BaseModel):
    """Schema for an audit record, with job display fields when known."""

    model_config = ConfigDict(from_attributes=True)

    audit_id: int
    entry_id: UUID
    worker_id: UUID
    action: str
    changes: dict[str, Any]
    old_job_id: UUID | None = None
    new_job_id: UUID | None = None
    job_number: str | None = None
    job_title: str | None = None
    changed_by: UUID
    changed_at: datetime
    notes: str | None = None
    change_reason: str | None = None
    correlation_id: str | None = None
    related_cost_run_id: str | None = None


class AuditListResponse(BaseModel):
    items: list[AuditRecordResponse]
    total: int
    limit: int
    offset: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    reference: str | None = None
    warnings: list[ValidationWarningResponse] | None = None
