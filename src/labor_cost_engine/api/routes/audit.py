"""Audit trail query endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from labor_cost_engine.api.dependencies import AuditTrail, JobLookups
from labor_cost_engine.api.schemas import AuditListResponse, AuditRecordResponse
from labor_cost_engine.models import TimeEntryAudit
from labor_cost_engine.services.audit_service import AuditAction, AuditQuery
from labor_cost_engine.services.collaborators import JobLookup

router = APIRouter(prefix="/audit", tags=["audit"])


async def _enrich(
    records: list[TimeEntryAudit],
    jobs: JobLookup,
) -> list[AuditRecordResponse]:
    summaries = await jobs.describe(r.new_job_id for r in records)
    items = []
    for record in records:
        item = AuditRecordResponse.model_validate(record)
        summary = summaries.get(record.new_job_id)
        if summary is not None:
            item.job_number = summary.job_number
            item.job_title = summary.title
        items.append(item)
    return items


@router.get("", response_model=AuditListResponse)
async def list_audit_records(
    audit: AuditTrail,
    jobs: JobLookups,
    entry_id: UUID | None = None,
    worker_id: UUID | None = None,
    job_id: UUID | None = None,
    action: AuditAction | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    correlation_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AuditListResponse:
    """Query the audit trail, newest first."""
    filters = AuditQuery(
        entry_id=entry_id,
        worker_id=worker_id,
        job_id=job_id,
        action=action,
        start=start,
        end=end,
        correlation_id=correlation_id,
        limit=limit,
        offset=offset,
    )
    records = await audit.query(filters)
    total = await audit.count(filters)
    return AuditListResponse(
        items=await _enrich(records, jobs),
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/correlation/{correlation_id}", response_model=list[AuditRecordResponse])
async def get_correlated_records(
    audit: AuditTrail,
    jobs: JobLookups,
    correlation_id: Annotated[str, Path()],
) -> list[AuditRecordResponse]:
    """Every record one bulk operation wrote, oldest first."""
    records = await audit.get_by_correlation(correlation_id)
    return await _enrich(records, jobs)
