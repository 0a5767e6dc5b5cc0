"""Rate source administration and resolution endpoints."""

from datetime import date
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from labor_cost_engine.api.dependencies import (
    AppSettings,
    CurrentUserId,
    DbSession,
    RateSources,
)
from labor_cost_engine.api.schemas import (
    ErrorResponse,
    JobOverrideCreate,
    RateRecordResponse,
    ResolvedRateResponse,
    SkillRateCreate,
    WorkerRateCreate,
)
from labor_cost_engine.calculators import RateResolver
from labor_cost_engine.models import JobRateOverride, WorkerRate

router = APIRouter(prefix="/rates", tags=["rates"])


def _record(kind: str, row: Any) -> RateRecordResponse:
    if isinstance(row, JobRateOverride):
        rate_id = row.override_id
    elif isinstance(row, WorkerRate):
        rate_id = row.worker_rate_id
    else:
        rate_id = row.skill_rate_id
    return RateRecordResponse(
        rate_id=rate_id,
        kind=kind,
        regular_rate=row.regular_rate,
        overtime_rate=row.overtime_rate,
        effective_date=row.effective_date,
        expiry_date=row.expiry_date,
        active=row.active,
    )


@router.post(
    "/job-overrides",
    response_model=RateRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_job_override(
    db: DbSession,
    service: RateSources,
    user_id: CurrentUserId,
    payload: JobOverrideCreate,
) -> RateRecordResponse:
    row = await service.create_job_override(
        job_id=payload.job_id,
        worker_id=payload.worker_id,
        regular_rate=payload.regular_rate,
        effective_date=payload.effective_date,
        expiry_date=payload.expiry_date,
        overtime_rate=payload.overtime_rate,
        reason=payload.reason,
        created_by=user_id,
    )
    await db.commit()
    return _record("job", row)


@router.post(
    "/workers",
    response_model=RateRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_worker_rate(
    db: DbSession,
    service: RateSources,
    user_id: CurrentUserId,
    payload: WorkerRateCreate,
) -> RateRecordResponse:
    row = await service.create_worker_rate(
        worker_id=payload.worker_id,
        regular_rate=payload.regular_rate,
        effective_date=payload.effective_date,
        expiry_date=payload.expiry_date,
        overtime_rate=payload.overtime_rate,
        created_by=user_id,
    )
    await db.commit()
    return _record("worker", row)


@router.post(
    "/skills",
    response_model=RateRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_skill_rate(
    db: DbSession,
    service: RateSources,
    user_id: CurrentUserId,
    payload: SkillRateCreate,
) -> RateRecordResponse:
    row = await service.create_skill_rate(
        skill_level=payload.skill_level,
        regular_rate=payload.regular_rate,
        effective_date=payload.effective_date,
        expiry_date=payload.expiry_date,
        overtime_rate=payload.overtime_rate,
        name=payload.name,
        created_by=user_id,
    )
    await db.commit()
    return _record("skill", row)


@router.post("/{kind}/{rate_id}/deactivate", response_model=RateRecordResponse)
async def deactivate_rate(
    db: DbSession,
    service: RateSources,
    user_id: CurrentUserId,
    kind: Annotated[str, Path(pattern="^(job|worker|skill)$")],
    rate_id: Annotated[UUID, Path()],
) -> RateRecordResponse:
    """Retire a rate row. It stays on record for historical pricing."""
    row = await service.deactivate(kind, rate_id, user_id)
    await db.commit()
    return _record(kind, row)


@router.get("/resolve", response_model=ResolvedRateResponse)
async def resolve_rate(
    db: DbSession,
    settings: AppSettings,
    worker_id: Annotated[UUID, Query()],
    as_of: Annotated[date, Query()],
    job_id: Annotated[UUID | None, Query()] = None,
) -> ResolvedRateResponse:
    """Show which rate would apply, and where it comes from."""
    resolver = RateResolver(
        db,
        overtime_multiplier=settings.pay_policy.overtime_multiplier,
        baseline_skill_level=settings.baseline_skill_level,
    )
    resolved = await resolver.resolve(worker_id, job_id, as_of)
    return ResolvedRateResponse(**resolved.to_dict())
