"""Health, readiness and liveness probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from labor_cost_engine.api.dependencies import AppSettings, DbSession
from labor_cost_engine.models import SkillRate, TimeEntry, TimeEntryAudit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Tables a request touches before it can price or audit anything
READINESS_TABLES = (TimeEntry, TimeEntryAudit, SkillRate)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    version: str
    degraded_rates_enabled: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, settings: AppSettings) -> HealthResponse:
    """Report service version, database reachability and rate fallback mode."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as exc:
        logger.warning("Health check database probe failed: %s", exc)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=settings.engine_version,
        degraded_rates_enabled=settings.allow_degraded_rates,
    )


@router.get("/ready")
async def readiness_check(db: DbSession) -> JSONResponse:
    """Ready once the time entry, audit and rate tables can be queried."""
    missing = []
    for model in READINESS_TABLES:
        try:
            await db.execute(select(func.count()).select_from(model))
        except SQLAlchemyError as exc:
            logger.warning("Readiness probe failed on %s: %s", model.__tablename__, exc)
            missing.append(model.__tablename__)
            await db.rollback()

    if missing:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "unavailable": missing},
        )
    return JSONResponse(content={"status": "ready"})


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
