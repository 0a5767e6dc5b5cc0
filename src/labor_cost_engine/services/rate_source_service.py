"""Administration of effective-dated rate sources."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.models import SKILL_LEVELS, JobRateOverride, SkillRate, WorkerRate
from labor_cost_engine.services.collaborators import (
    PERMISSION_MANAGE_RATES,
    PermissionChecker,
    require,
)

logger = logging.getLogger(__name__)

RATE_MODELS: dict[str, Any] = {
    "job": JobRateOverride,
    "worker": WorkerRate,
    "skill": SkillRate,
}


class ConflictError(Exception):
    """Raised when a new rate window overlaps an active one for the same key."""

    def __init__(self, kind: str, key: dict[str, Any], conflicting_id: UUID):
        self.kind = kind
        self.key = key
        self.conflicting_id = conflicting_id
        key_text = ", ".join(f"{k}={v}" for k, v in key.items())
        super().__init__(
            f"{kind} rate for {key_text} overlaps active rate {conflicting_id}"
        )


class RateNotFoundError(Exception):
    """Raised when a rate row to modify does not exist."""

    def __init__(self, kind: str, rate_id: UUID):
        self.kind = kind
        self.rate_id = rate_id
        super().__init__(f"No {kind} rate with id {rate_id}")


def _validate_window(
    regular_rate: Decimal,
    overtime_rate: Decimal | None,
    effective_date: date,
    expiry_date: date | None,
) -> None:
    if regular_rate <= 0:
        raise ValueError(f"regular_rate must be positive, got {regular_rate}")
    if overtime_rate is not None and overtime_rate <= 0:
        raise ValueError(f"overtime_rate must be positive, got {overtime_rate}")
    if expiry_date is not None and expiry_date <= effective_date:
        raise ValueError(
            f"expiry_date {expiry_date} must be after effective_date {effective_date}"
        )


def _primary_key(row: Any) -> UUID:
    if isinstance(row, JobRateOverride):
        return row.override_id
    if isinstance(row, WorkerRate):
        return row.worker_rate_id
    return row.skill_rate_id


class RateSourceService:
    """Creates and retires job overrides, worker rates and skill rates.

    Active windows for the same key never overlap: a new window that
    intersects one raises ConflictError. Rows are retired by deactivation,
    never deleted, so historical pricing stays explainable.
    """

    def __init__(
        self,
        session: AsyncSession,
        permissions: PermissionChecker | None = None,
    ):
        self.session = session
        self.permissions = permissions

    async def _authorize(self, actor_id: UUID | None) -> None:
        if self.permissions is not None and actor_id is not None:
            await require(self.permissions, actor_id, PERMISSION_MANAGE_RATES)

    async def _check_overlap(
        self,
        kind: str,
        key: dict[str, Any],
        effective_date: date,
        expiry_date: date | None,
    ) -> None:
        model = RATE_MODELS[kind]
        conditions = [getattr(model, column) == value for column, value in key.items()]
        result = await self.session.execute(
            select(model).where(*conditions, model.active.is_(True))
        )
        for row in result.scalars().all():
            if row.overlaps(effective_date, expiry_date):
                logger.warning(
                    "Rejected %s rate for %s: window %s..%s overlaps %s",
                    kind,
                    key,
                    effective_date,
                    expiry_date,
                    _primary_key(row),
                )
                raise ConflictError(kind, key, _primary_key(row))

    async def create_job_override(
        self,
        job_id: UUID,
        worker_id: UUID,
        regular_rate: Decimal,
        effective_date: date,
        expiry_date: date | None = None,
        overtime_rate: Decimal | None = None,
        reason: str | None = None,
        created_by: UUID | None = None,
    ) -> JobRateOverride:
        """Add a rate for one worker on one job."""
        await self._authorize(created_by)
        _validate_window(regular_rate, overtime_rate, effective_date, expiry_date)
        await self._check_overlap(
            "job", {"job_id": job_id, "worker_id": worker_id}, effective_date, expiry_date
        )
        row = JobRateOverride(
            job_id=job_id,
            worker_id=worker_id,
            regular_rate=regular_rate,
            overtime_rate=overtime_rate,
            effective_date=effective_date,
            expiry_date=expiry_date,
            reason=reason,
            created_by=created_by,
            active=True,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info("Created job override %s for worker %s on job %s", row.override_id, worker_id, job_id)
        return row

    async def create_worker_rate(
        self,
        worker_id: UUID,
        regular_rate: Decimal,
        effective_date: date,
        expiry_date: date | None = None,
        overtime_rate: Decimal | None = None,
        created_by: UUID | None = None,
    ) -> WorkerRate:
        """Add a standing rate for a worker."""
        await self._authorize(created_by)
        _validate_window(regular_rate, overtime_rate, effective_date, expiry_date)
        await self._check_overlap("worker", {"worker_id": worker_id}, effective_date, expiry_date)
        row = WorkerRate(
            worker_id=worker_id,
            regular_rate=regular_rate,
            overtime_rate=overtime_rate,
            effective_date=effective_date,
            expiry_date=expiry_date,
            created_by=created_by,
            active=True,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info("Created worker rate %s for worker %s", row.worker_rate_id, worker_id)
        return row

    async def create_skill_rate(
        self,
        skill_level: str,
        regular_rate: Decimal,
        effective_date: date,
        expiry_date: date | None = None,
        overtime_rate: Decimal | None = None,
        name: str | None = None,
        created_by: UUID | None = None,
    ) -> SkillRate:
        """Add a rate for a whole skill tier."""
        await self._authorize(created_by)
        if skill_level not in SKILL_LEVELS:
            raise ValueError(f"Unknown skill level {skill_level!r}")
        _validate_window(regular_rate, overtime_rate, effective_date, expiry_date)
        await self._check_overlap(
            "skill", {"skill_level": skill_level}, effective_date, expiry_date
        )
        row = SkillRate(
            skill_level=skill_level,
            name=name,
            regular_rate=regular_rate,
            overtime_rate=overtime_rate,
            effective_date=effective_date,
            expiry_date=expiry_date,
            created_by=created_by,
            active=True,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info("Created skill rate %s for %s", row.skill_rate_id, skill_level)
        return row

    async def deactivate(
        self,
        kind: str,
        rate_id: UUID,
        actor_id: UUID | None = None,
    ) -> Any:
        """Retire a rate row. The resolver ignores inactive rows."""
        await self._authorize(actor_id)
        model = RATE_MODELS.get(kind)
        if model is None:
            raise ValueError(f"Unknown rate kind {kind!r}")
        row = await self.session.get(model, rate_id)
        if row is None:
            raise RateNotFoundError(kind, rate_id)
        row.active = False
        await self.session.flush()
        logger.info("Deactivated %s rate %s", kind, rate_id)
        return row
