"""Labor rate resolution over a precedence cascade of rate sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.calculators.cost_splitter import round_to_cents
from labor_cost_engine.calculators.types import RateSource, ResolvedRate
from labor_cost_engine.models import JobRateOverride, SkillRate, Worker, WorkerRate

logger = logging.getLogger(__name__)

BASELINE_SKILL_LEVEL = "JOURNEYMAN"

# Static fallback table, used only when no persisted source matches.
DEFAULT_RATES: dict[str, Decimal] = {
    "APPRENTICE": Decimal("45.00"),
    "HELPER": Decimal("35.00"),
    "TECH_L1": Decimal("55.00"),
    "TECH_L2": Decimal("65.00"),
    "JOURNEYMAN": Decimal("75.00"),
    "FOREMAN": Decimal("85.00"),
    "MASTER": Decimal("95.00"),
    "OWNER_ADMIN": Decimal("100.00"),
}

ROLE_TO_SKILL_LEVEL: dict[str, str] = {
    "APPRENTICE": "APPRENTICE",
    "HELPER": "HELPER",
    "EMPLOYEE": "JOURNEYMAN",
    "FIELD_CREW": "JOURNEYMAN",
    "FOREMAN": "FOREMAN",
    "OWNER_ADMIN": "MASTER",
    "ADMIN": "MASTER",
}


class ResolutionError(Exception):
    """Raised when a rate cannot be resolved from storage.

    Covers storage failures and ambiguous windows (two active rows for the
    same key starting on the same date). Never raised for "no row found":
    the cascade always ends in the default table.
    """

    def __init__(
        self,
        worker_id: UUID,
        job_id: UUID | None,
        as_of_date: date,
        reason: str,
        source: RateSource | None = None,
    ):
        self.worker_id = worker_id
        self.job_id = job_id
        self.as_of_date = as_of_date
        self.reason = reason
        self.source = source
        tier = f" at {source.value} tier" if source else ""
        super().__init__(
            f"Could not resolve rate for worker {worker_id} on job {job_id} "
            f"as of {as_of_date}{tier}: {reason}"
        )


@dataclass
class RateQuery:
    """Inputs to one resolution, with per-query memo of the worker's tier."""

    worker_id: UUID
    job_id: UUID | None
    as_of_date: date
    skill_level: str | None = field(default=None, compare=False)


@runtime_checkable
class RateStrategy(Protocol):
    """One tier of the cascade. Returns None to defer to the next tier."""

    source: RateSource

    async def try_resolve(self, query: RateQuery) -> ResolvedRate | None:
        ...


class _WindowedRateStrategy:
    """Shared lookup for tiers backed by an effective-dated table."""

    source: RateSource

    def __init__(self, session: AsyncSession, overtime_multiplier: Decimal):
        self.session = session
        self.overtime_multiplier = overtime_multiplier

    async def _latest_in_window(self, query: RateQuery, model: Any, *conditions: Any) -> Any:
        """Most recently effective active row whose window contains the date."""
        result = await self.session.execute(
            select(model)
            .where(
                *conditions,
                model.active.is_(True),
                model.effective_date <= query.as_of_date,
                (model.expiry_date.is_(None) | (model.expiry_date > query.as_of_date)),
            )
            .order_by(model.effective_date.desc())
            .limit(2)
        )
        rows = list(result.scalars().all())
        if not rows:
            return None
        if len(rows) == 2 and rows[0].effective_date == rows[1].effective_date:
            raise ResolutionError(
                query.worker_id,
                query.job_id,
                query.as_of_date,
                f"ambiguous overlapping windows starting {rows[0].effective_date}",
                source=self.source,
            )
        return rows[0]

    def _to_resolved(self, row: Any, record_id: UUID, skill_level: str | None = None) -> ResolvedRate:
        overtime = row.overtime_rate
        if overtime is None:
            overtime = round_to_cents(row.regular_rate * self.overtime_multiplier)
        return ResolvedRate(
            regular_rate=row.regular_rate,
            overtime_rate=overtime,
            source=self.source,
            source_record_id=record_id,
            skill_level=skill_level,
        )


class JobOverrideStrategy(_WindowedRateStrategy):
    source = RateSource.JOB

    async def try_resolve(self, query: RateQuery) -> ResolvedRate | None:
        if query.job_id is None:
            return None
        row = await self._latest_in_window(
            query,
            JobRateOverride,
            JobRateOverride.job_id == query.job_id,
            JobRateOverride.worker_id == query.worker_id,
        )
        return self._to_resolved(row, row.override_id) if row else None


class WorkerRateStrategy(_WindowedRateStrategy):
    source = RateSource.WORKER

    async def try_resolve(self, query: RateQuery) -> ResolvedRate | None:
        row = await self._latest_in_window(
            query,
            WorkerRate,
            WorkerRate.worker_id == query.worker_id,
        )
        return self._to_resolved(row, row.worker_rate_id) if row else None


class SkillTierLookup:
    """Determines a worker's skill tier: explicit tier, else mapped from role."""

    def __init__(self, session: AsyncSession, baseline_skill_level: str = BASELINE_SKILL_LEVEL):
        self.session = session
        self.baseline_skill_level = baseline_skill_level

    async def skill_level_for(self, query: RateQuery) -> str:
        if query.skill_level is None:
            worker = await self.session.get(Worker, query.worker_id)
            query.skill_level = self.skill_level_of(worker)
        return query.skill_level

    def skill_level_of(self, worker: Worker | None) -> str:
        if worker is None:
            return self.baseline_skill_level
        if worker.skill_level:
            return worker.skill_level
        return ROLE_TO_SKILL_LEVEL.get(worker.role, self.baseline_skill_level)


class SkillRateStrategy(_WindowedRateStrategy):
    source = RateSource.SKILL

    def __init__(
        self,
        session: AsyncSession,
        overtime_multiplier: Decimal,
        tiers: SkillTierLookup,
    ):
        super().__init__(session, overtime_multiplier)
        self.tiers = tiers

    async def try_resolve(self, query: RateQuery) -> ResolvedRate | None:
        skill_level = await self.tiers.skill_level_for(query)
        row = await self._latest_in_window(
            query,
            SkillRate,
            SkillRate.skill_level == skill_level,
        )
        return self._to_resolved(row, row.skill_rate_id, skill_level) if row else None


class DefaultRateStrategy:
    """Terminal tier: the static table. Always produces a rate."""

    source = RateSource.DEFAULT

    def __init__(
        self,
        tiers: SkillTierLookup,
        overtime_multiplier: Decimal,
        rates: dict[str, Decimal] | None = None,
    ):
        self.tiers = tiers
        self.overtime_multiplier = overtime_multiplier
        self.rates = rates if rates is not None else DEFAULT_RATES

    async def try_resolve(self, query: RateQuery) -> ResolvedRate | None:
        skill_level = await self.tiers.skill_level_for(query)
        return self.for_skill_level(skill_level)

    def for_skill_level(self, skill_level: str | None, degraded: bool = False) -> ResolvedRate:
        baseline = self.tiers.baseline_skill_level
        regular = self.rates.get(skill_level or baseline)
        if regular is None:
            regular = self.rates.get(baseline, DEFAULT_RATES[BASELINE_SKILL_LEVEL])
        return ResolvedRate(
            regular_rate=regular,
            overtime_rate=round_to_cents(regular * self.overtime_multiplier),
            source=self.source,
            skill_level=skill_level,
            degraded=degraded,
        )


class RateResolver:
    """Resolves the hourly rate pair for a worker on a job on a date.

    Strategies are tried in order and the first match wins:
    1. Job override for (job, worker)
    2. Worker rate
    3. Skill-tier rate (tier from the worker record, else from role)
    4. Static default table by tier, then the baseline tier

    Within a tier the active row whose [effective_date, expiry_date) window
    contains the date and whose effective_date is latest is used. A missing
    overtime rate is derived from the regular rate and the overtime
    multiplier on every tier.

    Storage failures surface as ResolutionError. Only
    resolve_with_fallback() substitutes the baseline rate, and it logs and
    flags the result when it does.
    """

    def __init__(
        self,
        session: AsyncSession,
        overtime_multiplier: Decimal = Decimal("1.5"),
        baseline_skill_level: str = BASELINE_SKILL_LEVEL,
        strategies: list[RateStrategy] | None = None,
    ):
        self.session = session
        self.tiers = SkillTierLookup(session, baseline_skill_level)
        self.default_strategy = DefaultRateStrategy(self.tiers, overtime_multiplier)
        self.strategies: list[RateStrategy] = strategies or [
            JobOverrideStrategy(session, overtime_multiplier),
            WorkerRateStrategy(session, overtime_multiplier),
            SkillRateStrategy(session, overtime_multiplier, self.tiers),
            self.default_strategy,
        ]
        self.degraded_count = 0

    async def resolve(
        self,
        worker_id: UUID,
        job_id: UUID | None,
        as_of_date: date,
    ) -> ResolvedRate:
        """Resolve a rate, propagating any storage failure.

        Raises:
            ResolutionError: If storage fails or a window is ambiguous
        """
        query = RateQuery(worker_id=worker_id, job_id=job_id, as_of_date=as_of_date)
        for strategy in self.strategies:
            try:
                resolved = await strategy.try_resolve(query)
            except SQLAlchemyError as exc:
                raise ResolutionError(
                    worker_id, job_id, as_of_date, str(exc), source=strategy.source
                ) from exc
            if resolved is not None:
                return resolved

        # Only reachable with a custom strategy list lacking a terminal tier.
        return self.default_strategy.for_skill_level(query.skill_level)

    async def resolve_with_fallback(
        self,
        worker_id: UUID,
        job_id: UUID | None,
        as_of_date: date,
    ) -> ResolvedRate:
        """Resolve a rate, degrading to the baseline tier on failure.

        For estimate and display paths only. The result carries
        ``degraded=True`` and the event is logged, since it affects pay.
        """
        try:
            return await self.resolve(worker_id, job_id, as_of_date)
        except ResolutionError as exc:
            self.degraded_count += 1
            logger.warning(
                "Degraded rate resolution for worker %s job %s on %s: %s",
                worker_id,
                job_id,
                as_of_date,
                exc.reason,
            )
            return self.default_strategy.for_skill_level(
                self.tiers.baseline_skill_level, degraded=True
            )

    async def resolve_many(
        self,
        requests: list[tuple[UUID, UUID | None, date]],
    ) -> dict[tuple[UUID, UUID | None, date], ResolvedRate]:
        """Resolve a batch, querying each distinct (worker, job, date) once."""
        resolved: dict[tuple[UUID, UUID | None, date], ResolvedRate] = {}
        for key in requests:
            if key not in resolved:
                resolved[key] = await self.resolve(*key)
        return resolved
