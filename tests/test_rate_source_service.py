"""Tests for rate source administration."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from labor_cost_engine.calculators import RateResolver, RateSource
from labor_cost_engine.services.collaborators import (
    PermissionDeniedError,
    RoleTablePermissionChecker,
)
from labor_cost_engine.services.rate_source_service import (
    ConflictError,
    RateNotFoundError,
    RateSourceService,
)

pytestmark = pytest.mark.asyncio


@pytest.fixture
def rates(session):
    return RateSourceService(session)


class TestOverlapDetection:
    """Test that overlapping active windows are refused at creation."""

    async def test_overlapping_worker_rate_conflicts(self, rates, test_workers):
        alice_id = test_workers["alice"].worker_id
        existing = await rates.create_worker_rate(
            alice_id, Decimal("70.00"), date(2024, 1, 1), date(2024, 7, 1)
        )

        with pytest.raises(ConflictError) as exc_info:
            await rates.create_worker_rate(alice_id, Decimal("72.00"), date(2024, 6, 1))

        assert exc_info.value.kind == "worker"
        assert exc_info.value.conflicting_id == existing.worker_rate_id

    async def test_open_ended_window_conflicts_with_later_start(self, rates, test_workers):
        alice_id = test_workers["alice"].worker_id
        await rates.create_worker_rate(alice_id, Decimal("70.00"), date(2024, 1, 1))

        with pytest.raises(ConflictError):
            await rates.create_worker_rate(alice_id, Decimal("72.00"), date(2030, 1, 1))

    async def test_adjacent_windows_are_allowed(self, rates, test_workers):
        alice_id = test_workers["alice"].worker_id
        await rates.create_worker_rate(
            alice_id, Decimal("70.00"), date(2024, 1, 1), date(2024, 7, 1)
        )

        later = await rates.create_worker_rate(alice_id, Decimal("72.00"), date(2024, 7, 1))

        assert later.effective_date == date(2024, 7, 1)

    async def test_other_keys_do_not_conflict(self, rates, test_workers, test_jobs):
        job_id = test_jobs["J1"].job_id
        await rates.create_job_override(
            job_id, test_workers["alice"].worker_id, Decimal("90.00"), date(2024, 1, 1)
        )

        override = await rates.create_job_override(
            job_id, test_workers["hank"].worker_id, Decimal("50.00"), date(2024, 1, 1)
        )
        skill = await rates.create_skill_rate("JOURNEYMAN", Decimal("80.00"), date(2024, 1, 1))

        assert override.regular_rate == Decimal("50.00")
        assert skill.skill_level == "JOURNEYMAN"

    async def test_overlapping_job_override_conflicts(self, rates, test_workers, test_jobs):
        args = (test_jobs["J1"].job_id, test_workers["alice"].worker_id)
        await rates.create_job_override(*args, Decimal("90.00"), date(2024, 1, 1))

        with pytest.raises(ConflictError) as exc_info:
            await rates.create_job_override(*args, Decimal("95.00"), date(2024, 2, 1))

        assert exc_info.value.kind == "job"

    async def test_deactivated_rate_no_longer_conflicts(self, session, rates, test_workers):
        alice_id = test_workers["alice"].worker_id
        old = await rates.create_worker_rate(alice_id, Decimal("70.00"), date(2024, 1, 1))

        await rates.deactivate("worker", old.worker_rate_id)
        replacement = await rates.create_worker_rate(alice_id, Decimal("74.00"), date(2024, 1, 1))

        rate = await RateResolver(session).resolve(alice_id, None, date(2024, 3, 1))
        assert old.active is False
        assert rate.source == RateSource.WORKER
        assert rate.source_record_id == replacement.worker_rate_id


class TestValidation:
    async def test_expiry_must_follow_effective_date(self, rates, test_workers):
        with pytest.raises(ValueError, match="expiry_date"):
            await rates.create_worker_rate(
                test_workers["alice"].worker_id,
                Decimal("70.00"),
                date(2024, 1, 1),
                date(2024, 1, 1),
            )

    async def test_rate_must_be_positive(self, rates, test_workers):
        with pytest.raises(ValueError, match="regular_rate"):
            await rates.create_worker_rate(
                test_workers["alice"].worker_id, Decimal("0"), date(2024, 1, 1)
            )

    async def test_unknown_skill_level(self, rates):
        with pytest.raises(ValueError, match="skill level"):
            await rates.create_skill_rate("WIZARD", Decimal("80.00"), date(2024, 1, 1))

    async def test_deactivate_unknown_rate(self, rates):
        with pytest.raises(RateNotFoundError):
            await rates.deactivate("skill", uuid4())


class TestPermissions:
    async def test_employee_cannot_manage_rates(self, session, test_workers):
        rates = RateSourceService(session, permissions=RoleTablePermissionChecker(session))

        with pytest.raises(PermissionDeniedError) as exc_info:
            await rates.create_skill_rate(
                "JOURNEYMAN",
                Decimal("80.00"),
                date(2024, 1, 1),
                created_by=test_workers["alice"].worker_id,
            )

        assert exc_info.value.permission == "rates.manage"

    async def test_owner_can_manage_rates(self, session, test_workers):
        rates = RateSourceService(session, permissions=RoleTablePermissionChecker(session))

        row = await rates.create_skill_rate(
            "JOURNEYMAN",
            Decimal("80.00"),
            date(2024, 1, 1),
            created_by=test_workers["olive"].worker_id,
        )

        assert row.created_by == test_workers["olive"].worker_id
