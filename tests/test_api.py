"""HTTP tests for the labor cost API."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from labor_cost_engine.api.app import create_app
from labor_cost_engine.api.dependencies import get_db_session
from labor_cost_engine.config import PayPolicy, Settings, get_settings

pytestmark = pytest.mark.asyncio

MONDAY = date(2024, 1, 8)


def _test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        baseline_skill_level="JOURNEYMAN",
        transaction_timeout_seconds=None,
        allow_degraded_rates=False,
        pay_policy=PayPolicy(),
    )


@pytest_asyncio.fixture
async def client(seeded, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """API client over the per-test database, with reference data committed."""
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_settings] = _test_settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _as(worker) -> dict[str, str]:
    return {"X-User-ID": str(worker.worker_id)}


async def _create(client, worker, job, work_date=MONDAY, hours="10"):
    response = await client.post(
        "/api/v1/time-entries",
        headers=_as(worker),
        json={
            "worker_id": str(worker.worker_id),
            "job_id": str(job.job_id),
            "work_date": work_date.isoformat(),
            "hours": hours,
            "has_breaks": True,
        },
    )
    return response


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["version"] == "test"
        assert body["degraded_rates_enabled"] is False

    async def test_ready_once_schema_exists(self, client):
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_liveness(self, client):
        response = await client.get("/live")

        assert response.json() == {"status": "alive"}


class TestTimeEntryEndpoints:
    async def test_create_prices_entry(self, client, test_workers, test_jobs):
        response = await _create(client, test_workers["alice"], test_jobs["J1"])

        assert response.status_code == 201
        body = response.json()
        entry = body["entry"]
        assert entry["status"] == "draft"
        assert Decimal(entry["regular_hours"]) == Decimal("8")
        assert Decimal(entry["overtime_hours"]) == Decimal("2")
        assert Decimal(entry["total_pay"]) == Decimal("825.00")
        assert entry["rate_source"] == "default"
        assert body["degraded_rate"] is False
        assert body["warnings"] == []

    async def test_excessive_hours_rejected(self, client, test_workers, test_jobs):
        response = await _create(client, test_workers["alice"], test_jobs["J1"], hours="17")

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "TIME_ENTRY_REJECTED"
        assert "EXCESSIVE_HOURS" in [w["type"] for w in body["warnings"]]

    async def test_missing_user_header(self, client, test_workers, test_jobs):
        alice = test_workers["alice"]
        response = await client.post(
            "/api/v1/time-entries",
            json={
                "worker_id": str(alice.worker_id),
                "job_id": str(test_jobs["J1"].job_id),
                "work_date": MONDAY.isoformat(),
                "hours": "8",
            },
        )

        assert response.status_code == 400

    async def test_validate_preview_writes_nothing(self, client, test_workers):
        alice = test_workers["alice"]
        response = await client.post(
            "/api/v1/time-entries/validate",
            json={
                "worker_id": str(alice.worker_id),
                "work_date": MONDAY.isoformat(),
                "hours": "7",
                "has_breaks": False,
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert body["is_valid"] is True
        assert [w["type"] for w in body["warnings"]] == ["MISSING_BREAK"]

    async def test_unknown_entry_is_404(self, client, test_workers):
        response = await client.get(
            f"/api/v1/time-entries/{test_workers['alice'].worker_id}"
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_employee_cannot_approve(self, client, test_workers, test_jobs):
        alice = test_workers["alice"]
        entry_id = (await _create(client, alice, test_jobs["J1"])).json()["entry"]["time_entry_id"]
        await client.post(f"/api/v1/time-entries/{entry_id}/submit", headers=_as(alice))

        response = await client.post(
            f"/api/v1/time-entries/{entry_id}/approve", headers=_as(alice), json={}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"

    async def test_approve_then_edit_conflicts(self, client, test_workers, test_jobs):
        alice, fran = test_workers["alice"], test_workers["fran"]
        entry_id = (await _create(client, alice, test_jobs["J1"])).json()["entry"]["time_entry_id"]
        await client.post(f"/api/v1/time-entries/{entry_id}/submit", headers=_as(alice))
        approved = await client.post(
            f"/api/v1/time-entries/{entry_id}/approve",
            headers=_as(fran),
            json={"notes": "ok"},
        )

        response = await client.patch(
            f"/api/v1/time-entries/{entry_id}", headers=_as(alice), json={"hours": "6"}
        )
        history = await client.get(f"/api/v1/time-entries/{entry_id}/history")

        assert approved.json()["entry"]["status"] == "approved"
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"
        assert [r["action"] for r in history.json()] == ["CREATE", "SUBMIT", "APPROVE"]


class TestBulkEndpoints:
    async def test_bulk_approve_is_queryable_by_correlation(
        self, client, test_workers, test_jobs
    ):
        alice, fran = test_workers["alice"], test_workers["fran"]
        ids = []
        for offset in range(5):
            created = await _create(
                client, alice, test_jobs["J1"], work_date=MONDAY + timedelta(days=offset)
            )
            entry_id = created.json()["entry"]["time_entry_id"]
            await client.post(f"/api/v1/time-entries/{entry_id}/submit", headers=_as(alice))
            ids.append(entry_id)

        response = await client.post(
            "/api/v1/time-entries/bulk-approve",
            headers=_as(fran),
            json={"entry_ids": ids},
        )
        correlation_id = response.json()["correlation_id"]
        records = await client.get(f"/api/v1/audit/correlation/{correlation_id}")

        assert response.status_code == 200
        assert response.json()["succeeded"] == ids
        assert len(records.json()) == 5
        assert {r["action"] for r in records.json()} == {"BULK_APPROVE"}
        assert {r["job_number"] for r in records.json()} == {"J-1001"}

    async def test_payroll_export(self, client, test_workers, test_jobs):
        alice, fran = test_workers["alice"], test_workers["fran"]
        entry_id = (await _create(client, alice, test_jobs["J2"])).json()["entry"]["time_entry_id"]
        await client.post(f"/api/v1/time-entries/{entry_id}/submit", headers=_as(alice))
        await client.post(
            f"/api/v1/time-entries/{entry_id}/approve", headers=_as(fran), json={}
        )

        response = await client.post(
            "/api/v1/payroll/export",
            headers=_as(fran),
            json={
                "period_start": MONDAY.isoformat(),
                "period_end": (MONDAY + timedelta(days=6)).isoformat(),
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert Decimal(body["total_pay"]) == Decimal("825.00")
        assert body["entry_ids"] == [entry_id]


class TestRateEndpoints:
    async def test_overlapping_rate_conflicts(self, client, test_workers):
        olive, alice = test_workers["olive"], test_workers["alice"]
        payload = {
            "worker_id": str(alice.worker_id),
            "regular_rate": "80.00",
            "effective_date": "2024-01-01",
        }

        first = await client.post("/api/v1/rates/workers", headers=_as(olive), json=payload)
        second = await client.post(
            "/api/v1/rates/workers",
            headers=_as(olive),
            json={**payload, "effective_date": "2024-03-01"},
        )

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "RATE_CONFLICT"

    async def test_employee_cannot_manage_rates(self, client, test_workers):
        response = await client.post(
            "/api/v1/rates/skills",
            headers=_as(test_workers["alice"]),
            json={
                "skill_level": "JOURNEYMAN",
                "regular_rate": "80.00",
                "effective_date": "2024-01-01",
            },
        )

        assert response.status_code == 403

    async def test_resolve_reports_source(self, client, test_workers, test_jobs):
        olive, alice = test_workers["olive"], test_workers["alice"]
        await client.post(
            "/api/v1/rates/job-overrides",
            headers=_as(olive),
            json={
                "job_id": str(test_jobs["J1"].job_id),
                "worker_id": str(alice.worker_id),
                "regular_rate": "90.00",
                "effective_date": "2024-01-01",
            },
        )

        on_job = await client.get(
            "/api/v1/rates/resolve",
            params={
                "worker_id": str(alice.worker_id),
                "job_id": str(test_jobs["J1"].job_id),
                "as_of": "2024-02-01",
            },
        )
        off_job = await client.get(
            "/api/v1/rates/resolve",
            params={"worker_id": str(alice.worker_id), "as_of": "2024-02-01"},
        )

        assert on_job.json()["source"] == "job"
        assert Decimal(on_job.json()["overtime_rate"]) == Decimal("135.00")
        assert off_job.json()["source"] == "default"
        assert Decimal(off_job.json()["regular_rate"]) == Decimal("75.00")


class TestAuditEndpoints:
    async def test_list_filters_and_enriches(self, client, test_workers, test_jobs):
        alice, hank = test_workers["alice"], test_workers["hank"]
        await _create(client, alice, test_jobs["J1"])
        await _create(client, hank, test_jobs["J2"], hours="4")

        response = await client.get(
            "/api/v1/audit", params={"worker_id": str(hank.worker_id)}
        )

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 1
        assert body["items"][0]["action"] == "CREATE"
        assert body["items"][0]["changes"] == {}
        assert body["items"][0]["job_number"] == "J-1002"
        assert body["items"][0]["job_title"] == "Rooftop unit replacement"
