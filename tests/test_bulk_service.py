"""Tests for correlated bulk operations."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from labor_cost_engine.models import WorkerRate
from labor_cost_engine.services.audit_service import AuditAction, AuditTrailWriter
from labor_cost_engine.services.bulk_service import BulkOperationService, EntrySelection
from labor_cost_engine.services.collaborators import (
    PermissionDeniedError,
    RoleTablePermissionChecker,
)
from labor_cost_engine.services.correlation import BulkOperation, generate_correlation_id

pytestmark = pytest.mark.asyncio

MONDAY = date(2024, 1, 8)


class FailOnSecondInsertWriter(AuditTrailWriter):
    """Audit writer whose second insert hits a storage error."""

    def __init__(self, session):
        super().__init__(session)
        self.inserts = 0

    async def _insert(self, row):
        self.inserts += 1
        if self.inserts == 2:
            raise OperationalError("INSERT", {}, Exception("disk full"))
        await super()._insert(row)


@pytest.fixture
def bulk(session, time_entries):
    return BulkOperationService(session, time_entries)


@pytest.fixture
async def submitted_week(time_entries, test_workers, test_jobs):
    """Five submitted 10 hour days for Alice, Monday to Friday."""
    alice_id = test_workers["alice"].worker_id
    entries = []
    for offset in range(5):
        outcome = await time_entries.create(
            worker_id=alice_id,
            job_id=test_jobs["J1"].job_id,
            work_date=MONDAY + timedelta(days=offset),
            hours=Decimal("10"),
            created_by=alice_id,
            has_breaks=True,
        )
        await time_entries.submit(outcome.entry.time_entry_id, alice_id)
        entries.append(outcome.entry)
    return entries


class TestCorrelationIds:
    def test_ids_are_unique_and_prefixed(self):
        ids = {generate_correlation_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(i.startswith("bulk_") for i in ids)

    def test_operation_threads_id_into_audit_options(self):
        operation = BulkOperation(action=AuditAction.BULK_APPROVE, started_by=uuid4())

        assert operation.audit_options().correlation_id == operation.correlation_id


class TestBulkApprove:
    """Test batch approval."""

    async def test_five_entries_share_one_correlation_id(
        self, session, bulk, submitted_week, test_workers
    ):
        ids = [e.time_entry_id for e in submitted_week]

        result = await bulk.bulk_approve(
            EntrySelection(entry_ids=ids), test_workers["fran"].worker_id, notes="Week 2"
        )

        assert result.succeeded == ids
        assert result.failures == []
        assert result.correlation_id.startswith("bulk_")
        records = await AuditTrailWriter(session).get_by_correlation(result.correlation_id)
        assert len(records) == 5
        assert [r.entry_id for r in records] == ids
        assert {r.action for r in records} == {AuditAction.BULK_APPROVE.value}
        assert all(r.changes["status"] == {"from": "submitted", "to": "approved"} for r in records)
        assert all(e.status == "approved" for e in submitted_week)

    async def test_failures_are_isolated(
        self, session, bulk, time_entries, submitted_week, test_workers, test_jobs
    ):
        alice_id = test_workers["alice"].worker_id
        draft = (
            await time_entries.create(
                worker_id=alice_id,
                job_id=test_jobs["J2"].job_id,
                work_date=MONDAY + timedelta(days=7),
                hours=Decimal("4"),
                created_by=alice_id,
            )
        ).entry
        missing_id = uuid4()
        ids = [e.time_entry_id for e in submitted_week[:3]] + [draft.time_entry_id, missing_id]

        result = await bulk.bulk_approve(EntrySelection(entry_ids=ids), test_workers["fran"].worker_id)

        assert len(result.succeeded) == 3
        failures = {f.entry_id: f.error_type for f in result.failures}
        assert failures == {
            draft.time_entry_id: "InvalidTransitionError",
            missing_id: "TimeEntryNotFoundError",
        }
        records = await AuditTrailWriter(session).get_by_correlation(result.correlation_id)
        assert len(records) == 3
        assert draft.status == "draft"

    async def test_selection_by_worker_defaults_to_submitted(
        self, bulk, submitted_week, test_workers
    ):
        result = await bulk.bulk_approve(
            EntrySelection(worker_id=test_workers["alice"].worker_id),
            test_workers["fran"].worker_id,
        )

        assert len(result.succeeded) == 5

    async def test_selection_is_not_mutated(self, bulk, submitted_week, test_workers):
        selection = EntrySelection(worker_id=test_workers["alice"].worker_id)

        await bulk.bulk_approve(selection, test_workers["fran"].worker_id)

        assert selection.statuses is None

    async def test_audit_failure_mid_batch_rolls_back_only_that_entry(
        self, session, bulk, time_entries, submitted_week, test_workers
    ):
        time_entries.audit = FailOnSecondInsertWriter(session)
        ids = [e.time_entry_id for e in submitted_week]

        result = await bulk.bulk_approve(EntrySelection(entry_ids=ids), test_workers["fran"].worker_id)

        assert result.succeeded == [ids[0]] + ids[2:]
        assert [(f.entry_id, f.error_type) for f in result.failures] == [
            (ids[1], "AuditWriteError")
        ]
        records = await AuditTrailWriter(session).get_by_correlation(result.correlation_id)
        assert [r.entry_id for r in records] == [ids[0]] + ids[2:]
        await session.refresh(submitted_week[1])
        assert submitted_week[1].status == "submitted"
        assert submitted_week[1].approved_by is None

    async def test_separate_invocations_get_separate_ids(
        self, bulk, submitted_week, test_workers
    ):
        fran_id = test_workers["fran"].worker_id
        first = await bulk.bulk_approve(
            EntrySelection(entry_ids=[submitted_week[0].time_entry_id]), fran_id
        )
        second = await bulk.bulk_approve(
            EntrySelection(entry_ids=[submitted_week[1].time_entry_id]), fran_id
        )

        assert first.correlation_id != second.correlation_id

    async def test_requires_approve_permission(
        self, session, time_entries, submitted_week, test_workers
    ):
        bulk = BulkOperationService(
            session, time_entries, permissions=RoleTablePermissionChecker(session)
        )

        with pytest.raises(PermissionDeniedError):
            await bulk.bulk_approve(
                EntrySelection(entry_ids=[submitted_week[0].time_entry_id]),
                test_workers["alice"].worker_id,
            )


class TestBulkReject:
    async def test_rejects_with_shared_reason(self, session, bulk, submitted_week, test_workers):
        result = await bulk.bulk_reject(
            EntrySelection(entry_ids=[e.time_entry_id for e in submitted_week[:2]]),
            test_workers["fran"].worker_id,
            "Wrong job code",
        )

        records = await AuditTrailWriter(session).get_by_correlation(result.correlation_id)
        assert len(records) == 2
        assert all(r.action == AuditAction.BULK_REJECT.value for r in records)
        assert all(r.change_reason == "Wrong job code" for r in records)
        assert submitted_week[0].rejection_reason == "Wrong job code"

    async def test_requires_reason(self, bulk, submitted_week, test_workers):
        with pytest.raises(ValueError):
            await bulk.bulk_reject(
                EntrySelection(entry_ids=[submitted_week[0].time_entry_id]),
                test_workers["fran"].worker_id,
                "",
            )


class TestRegenerateLaborCosts:
    async def test_reprices_against_current_rates(
        self, session, bulk, submitted_week, test_workers
    ):
        alice = test_workers["alice"]
        assert submitted_week[0].total_pay == Decimal("825.00")
        session.add(
            WorkerRate(
                worker_rate_id=uuid4(),
                worker_id=alice.worker_id,
                regular_rate=Decimal("80.00"),
                effective_date=date(2024, 1, 1),
            )
        )
        await session.flush()

        result = await bulk.regenerate_labor_costs(
            EntrySelection(worker_id=alice.worker_id), test_workers["olive"].worker_id
        )

        assert len(result.succeeded) == 5
        assert result.related_cost_run_id.startswith("costrun_")
        assert all(e.total_pay == Decimal("880.00") for e in submitted_week)
        assert all(e.rate_source == "worker" for e in submitted_week)
        records = await AuditTrailWriter(session).get_by_correlation(result.correlation_id)
        assert len(records) == 5
        assert all(r.related_cost_run_id == result.related_cost_run_id for r in records)
        assert records[0].changes["total_pay"] == {"from": "825.00", "to": "880.00"}


class TestPayrollExport:
    async def test_summarizes_approved_entries(self, session, bulk, submitted_week, test_workers):
        fran_id = test_workers["fran"].worker_id
        await bulk.bulk_approve(
            EntrySelection(entry_ids=[e.time_entry_id for e in submitted_week]), fran_id
        )

        export = await bulk.export_payroll(MONDAY, MONDAY + timedelta(days=6), fran_id)

        assert len(export.workers) == 1
        summary = export.workers[0]
        assert summary.entry_count == 5
        assert summary.regular_hours == Decimal("40")
        assert summary.overtime_hours == Decimal("10")
        assert summary.total_pay == Decimal("4125.00")
        assert summary.weekly_overtime_hours == Decimal("10")
        assert export.total_pay == Decimal("4125.00")
        records = await AuditTrailWriter(session).get_by_correlation(export.correlation_id)
        assert len(records) == 5
        assert all(r.action == AuditAction.PAYROLL_EXPORT.value for r in records)
        assert all(r.changes == {} for r in records)

    async def test_unapproved_entries_are_left_out(self, bulk, submitted_week, test_workers):
        export = await bulk.export_payroll(
            MONDAY, MONDAY + timedelta(days=6), test_workers["fran"].worker_id
        )

        assert export.workers == []
        assert export.entry_ids == []

    async def test_rejects_inverted_period(self, bulk, test_workers):
        with pytest.raises(ValueError):
            await bulk.export_payroll(MONDAY, MONDAY - timedelta(days=1), uuid4())
