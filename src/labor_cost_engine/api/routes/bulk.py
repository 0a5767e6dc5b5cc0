"""Bulk operation endpoints. Each call returns its correlation id."""

from fastapi import APIRouter

from labor_cost_engine.api.dependencies import BulkOperations, CurrentUserId, DbSession
from labor_cost_engine.api.schemas import (
    BulkApproveRequest,
    BulkFailureResponse,
    BulkRejectRequest,
    BulkResultResponse,
    EntrySelectionRequest,
    PayrollExportRequest,
    PayrollExportResponse,
    WorkerPayrollResponse,
)
from labor_cost_engine.services.bulk_service import BulkResult, EntrySelection

router = APIRouter(tags=["bulk"])


def _selection(payload: EntrySelectionRequest) -> EntrySelection:
    return EntrySelection(
        entry_ids=payload.entry_ids,
        worker_id=payload.worker_id,
        job_id=payload.job_id,
        start=payload.start,
        end=payload.end,
    )


def _result_response(result: BulkResult) -> BulkResultResponse:
    return BulkResultResponse(
        correlation_id=result.correlation_id,
        action=result.action.value,
        succeeded=result.succeeded,
        failures=[
            BulkFailureResponse(entry_id=f.entry_id, error=f.error, error_type=f.error_type)
            for f in result.failures
        ],
        related_cost_run_id=result.related_cost_run_id,
    )


@router.post("/time-entries/bulk-approve", response_model=BulkResultResponse)
async def bulk_approve(
    db: DbSession,
    service: BulkOperations,
    user_id: CurrentUserId,
    payload: BulkApproveRequest,
) -> BulkResultResponse:
    """Approve a batch of submitted entries."""
    result = await service.bulk_approve(_selection(payload), user_id, payload.notes)
    await db.commit()
    return _result_response(result)


@router.post("/time-entries/bulk-reject", response_model=BulkResultResponse)
async def bulk_reject(
    db: DbSession,
    service: BulkOperations,
    user_id: CurrentUserId,
    payload: BulkRejectRequest,
) -> BulkResultResponse:
    result = await service.bulk_reject(_selection(payload), user_id, payload.reason)
    await db.commit()
    return _result_response(result)


@router.post("/labor-costs/regenerate", response_model=BulkResultResponse)
async def regenerate_labor_costs(
    db: DbSession,
    service: BulkOperations,
    user_id: CurrentUserId,
    payload: EntrySelectionRequest,
) -> BulkResultResponse:
    """Re-price entries against the current rate tables."""
    result = await service.regenerate_labor_costs(_selection(payload), user_id)
    await db.commit()
    return _result_response(result)


@router.post("/payroll/export", response_model=PayrollExportResponse)
async def export_payroll(
    db: DbSession,
    service: BulkOperations,
    user_id: CurrentUserId,
    payload: PayrollExportRequest,
) -> PayrollExportResponse:
    """Summarize approved pay per worker for a period."""
    export = await service.export_payroll(
        payload.period_start, payload.period_end, user_id, payload.worker_id
    )
    await db.commit()
    return PayrollExportResponse(
        correlation_id=export.correlation_id,
        period_start=export.period_start,
        period_end=export.period_end,
        total_pay=export.total_pay,
        workers=[WorkerPayrollResponse.model_validate(w) for w in export.workers],
        entry_ids=export.entry_ids,
    )
