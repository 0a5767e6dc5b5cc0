"""Labor cost engine services."""

from labor_cost_engine.services.audit_service import (
    AuditAction,
    AuditOptions,
    AuditQuery,
    AuditTrailWriter,
    AuditWriteError,
)
from labor_cost_engine.services.bulk_service import BulkOperationService, BulkResult, EntrySelection
from labor_cost_engine.services.correlation import BulkOperation, generate_correlation_id
from labor_cost_engine.services.rate_source_service import ConflictError, RateSourceService
from labor_cost_engine.services.state_machine import (
    InvalidTransitionError,
    TimeEntryStateMachine,
    TimeEntryStatus,
)
from labor_cost_engine.services.time_entry_service import (
    TimeEntryNotFoundError,
    TimeEntryRejectedError,
    TimeEntryService,
)

__all__ = [
    "AuditAction",
    "AuditOptions",
    "AuditQuery",
    "AuditTrailWriter",
    "AuditWriteError",
    "BulkOperation",
    "BulkOperationService",
    "BulkResult",
    "EntrySelection",
    "generate_correlation_id",
    "ConflictError",
    "RateSourceService",
    "InvalidTransitionError",
    "TimeEntryStateMachine",
    "TimeEntryStatus",
    "TimeEntryNotFoundError",
    "TimeEntryRejectedError",
    "TimeEntryService",
]
