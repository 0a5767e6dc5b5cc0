"""Correlation identifiers for bulk operations."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from labor_cost_engine.services.audit_service import AuditAction, AuditOptions


def generate_correlation_id(prefix: str = "bulk") -> str:
    """Return a new correlation id, e.g. ``bulk_1718200000000_<32 hex>``.

    The millisecond timestamp keeps ids roughly sortable for humans; the
    uuid4 suffix supplies the uniqueness across concurrent batches.
    """
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex}"


@dataclass(frozen=True)
class BulkOperation:
    """One invocation of a batch action, shared by every entry it touches."""

    action: AuditAction
    started_by: UUID
    correlation_id: str = field(default_factory=generate_correlation_id)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notes: str | None = None
    change_reason: str | None = None
    related_cost_run_id: str | None = None

    def audit_options(self) -> AuditOptions:
        """Audit options carrying this operation's correlation id."""
        return AuditOptions(
            notes=self.notes,
            change_reason=self.change_reason,
            correlation_id=self.correlation_id,
            related_cost_run_id=self.related_cost_run_id,
        )
