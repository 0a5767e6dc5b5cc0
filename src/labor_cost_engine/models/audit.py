"""Append-only audit trail for time entry mutations."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from labor_cost_engine.models.base import Base, utcnow


class ImmutableAuditRecordError(Exception):
    """Raised on any attempt to update or delete an audit record."""

    def __init__(self, audit_id: int | None, operation: str):
        self.audit_id = audit_id
        self.operation = operation
        super().__init__(f"Audit record {audit_id} is immutable; {operation} refused")


class TimeEntryAudit(Base):
    """One row per mutation event on a time entry (not one per field)."""

    __tablename__ = "time_entry_audit"

    audit_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("time_entry.time_entry_id", ondelete="RESTRICT"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    changes: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)

    # Job references on both sides of the change, for job-scoped queries
    old_job_id: Mapped[UUID | None] = mapped_column(nullable=True)
    new_job_id: Mapped[UUID | None] = mapped_column(nullable=True)

    changed_by: Mapped[UUID] = mapped_column(nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    related_cost_run_id: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_time_entry_audit_entry", "entry_id", "changed_at"),
        Index("ix_time_entry_audit_worker", "worker_id", "changed_at"),
        Index("ix_time_entry_audit_correlation", "correlation_id"),
    )


@event.listens_for(TimeEntryAudit, "before_update")
def _refuse_update(mapper: Any, connection: Any, target: TimeEntryAudit) -> None:
    raise ImmutableAuditRecordError(target.audit_id, "update")


@event.listens_for(TimeEntryAudit, "before_delete")
def _refuse_delete(mapper: Any, connection: Any, target: TimeEntryAudit) -> None:
    raise ImmutableAuditRecordError(target.audit_id, "delete")
