"""Time entry model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labor_cost_engine.models.base import Base, TimestampMixin, new_id, utcnow

if TYPE_CHECKING:
    from labor_cost_engine.models.worker import Job, Worker


class TimeEntry(Base, TimestampMixin):
    """Hours a worker logged against a job on one date, with its pricing."""

    __tablename__ = "time_entry"

    time_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="RESTRICT"),
        nullable=False,
    )
    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="RESTRICT"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    has_breaks: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Pricing (written by the cost splitter)
    regular_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    doubletime_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    applied_regular_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    applied_overtime_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    rate_source: Mapped[str | None] = mapped_column(String, nullable=True)
    overtime_threshold_applied: Mapped[Decimal | None] = mapped_column(
        Numeric(6, 2), nullable=True
    )
    total_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Workflow
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("hours >= 0", name="time_entry_hours_nonnegative"),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved', 'rejected', 'voided')",
            name="time_entry_status_check",
        ),
        Index("ix_time_entry_worker_date", "worker_id", "work_date"),
    )

    # Relationships
    worker: Mapped[Worker] = relationship(back_populates="time_entries")
    job: Mapped[Job] = relationship()
