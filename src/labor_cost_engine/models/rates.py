"""Time-bounded labor rate sources.

Three granularities, checked in this order by the resolver:
job override (worker on a job), worker rate, skill-tier rate.
Each row is effective over the half-open window [effective_date, expiry_date).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from labor_cost_engine.models.base import Base, TimestampMixin, new_id


class RateWindowMixin:
    """Columns and window logic shared by every rate source."""

    regular_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    overtime_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    def is_active_on(self, as_of_date: date) -> bool:
        """Check if the rate is in force on a given date (expiry is exclusive)."""
        if not self.active:
            return False
        if self.effective_date > as_of_date:
            return False
        if self.expiry_date is not None and self.expiry_date <= as_of_date:
            return False
        return True

    def overlaps(self, effective_date: date, expiry_date: date | None) -> bool:
        """Check if this row's window intersects another half-open window."""
        starts_before_other_ends = expiry_date is None or self.effective_date < expiry_date
        ends_after_other_starts = self.expiry_date is None or self.expiry_date > effective_date
        return starts_before_other_ends and ends_after_other_starts


class JobRateOverride(Base, RateWindowMixin, TimestampMixin):
    """Rate for one worker on one job; supersedes every other source."""

    __tablename__ = "job_rate_override"

    override_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    job_id: Mapped[UUID] = mapped_column(
        ForeignKey("job.job_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("regular_rate > 0", name="job_rate_override_positive"),
        CheckConstraint(
            "expiry_date IS NULL OR expiry_date > effective_date",
            name="job_rate_override_dates_check",
        ),
        Index("ix_job_rate_override_key", "job_id", "worker_id", "effective_date"),
    )


class WorkerRate(Base, RateWindowMixin, TimestampMixin):
    """Standing rate for a worker across all jobs."""

    __tablename__ = "worker_rate"

    worker_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("regular_rate > 0", name="worker_rate_positive"),
        CheckConstraint(
            "expiry_date IS NULL OR expiry_date > effective_date",
            name="worker_rate_dates_check",
        ),
        Index("ix_worker_rate_key", "worker_id", "effective_date"),
    )


class SkillRate(Base, RateWindowMixin, TimestampMixin):
    """Rate for every worker in a skill tier."""

    __tablename__ = "skill_rate"

    skill_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    skill_level: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("regular_rate > 0", name="skill_rate_positive"),
        CheckConstraint(
            "expiry_date IS NULL OR expiry_date > effective_date",
            name="skill_rate_dates_check",
        ),
        Index("ix_skill_rate_key", "skill_level", "effective_date"),
    )
