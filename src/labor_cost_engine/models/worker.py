"""Worker and job reference models."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labor_cost_engine.models.base import Base, TimestampMixin, new_id

if TYPE_CHECKING:
    from labor_cost_engine.models.time_entry import TimeEntry


# Skill tiers recognised by the default rate table and SkillRate rows.
SKILL_LEVELS = (
    "APPRENTICE",
    "HELPER",
    "TECH_L1",
    "TECH_L2",
    "JOURNEYMAN",
    "FOREMAN",
    "MASTER",
    "OWNER_ADMIN",
)


class Worker(Base, TimestampMixin):
    """A field worker who logs time."""

    __tablename__ = "worker"

    worker_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="EMPLOYEE")
    skill_level: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    time_entries: Mapped[list[TimeEntry]] = relationship(back_populates="worker")


class Job(Base, TimestampMixin):
    """A customer job that labor is charged against."""

    __tablename__ = "job"

    job_id: Mapped[UUID] = mapped_column(primary_key=True, default=new_id)
    job_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "status IN ('estimate', 'active', 'completed', 'cancelled')",
            name="job_status_check",
        ),
    )
