"""ORM models for the labor cost engine."""

from labor_cost_engine.models.audit import ImmutableAuditRecordError, TimeEntryAudit
from labor_cost_engine.models.base import Base, TimestampMixin
from labor_cost_engine.models.rates import JobRateOverride, SkillRate, WorkerRate
from labor_cost_engine.models.time_entry import TimeEntry
from labor_cost_engine.models.worker import SKILL_LEVELS, Job, Worker

__all__ = [
    "Base",
    "TimestampMixin",
    "Worker",
    "Job",
    "SKILL_LEVELS",
    "JobRateOverride",
    "WorkerRate",
    "SkillRate",
    "TimeEntry",
    "TimeEntryAudit",
    "ImmutableAuditRecordError",
]
