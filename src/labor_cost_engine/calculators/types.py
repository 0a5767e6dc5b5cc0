"""Type definitions for the labor cost pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class RateSource(str, Enum):
    """Which rate source tier supplied a resolved rate."""

    JOB = "job"
    WORKER = "worker"
    SKILL = "skill"
    DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedRate:
    """A regular/overtime rate pair and the tier it came from."""

    regular_rate: Decimal
    overtime_rate: Decimal
    source: RateSource
    source_record_id: UUID | None = None
    skill_level: str | None = None
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "regular_rate": str(self.regular_rate),
            "overtime_rate": str(self.overtime_rate),
            "source": self.source.value,
            "source_record_id": str(self.source_record_id) if self.source_record_id else None,
            "skill_level": self.skill_level,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class LaborCost:
    """Hours partitioned into pay bands, and what each band costs."""

    regular_hours: Decimal
    overtime_hours: Decimal
    regular_cost: Decimal
    overtime_cost: Decimal
    total_cost: Decimal
    doubletime_hours: Decimal = Decimal("0")
    doubletime_cost: Decimal = Decimal("0")

    @property
    def total_hours(self) -> Decimal:
        return self.regular_hours + self.overtime_hours + self.doubletime_hours


class WarningType(str, Enum):
    """Classifications produced by hours validation."""

    OVERTIME = "OVERTIME"
    LONG_DAY = "LONG_DAY"
    MISSING_BREAK = "MISSING_BREAK"
    EXCESSIVE_HOURS = "EXCESSIVE_HOURS"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationWarning:
    """A single advisory (or blocking, if severity is error) finding."""

    type: WarningType
    severity: Severity
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class ValidationResult:
    """Outcome of classifying hours against daily and weekly thresholds."""

    is_valid: bool
    warnings: list[ValidationWarning]
    weekly_hours: Decimal
    overtime_hours: Decimal

    @property
    def errors(self) -> list[ValidationWarning]:
        return [w for w in self.warnings if w.severity == Severity.ERROR]

    def has_warning(self, warning_type: WarningType) -> bool:
        return any(w.type == warning_type for w in self.warnings)


@dataclass(frozen=True)
class TimeEntrySnapshot:
    """Typed state of a time entry's trackable fields at one moment."""

    hours: Decimal | None = None
    regular_hours: Decimal | None = None
    overtime_hours: Decimal | None = None
    doubletime_hours: Decimal | None = None
    total_pay: Decimal | None = None
    job_id: UUID | None = None
    work_date: date | None = None
    description: str | None = None
    status: str | None = None

    # Field order here is the order diffs are reported in.
    TRACKED_FIELDS = (
        "hours",
        "regular_hours",
        "overtime_hours",
        "doubletime_hours",
        "total_pay",
        "job_id",
        "work_date",
        "description",
        "status",
    )
