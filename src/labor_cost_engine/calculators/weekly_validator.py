"""Week-to-date hours aggregation and work-hygiene validation."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from labor_cost_engine.calculators.types import (
    Severity,
    ValidationResult,
    ValidationWarning,
    WarningType,
)
from labor_cost_engine.config import PayPolicy
from labor_cost_engine.models import TimeEntry

ZERO = Decimal("0")

# Entries in these statuses no longer count toward worked hours.
EXCLUDED_STATUSES = ("voided",)


def week_bounds(any_day: date) -> tuple[date, date]:
    """Return the (Sunday, Saturday) calendar week containing a date.

    Payroll export groups by the same boundary.
    """
    days_since_sunday = (any_day.weekday() + 1) % 7
    start = any_day - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=6)


def _fmt(hours: Decimal) -> str:
    return f"{hours:.1f}"


class WeeklyHoursValidator:
    """Classifies an hours entry against daily and weekly thresholds.

    Findings are advisory. Only EXCESSIVE_HOURS has error severity and only
    it makes a result invalid; callers decide whether to block on it.
    """

    def __init__(self, session: AsyncSession, policy: PayPolicy | None = None):
        self.session = session
        self.policy = policy or PayPolicy()

    async def week_to_date_hours(
        self,
        worker_id: UUID,
        entry_date: date,
        exclude_entry_id: UUID | None = None,
    ) -> Decimal:
        """Sum the worker's hours in the entry's week, excluding that date.

        ``exclude_entry_id`` leaves out an entry being edited, wherever it
        currently sits in the week.
        """
        week_start, week_end = week_bounds(entry_date)
        conditions = [
            TimeEntry.worker_id == worker_id,
            TimeEntry.work_date >= week_start,
            TimeEntry.work_date <= week_end,
            TimeEntry.work_date != entry_date,
            TimeEntry.status.not_in(EXCLUDED_STATUSES),
        ]
        if exclude_entry_id is not None:
            conditions.append(TimeEntry.time_entry_id != exclude_entry_id)
        result = await self.session.execute(
            select(func.coalesce(func.sum(TimeEntry.hours), 0)).where(*conditions)
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))

    async def evaluate(
        self,
        worker_id: UUID,
        entry_date: date,
        hours: Decimal,
        has_recorded_breaks: bool = False,
        exclude_entry_id: UUID | None = None,
    ) -> ValidationResult:
        """Evaluate a candidate day's hours for a worker."""
        existing_hours = await self.week_to_date_hours(worker_id, entry_date, exclude_entry_id)
        return self.classify(existing_hours, entry_date, hours, has_recorded_breaks)

    def classify(
        self,
        existing_hours: Decimal,
        entry_date: date,
        hours: Decimal,
        has_recorded_breaks: bool,
    ) -> ValidationResult:
        """Pure classification given the hours already recorded this week."""
        policy = self.policy
        warnings: list[ValidationWarning] = []

        weekly_hours = existing_hours + hours
        overtime_hours = max(ZERO, weekly_hours - policy.weekly_overtime_threshold)
        existing_overtime = max(ZERO, existing_hours - policy.weekly_overtime_threshold)

        if hours > policy.long_day_hours:
            warnings.append(
                ValidationWarning(
                    type=WarningType.LONG_DAY,
                    severity=Severity.WARNING,
                    message=(
                        f"Recording {_fmt(hours)} hours for {entry_date.isoformat()}. "
                        "Please confirm this is correct."
                    ),
                    details={"hours": str(hours), "date": entry_date.isoformat()},
                )
            )

        if hours > policy.max_daily_hours:
            warnings.append(
                ValidationWarning(
                    type=WarningType.EXCESSIVE_HOURS,
                    severity=Severity.ERROR,
                    message=(
                        f"{_fmt(hours)} hours in a single day exceeds the "
                        f"{_fmt(policy.max_daily_hours)} hour daily limit."
                    ),
                    details={
                        "hours": str(hours),
                        "date": entry_date.isoformat(),
                        "limit": str(policy.max_daily_hours),
                    },
                )
            )

        if weekly_hours > policy.weekly_overtime_threshold:
            warnings.append(
                ValidationWarning(
                    type=WarningType.OVERTIME,
                    severity=Severity.INFO,
                    message=(
                        f"This entry brings the weekly total to {_fmt(weekly_hours)} hours "
                        f"({_fmt(overtime_hours)} hours overtime)."
                    ),
                    details={
                        "weekly_hours": str(weekly_hours),
                        "overtime_hours": str(overtime_hours),
                        "new_overtime_hours": str(overtime_hours - existing_overtime),
                    },
                )
            )

        if hours > policy.break_required_after_hours and not has_recorded_breaks:
            warnings.append(
                ValidationWarning(
                    type=WarningType.MISSING_BREAK,
                    severity=Severity.WARNING,
                    message=(
                        f"{_fmt(hours)} hours worked without a recorded break. "
                        "Was a meal break taken?"
                    ),
                    details={"hours": str(hours)},
                )
            )

        return ValidationResult(
            is_valid=not any(w.severity == Severity.ERROR for w in warnings),
            warnings=warnings,
            weekly_hours=weekly_hours,
            overtime_hours=overtime_hours,
        )

    async def evaluate_week(self, worker_id: UUID, week_date: date) -> ValidationResult:
        """Review every recorded entry in a worker's week before submission."""
        policy = self.policy
        week_start, week_end = week_bounds(week_date)
        result = await self.session.execute(
            select(TimeEntry)
            .where(
                TimeEntry.worker_id == worker_id,
                TimeEntry.work_date >= week_start,
                TimeEntry.work_date <= week_end,
                TimeEntry.status.not_in(EXCLUDED_STATUSES),
            )
            .order_by(TimeEntry.work_date)
        )
        entries = list(result.scalars().all())

        warnings: list[ValidationWarning] = []
        weekly_hours = ZERO
        daily_hours: dict[date, Decimal] = defaultdict(lambda: ZERO)

        for entry in entries:
            weekly_hours += entry.hours
            daily_hours[entry.work_date] += entry.hours
            if entry.hours > policy.break_required_after_hours and not entry.has_breaks:
                warnings.append(
                    ValidationWarning(
                        type=WarningType.MISSING_BREAK,
                        severity=Severity.WARNING,
                        message=(
                            f"Missing break for {_fmt(entry.hours)} hour shift on "
                            f"{entry.work_date.isoformat()}."
                        ),
                        details={
                            "date": entry.work_date.isoformat(),
                            "hours": str(entry.hours),
                            "entry_id": str(entry.time_entry_id),
                        },
                    )
                )

        for work_date, hours in sorted(daily_hours.items()):
            if hours > policy.max_daily_hours:
                warnings.append(
                    ValidationWarning(
                        type=WarningType.EXCESSIVE_HOURS,
                        severity=Severity.ERROR,
                        message=(
                            f"{_fmt(hours)} hours recorded on {work_date.isoformat()} "
                            f"exceeds the {_fmt(policy.max_daily_hours)} hour daily limit."
                        ),
                        details={"date": work_date.isoformat(), "hours": str(hours)},
                    )
                )
            elif hours > policy.long_day_hours:
                warnings.append(
                    ValidationWarning(
                        type=WarningType.LONG_DAY,
                        severity=Severity.WARNING,
                        message=(
                            f"{_fmt(hours)} hours recorded on {work_date.isoformat()}. "
                            "Please confirm this is accurate."
                        ),
                        details={"date": work_date.isoformat(), "hours": str(hours)},
                    )
                )

        overtime_hours = max(ZERO, weekly_hours - policy.weekly_overtime_threshold)
        if overtime_hours > ZERO:
            warnings.append(
                ValidationWarning(
                    type=WarningType.OVERTIME,
                    severity=Severity.INFO,
                    message=(
                        f"Week total: {_fmt(weekly_hours)} hours includes "
                        f"{_fmt(overtime_hours)} hours of overtime."
                    ),
                    details={
                        "weekly_hours": str(weekly_hours),
                        "overtime_hours": str(overtime_hours),
                        "week_start": week_start.isoformat(),
                    },
                )
            )

        return ValidationResult(
            is_valid=not any(w.severity == Severity.ERROR for w in warnings),
            warnings=warnings,
            weekly_hours=weekly_hours,
            overtime_hours=overtime_hours,
        )
