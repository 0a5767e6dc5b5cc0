"""Labor cost calculators."""

from labor_cost_engine.calculators.cost_splitter import (
    CostSplitter,
    round_hours,
    round_to_cents,
    split_labor_cost,
)
from labor_cost_engine.calculators.rate_resolver import RateResolver, ResolutionError
from labor_cost_engine.calculators.types import (
    LaborCost,
    RateSource,
    ResolvedRate,
    Severity,
    TimeEntrySnapshot,
    ValidationResult,
    ValidationWarning,
    WarningType,
)
from labor_cost_engine.calculators.weekly_validator import WeeklyHoursValidator, week_bounds

__all__ = [
    "CostSplitter",
    "split_labor_cost",
    "round_to_cents",
    "round_hours",
    "RateResolver",
    "ResolutionError",
    "LaborCost",
    "RateSource",
    "ResolvedRate",
    "Severity",
    "TimeEntrySnapshot",
    "ValidationResult",
    "ValidationWarning",
    "WarningType",
    "WeeklyHoursValidator",
    "week_bounds",
]
