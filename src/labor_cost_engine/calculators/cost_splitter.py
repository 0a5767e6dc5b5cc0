"""Partition worked hours into pay bands and price them."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from labor_cost_engine.calculators.types import LaborCost, ResolvedRate
from labor_cost_engine.config import PayPolicy

ZERO = Decimal("0")
CENTS = Decimal("0.01")
DEFAULT_OVERTIME_THRESHOLD = Decimal("8")
DEFAULT_OVERTIME_MULTIPLIER = Decimal("1.5")
DEFAULT_DOUBLETIME_MULTIPLIER = Decimal("2")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round an amount to 2 decimal places, half away from zero."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_hours(hours: Decimal) -> Decimal:
    """Round hours to the 0.01 precision they are stored at."""
    return hours.quantize(CENTS, rounding=ROUND_HALF_UP)


def split_labor_cost(
    hours: Decimal,
    regular_rate: Decimal,
    overtime_rate: Decimal | None = None,
    overtime_threshold: Decimal = DEFAULT_OVERTIME_THRESHOLD,
    *,
    doubletime_threshold: Decimal | None = None,
    doubletime_rate: Decimal | None = None,
    overtime_multiplier: Decimal = DEFAULT_OVERTIME_MULTIPLIER,
    doubletime_multiplier: Decimal = DEFAULT_DOUBLETIME_MULTIPLIER,
) -> LaborCost:
    """Split hours into regular/overtime(/doubletime) bands and cost them.

    Hours up to ``overtime_threshold`` are regular. Hours beyond it are
    overtime, up to ``doubletime_threshold`` when one is given; anything past
    that is doubletime. Rates not supplied derive from ``regular_rate`` times
    the matching multiplier.

    Each band cost is rounded to cents (ROUND_HALF_UP) and ``total_cost`` is
    the sum of the rounded band costs, so the parts always add up to the
    whole. Hours are not rounded.

    Raises:
        ValueError: On negative hours, rates or thresholds, or a doubletime
            threshold below the overtime threshold.
    """
    if hours < ZERO:
        raise ValueError(f"hours must be non-negative, got {hours}")
    if regular_rate < ZERO:
        raise ValueError(f"regular_rate must be non-negative, got {regular_rate}")
    if overtime_threshold < ZERO:
        raise ValueError(f"overtime_threshold must be non-negative, got {overtime_threshold}")
    if doubletime_threshold is not None and doubletime_threshold < overtime_threshold:
        raise ValueError(
            f"doubletime_threshold {doubletime_threshold} is below "
            f"overtime_threshold {overtime_threshold}"
        )

    effective_overtime_rate = (
        overtime_rate if overtime_rate is not None else regular_rate * overtime_multiplier
    )
    effective_doubletime_rate = (
        doubletime_rate if doubletime_rate is not None else regular_rate * doubletime_multiplier
    )

    regular_hours = min(hours, overtime_threshold)
    if doubletime_threshold is None:
        overtime_hours = hours - regular_hours
        doubletime_hours = ZERO
    else:
        overtime_hours = min(hours, doubletime_threshold) - regular_hours
        doubletime_hours = max(ZERO, hours - doubletime_threshold)

    regular_cost = round_to_cents(regular_hours * regular_rate)
    overtime_cost = round_to_cents(overtime_hours * effective_overtime_rate)
    doubletime_cost = round_to_cents(doubletime_hours * effective_doubletime_rate)

    return LaborCost(
        regular_hours=regular_hours,
        overtime_hours=overtime_hours,
        regular_cost=regular_cost,
        overtime_cost=overtime_cost,
        total_cost=regular_cost + overtime_cost + doubletime_cost,
        doubletime_hours=doubletime_hours,
        doubletime_cost=doubletime_cost,
    )


class CostSplitter:
    """Applies a pay policy's daily thresholds to resolved rates."""

    def __init__(self, policy: PayPolicy | None = None):
        self.policy = policy or PayPolicy()

    def split(
        self,
        hours: Decimal,
        regular_rate: Decimal,
        overtime_rate: Decimal | None = None,
        overtime_threshold: Decimal | None = None,
    ) -> LaborCost:
        """Split hours using the policy unless a threshold is given explicitly."""
        return split_labor_cost(
            hours,
            regular_rate,
            overtime_rate,
            overtime_threshold
            if overtime_threshold is not None
            else self.policy.daily_overtime_threshold,
            doubletime_threshold=self.policy.daily_doubletime_threshold,
            overtime_multiplier=self.policy.overtime_multiplier,
            doubletime_multiplier=self.policy.doubletime_multiplier,
        )

    def price(self, hours: Decimal, rate: ResolvedRate) -> LaborCost:
        """Price hours against a resolved rate pair."""
        return self.split(hours, rate.regular_rate, rate.overtime_rate)
