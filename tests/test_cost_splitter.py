"""Tests for splitting hours into pay bands."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from labor_cost_engine.calculators.cost_splitter import (
    CostSplitter,
    round_to_cents,
    split_labor_cost,
)
from labor_cost_engine.calculators.types import RateSource, ResolvedRate
from labor_cost_engine.config import PayPolicy


class TestSplitLaborCost:
    """Test the regular/overtime split and its costing."""

    def test_hours_over_threshold_split_into_overtime(self):
        cost = split_labor_cost(Decimal("10"), Decimal("50.00"))

        assert cost.regular_hours == Decimal("8")
        assert cost.overtime_hours == Decimal("2")
        assert cost.regular_cost == Decimal("400.00")
        assert cost.overtime_cost == Decimal("150.00")
        assert cost.total_cost == Decimal("550.00")

    def test_hours_under_threshold_have_no_overtime(self):
        cost = split_labor_cost(Decimal("6.5"), Decimal("40.00"))

        assert cost.regular_hours == Decimal("6.5")
        assert cost.overtime_hours == Decimal("0")
        assert cost.overtime_cost == Decimal("0.00")
        assert cost.total_cost == Decimal("260.00")

    def test_explicit_overtime_rate_is_used(self):
        cost = split_labor_cost(Decimal("9"), Decimal("50.00"), overtime_rate=Decimal("80.00"))

        assert cost.overtime_cost == Decimal("80.00")
        assert cost.total_cost == Decimal("480.00")

    def test_zero_threshold_makes_every_hour_overtime(self):
        cost = split_labor_cost(
            Decimal("4"), Decimal("20.00"), overtime_threshold=Decimal("0")
        )

        assert cost.regular_hours == Decimal("0")
        assert cost.overtime_hours == Decimal("4")
        assert cost.total_cost == Decimal("120.00")

    def test_zero_hours_cost_nothing(self):
        cost = split_labor_cost(Decimal("0"), Decimal("75.00"))

        assert cost.total_hours == Decimal("0")
        assert cost.total_cost == Decimal("0.00")

    def test_costs_round_half_up_to_cents(self):
        assert round_to_cents(Decimal("0.005")) == Decimal("0.01")
        assert round_to_cents(Decimal("2.675")) == Decimal("2.68")

        cost = split_labor_cost(Decimal("7.33"), Decimal("33.33"))
        assert cost.regular_cost == Decimal("244.31")

    def test_total_is_sum_of_rounded_bands(self):
        cost = split_labor_cost(Decimal("8.333"), Decimal("33.33"))

        assert cost.total_cost == cost.regular_cost + cost.overtime_cost
        assert cost.total_cost.as_tuple().exponent == -2

    @pytest.mark.parametrize(
        "hours,threshold",
        [
            ("0", "8"),
            ("7.99", "8"),
            ("8", "8"),
            ("8.01", "8"),
            ("23.75", "8"),
            ("5", "0"),
            ("12", "10"),
        ],
    )
    def test_bands_always_add_up_to_hours(self, hours, threshold):
        cost = split_labor_cost(
            Decimal(hours), Decimal("61.25"), overtime_threshold=Decimal(threshold)
        )

        assert cost.regular_hours + cost.overtime_hours == Decimal(hours)
        assert cost.regular_hours <= Decimal(threshold)

    def test_doubletime_band(self):
        cost = split_labor_cost(
            Decimal("14"),
            Decimal("40.00"),
            doubletime_threshold=Decimal("12"),
        )

        assert cost.regular_hours == Decimal("8")
        assert cost.overtime_hours == Decimal("4")
        assert cost.doubletime_hours == Decimal("2")
        assert cost.regular_cost == Decimal("320.00")
        assert cost.overtime_cost == Decimal("240.00")
        assert cost.doubletime_cost == Decimal("160.00")
        assert cost.total_cost == Decimal("720.00")
        assert cost.total_hours == Decimal("14")

    def test_rejects_negative_hours(self):
        with pytest.raises(ValueError, match="hours"):
            split_labor_cost(Decimal("-1"), Decimal("50.00"))

    def test_rejects_negative_rate(self):
        with pytest.raises(ValueError, match="regular_rate"):
            split_labor_cost(Decimal("1"), Decimal("-50.00"))

    def test_rejects_doubletime_below_overtime_threshold(self):
        with pytest.raises(ValueError, match="doubletime_threshold"):
            split_labor_cost(
                Decimal("10"), Decimal("50.00"), doubletime_threshold=Decimal("6")
            )


class TestCostSplitter:
    """Test the policy-driven splitter."""

    def test_uses_policy_threshold(self):
        splitter = CostSplitter(PayPolicy(daily_overtime_threshold=Decimal("10")))

        cost = splitter.split(Decimal("11"), Decimal("30.00"))

        assert cost.regular_hours == Decimal("10")
        assert cost.overtime_hours == Decimal("1")

    def test_explicit_threshold_beats_policy(self):
        splitter = CostSplitter(PayPolicy(daily_overtime_threshold=Decimal("10")))

        cost = splitter.split(Decimal("11"), Decimal("30.00"), overtime_threshold=Decimal("8"))

        assert cost.overtime_hours == Decimal("3")

    def test_price_uses_resolved_rate_pair(self):
        rate = ResolvedRate(
            regular_rate=Decimal("90.00"),
            overtime_rate=Decimal("135.00"),
            source=RateSource.JOB,
        )

        cost = CostSplitter().price(Decimal("10"), rate)

        assert cost.regular_cost == Decimal("720.00")
        assert cost.overtime_cost == Decimal("270.00")
        assert cost.total_cost == Decimal("990.00")


class TestSplitProperties:
    """Invariants of the split over generated hours and rates."""

    @given(
        hours=st.decimals(min_value=Decimal("0"), max_value=Decimal("24"), places=2),
        rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2),
        threshold=st.decimals(min_value=Decimal("0"), max_value=Decimal("12"), places=1),
    )
    @settings(max_examples=100)
    def test_bands_partition_hours(self, hours: Decimal, rate: Decimal, threshold: Decimal):
        cost = split_labor_cost(hours, rate, overtime_threshold=threshold)

        assert cost.total_hours == hours
        assert cost.regular_hours == min(hours, threshold)
        assert cost.overtime_hours == max(Decimal("0"), hours - threshold)

    @given(
        hours=st.decimals(min_value=Decimal("0"), max_value=Decimal("24"), places=2),
        rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=3),
    )
    @settings(max_examples=100)
    def test_total_is_sum_of_rounded_bands(self, hours: Decimal, rate: Decimal):
        cost = split_labor_cost(hours, rate, doubletime_threshold=Decimal("12"))

        assert cost.total_cost == cost.regular_cost + cost.overtime_cost + cost.doubletime_cost
        for amount in (cost.regular_cost, cost.overtime_cost, cost.doubletime_cost):
            assert amount == round_to_cents(amount)
