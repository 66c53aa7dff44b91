"""
Tests for earned-value indicators.
"""

from decimal import Decimal

from portfolio_config.schema import PerformanceBands
from portfolio_engines.performance import (
    PerformanceBand,
    classify_index,
    compute_earned_value,
    earned_value_from_totals,
    elapsed_fraction,
)
from portfolio_kernel.domain.values import Axis
from tests.factories import days, make_budget_line


class TestEarnedValueFromTotals:

    def setup_method(self):
        self.bands = PerformanceBands()

    def test_cost_indices(self):
        metrics = earned_value_from_totals(
            bac=Decimal("100"), pv=Decimal("0"), ev=Decimal("50"), ac=Decimal("40"),
            bands=self.bands,
        )

        assert metrics.cpi == Decimal("1.2500")
        assert metrics.eac == Decimal("80.00")
        assert metrics.etc == Decimal("40.00")
        assert metrics.vac == Decimal("20.00")
        assert metrics.cpi_band == PerformanceBand.AHEAD

    def test_zero_planned_value_has_no_spi(self):
        metrics = earned_value_from_totals(
            bac=Decimal("100"), pv=Decimal("0"), ev=Decimal("50"), ac=Decimal("40"),
            bands=self.bands,
        )
        assert metrics.spi is None
        assert metrics.spi_band is None

    def test_zero_actual_cost_has_no_cpi_or_forecast(self):
        metrics = earned_value_from_totals(
            bac=Decimal("100"), pv=Decimal("50"), ev=Decimal("25"), ac=Decimal("0"),
            bands=self.bands,
        )
        assert metrics.cpi is None
        assert metrics.eac is None
        assert metrics.etc is None
        assert metrics.vac is None
        assert metrics.spi == Decimal("0.5000")
        assert metrics.spi_band == PerformanceBand.BEHIND

    def test_indices_are_rounded_to_four_places(self):
        metrics = earned_value_from_totals(
            bac=Decimal("300"), pv=Decimal("300"), ev=Decimal("100"), ac=Decimal("300"),
            bands=self.bands,
        )
        assert metrics.spi == Decimal("0.3333")


class TestClassifyIndex:

    def test_bands(self):
        bands = PerformanceBands()
        assert classify_index(Decimal("1.10"), bands) == PerformanceBand.AHEAD
        assert classify_index(Decimal("1.05"), bands) == PerformanceBand.ON_TRACK
        assert classify_index(Decimal("0.95"), bands) == PerformanceBand.ON_TRACK
        assert classify_index(Decimal("0.90"), bands) == PerformanceBand.BEHIND
        assert classify_index(None, bands) is None


class TestElapsedFraction:

    def test_no_window(self):
        assert elapsed_fraction(None, days(0)) == Decimal("0")

    def test_clamped_to_window(self):
        window = (days(0), days(10))
        assert elapsed_fraction(window, days(-5)) == Decimal("0")
        assert elapsed_fraction(window, days(5)) == Decimal("0.5")
        assert elapsed_fraction(window, days(20)) == Decimal("1")


class TestComputeEarnedValue:

    def setup_method(self):
        self.bands = PerformanceBands()

    def test_ledger_with_axis_progress(self):
        lines = [make_budget_line(
            axis=Axis.HR, planned_amount=Decimal("100"), actual_amount=Decimal("40"),
        )]
        progress = {Axis.HR: Decimal("50"), None: Decimal("50")}

        metrics = compute_earned_value(
            lines, progress, (days(0), days(10)), days(5), self.bands,
        )

        assert metrics.bac == Decimal("100.00")
        assert metrics.pv == Decimal("50.00")
        assert metrics.ev == Decimal("50.00")
        assert metrics.ac == Decimal("40.00")
        assert metrics.spi == Decimal("1.0000")
        assert metrics.spi_band == PerformanceBand.ON_TRACK
        assert metrics.eac == Decimal("80.00")

    def test_line_without_axis_uses_overall_progress(self):
        lines = [make_budget_line(axis=None, planned_amount=Decimal("200"))]
        metrics = compute_earned_value(
            lines, {None: Decimal("25")}, None, days(0), self.bands,
        )
        assert metrics.ev == Decimal("50.00")

    def test_axis_without_actions_uses_overall_progress(self):
        lines = [make_budget_line(axis=Axis.MARKETING, planned_amount=Decimal("200"))]
        metrics = compute_earned_value(
            lines, {Axis.HR: Decimal("80"), None: Decimal("10")}, None, days(0), self.bands,
        )
        assert metrics.ev == Decimal("20.00")

    def test_empty_ledger(self):
        metrics = compute_earned_value([], {}, None, days(0), self.bands)
        assert metrics.bac == Decimal("0.00")
        assert metrics.spi is None
        assert metrics.cpi is None
