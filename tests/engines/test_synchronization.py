"""
Tests for track synchronization metrics and trend.

Covers:
- Gap between the technical and mobilization averages
- Gap classification against configurable bands
- Per-axis detail, critical and leading axes, risk flags
- Trend against a stored snapshot
"""

from decimal import Decimal
from uuid import uuid4

from portfolio_config.schema import SyncSettings
from portfolio_engines.synchronization import (
    SyncStatus,
    SyncTrend,
    classify_gap,
    compute_sync_trend,
    compute_synchronization,
)
from portfolio_kernel.domain.values import ActionStatus, Axis, SyncSnapshot
from tests.factories import days, make_action


def technical(progress, **overrides):
    return make_action(axis=Axis.TECHNICAL, progress=progress, **overrides)


def mobilization(progress, axis=Axis.HR, **overrides):
    return make_action(axis=axis, progress=progress, **overrides)


def snapshot(taken_on, gap):
    return SyncSnapshot(
        id=uuid4(),
        taken_on=taken_on,
        technical_progress=Decimal("0"),
        mobilization_progress=Decimal("0"),
        gap=Decimal(gap),
    )


class TestSynchronization:

    def test_gap_beyond_critical_band(self):
        settings = SyncSettings(in_phase_max=Decimal("10"), critical_above=Decimal("15"))
        metrics = compute_synchronization([technical(70), mobilization(50)], settings)

        assert metrics.technical_progress == Decimal("70.0")
        assert metrics.mobilization_progress == Decimal("50.0")
        assert metrics.gap == Decimal("20.0")
        assert metrics.status == SyncStatus.CRITIQUE

    def test_default_bands_mobilization_behind(self):
        metrics = compute_synchronization([technical(70), mobilization(50)], SyncSettings())
        assert metrics.status == SyncStatus.EN_RETARD
        assert metrics.opening_delay_risk
        assert not metrics.waste_risk

    def test_mobilization_ahead(self):
        metrics = compute_synchronization([technical(40), mobilization(55)], SyncSettings())
        assert metrics.gap == Decimal("-15.0")
        assert metrics.status == SyncStatus.EN_AVANCE
        assert not metrics.waste_risk

    def test_far_ahead_flags_waste(self):
        metrics = compute_synchronization([technical(20), mobilization(60)], SyncSettings())
        assert metrics.status == SyncStatus.CRITIQUE
        assert metrics.waste_risk

    def test_in_phase(self):
        metrics = compute_synchronization([technical(50), mobilization(45)], SyncSettings())
        assert metrics.status == SyncStatus.EN_PHASE

    def test_cancelled_actions_are_excluded(self):
        actions = [
            technical(70),
            technical(0, status=ActionStatus.CANCELLED),
            mobilization(50),
        ]
        metrics = compute_synchronization(actions, SyncSettings())
        assert metrics.technical_progress == Decimal("70.0")

    def test_axis_details(self):
        actions = [
            technical(60),
            mobilization(50, axis=Axis.HR),
            mobilization(100, axis=Axis.HR, status=ActionStatus.DONE),
            mobilization(30, axis=Axis.COMMERCIAL),
        ]
        metrics = compute_synchronization(actions, SyncSettings())

        details = {d.axis: d for d in metrics.axis_details}
        assert details[Axis.HR].average_progress == Decimal("75.0")
        assert details[Axis.HR].action_count == 2
        assert details[Axis.HR].done_count == 1
        assert details[Axis.HR].gap_vs_technical == Decimal("15.0")
        assert details[Axis.MARKETING].action_count == 0
        assert metrics.critical_axis == Axis.COMMERCIAL
        assert metrics.leading_axis == Axis.HR

    def test_empty_portfolio(self):
        metrics = compute_synchronization([], SyncSettings())
        assert metrics.gap == Decimal("0.0")
        assert metrics.status == SyncStatus.EN_PHASE
        assert metrics.critical_axis is None

    def test_classify_gap_boundaries(self):
        settings = SyncSettings()
        assert classify_gap(Decimal("10"), settings) == SyncStatus.EN_PHASE
        assert classify_gap(Decimal("20"), settings) == SyncStatus.EN_RETARD
        assert classify_gap(Decimal("-20"), settings) == SyncStatus.EN_AVANCE
        assert classify_gap(Decimal("20.1"), settings) == SyncStatus.CRITIQUE


class TestSyncTrend:

    def trend(self, current, snapshots):
        return compute_sync_trend(Decimal(current), snapshots, days(0), 7, Decimal("2"))

    def test_improving(self):
        report = self.trend("10", [snapshot(days(-10), "20")])
        assert report.trend == SyncTrend.IMPROVING
        assert report.change == Decimal("-10.0")
        assert report.reference_date == days(-10)

    def test_stable_within_noise(self):
        assert self.trend("21", [snapshot(days(-10), "-20")]).trend == SyncTrend.STABLE

    def test_degrading(self):
        assert self.trend("25", [snapshot(days(-10), "20")]).trend == SyncTrend.DEGRADING

    def test_recent_snapshots_are_not_a_reference(self):
        assert self.trend("25", [snapshot(days(-3), "5")]) is None

    def test_nearest_eligible_snapshot_is_used(self):
        report = self.trend("20", [snapshot(days(-14), "5"), snapshot(days(-8), "20")])
        assert report.reference_date == days(-8)
        assert report.trend == SyncTrend.STABLE
