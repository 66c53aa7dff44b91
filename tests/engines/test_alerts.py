"""
Tests for alert condition detection.
"""

from decimal import Decimal

from portfolio_config.schema import AlertThresholds, RiskBands, SyncSettings
from portfolio_engines.alerts import (
    ACTION_BLOCKED,
    ACTION_DEADLINE,
    BUDGET_OVERRUN,
    MILESTONE_APPROACHING,
    MILESTONE_OVERDUE,
    PORTFOLIO_ENTITY_ID,
    RISK_CRITICAL,
    SYNC_DESYNC,
    detect_action_conditions,
    detect_alert_conditions,
    detect_budget_conditions,
    detect_milestone_conditions,
    detect_risk_conditions,
    detect_sync_conditions,
)
from portfolio_engines.synchronization import compute_synchronization
from portfolio_kernel.domain.values import (
    ActionStatus,
    AlertSeverity,
    Axis,
    EntityType,
    MilestoneStatus,
    RiskStatus,
)
from tests.factories import TODAY, days, make_action, make_budget_line, make_milestone, make_risk


class TestActionConditions:

    def setup_method(self):
        self.thresholds = AlertThresholds()

    def severity_for(self, end_offset):
        found = detect_action_conditions(
            [make_action(planned_end=days(end_offset))], TODAY, self.thresholds,
        )
        return found[0].severity if found else None

    def test_blocked_action(self):
        action = make_action(status=ActionStatus.BLOCKED, planned_end=days(60))
        found = detect_action_conditions([action], TODAY, self.thresholds)
        assert [c.condition_kind for c in found] == [ACTION_BLOCKED]
        assert found[0].severity == AlertSeverity.CRITICAL

    def test_deadline_severities(self):
        assert self.severity_for(-1) == AlertSeverity.CRITICAL
        assert self.severity_for(1) == AlertSeverity.HIGH
        assert self.severity_for(3) == AlertSeverity.MEDIUM
        assert self.severity_for(7) == AlertSeverity.LOW
        assert self.severity_for(8) is None

    def test_deadline_payload(self):
        action = make_action(title="Hire staff", planned_end=days(2))
        condition = detect_action_conditions([action], TODAY, self.thresholds)[0]
        assert condition.condition_kind == ACTION_DEADLINE
        assert condition.payload == {
            "title": "Hire staff", "planned_end": days(2), "days_left": 2,
        }

    def test_closed_actions_raise_nothing(self):
        done = make_action(planned_end=days(-3), progress=100, status=ActionStatus.DONE)
        cancelled = make_action(planned_end=days(-3), status=ActionStatus.CANCELLED)
        assert detect_action_conditions([done, cancelled], TODAY, self.thresholds) == []


class TestMilestoneConditions:

    def setup_method(self):
        self.thresholds = AlertThresholds()

    def detect(self, **overrides):
        return detect_milestone_conditions([make_milestone(**overrides)], TODAY, self.thresholds)

    def test_overdue(self):
        found = self.detect(planned_date=days(-1))
        assert found[0].condition_kind == MILESTONE_OVERDUE
        assert found[0].severity == AlertSeverity.CRITICAL

    def test_approaching_severities(self):
        assert self.detect(planned_date=days(5))[0].severity == AlertSeverity.CRITICAL
        assert self.detect(planned_date=days(10))[0].severity == AlertSeverity.HIGH
        assert self.detect(planned_date=days(20))[0].severity == AlertSeverity.MEDIUM
        assert self.detect(planned_date=days(20))[0].condition_kind == MILESTONE_APPROACHING

    def test_outside_windows(self):
        assert self.detect(planned_date=days(0)) == []
        assert self.detect(planned_date=days(45)) == []

    def test_uses_projected_date(self):
        found = self.detect(planned_date=days(45), projected_date=days(50), slip_days=5)
        assert found == []
        found = self.detect(planned_date=days(5), projected_date=days(-2), slip_days=0)
        assert found[0].condition_kind == MILESTONE_OVERDUE

    def test_terminal_milestones(self):
        assert self.detect(planned_date=days(-1), status=MilestoneStatus.ATTEINT) == []


class TestOtherConditions:

    def test_critical_risk(self):
        risks = [
            make_risk(probability=3, impact=4),
            make_risk(probability=2, impact=2),
            make_risk(probability=5, impact=5, status=RiskStatus.CLOSED),
        ]
        found = detect_risk_conditions(risks, RiskBands())
        assert len(found) == 1
        assert found[0].condition_kind == RISK_CRITICAL
        assert found[0].payload["score"] == 12

    def test_budget_overrun(self):
        thresholds = AlertThresholds()
        lines = [
            make_budget_line(planned_amount=Decimal("100"), actual_amount=Decimal("110")),
            make_budget_line(planned_amount=Decimal("100"), actual_amount=Decimal("120")),
            make_budget_line(planned_amount=Decimal("100"), actual_amount=Decimal("104")),
            make_budget_line(planned_amount=Decimal("0"), actual_amount=Decimal("50")),
        ]
        found = detect_budget_conditions(lines, thresholds)
        assert [c.severity for c in found] == [AlertSeverity.HIGH, AlertSeverity.CRITICAL]
        assert all(c.condition_kind == BUDGET_OVERRUN for c in found)
        assert found[0].payload["overrun_pct"] == Decimal("10.0")

    def test_desync(self):
        sync = compute_synchronization(
            [make_action(axis=Axis.TECHNICAL, progress=80), make_action(axis=Axis.HR, progress=20)],
            SyncSettings(),
        )
        found = detect_sync_conditions(sync)
        assert found[0].condition_kind == SYNC_DESYNC
        assert found[0].entity_type == EntityType.SYNC_SNAPSHOT
        assert found[0].entity_id == PORTFOLIO_ENTITY_ID
        assert found[0].severity == AlertSeverity.CRITICAL

    def test_in_phase_or_unknown_sync(self):
        sync = compute_synchronization([], SyncSettings())
        assert detect_sync_conditions(sync) == []
        assert detect_sync_conditions(None) == []


class TestDetectAll:

    def test_conditions_are_unique_per_key(self):
        blocked = make_action(status=ActionStatus.BLOCKED, planned_end=days(60))
        found = detect_alert_conditions(
            actions=[blocked, blocked],
            milestones=[],
            risks=[],
            budget_lines=[],
            sync=None,
            as_of=TODAY,
            thresholds=AlertThresholds(),
            risk_bands=RiskBands(),
        )
        assert len(found) == 1
        assert found[0].key == (EntityType.ACTION, blocked.id, ACTION_BLOCKED)
