"""
Tests for portfolio_batch.recalculation -- RecalculationPass.

Covers budget deduplication, the alert lifecycle, per-entity failure
isolation and idempotence of a second pass on unchanged data.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from portfolio_batch.recalculation import RecalculationPass
from portfolio_engines.alerts import ACTION_BLOCKED, RISK_CRITICAL, SYNC_DESYNC
from portfolio_kernel.domain.values import (
    ActionHealth,
    ActionStatus,
    Axis,
    EntityType,
    MilestoneStatus,
)
from portfolio_kernel.models.alert import AlertModel
from portfolio_kernel.models.audit_event import AuditAction
from portfolio_kernel.services.alert_service import AlertService
from portfolio_services.performance_service import PerformanceService
from portfolio_services.recalculation_service import RecalculationService, SkippedEntity
from portfolio_services.risk_service import RiskService
from tests.factories import (
    TODAY,
    ExtraRiskStore,
    days,
    make_action,
    make_budget_line,
    make_milestone,
    make_risk,
)


def build_pass(session, store, auditor, config, actor_id, clock, risk_store=None):
    return RecalculationPass(
        store=store,
        auditor=auditor,
        alert_sink=AlertService(session, actor_id, clock),
        recalculation=RecalculationService(store, auditor, config, actor_id, clock),
        risks=RiskService(risk_store or store, auditor, config.risk, actor_id, clock),
        performance=PerformanceService(store, config, clock),
        config=config,
        actor_id=actor_id,
        clock=clock,
    )


@pytest.fixture
def recalculation_pass(session, store, auditor, config, actor_id, clock):
    return build_pass(session, store, auditor, config, actor_id, clock)


@pytest.fixture
def alerts(session, actor_id, clock):
    return AlertService(session, actor_id, clock)


def seed_portfolio(store):
    """A small portfolio exercising every step of the pass."""
    late = store.add(make_action(
        title="Structural works", planned_start=days(-40), planned_end=days(-2), progress=60,
    ))
    store.add(make_action(
        title="Recruitment", axis=Axis.HR, status=ActionStatus.PLANNED,
        planned_start=days(5), planned_end=days(60),
    ))
    store.add(make_action(
        title="Permit", status=ActionStatus.BLOCKED, planned_end=days(45), progress=10,
    ))
    store.add(make_milestone(title="Opening", planned_date=days(10), prerequisites=[late.id]))
    store.add(make_risk(title="Supplier default", probability=4, impact=4))
    store.add(make_budget_line(
        planned_amount=Decimal("1000.00"), actual_amount=Decimal("1200.00"),
    ))


class TestBudgetDeduplication:

    def test_duplicates_are_removed_and_audited(
        self, recalculation_pass, store, auditor,
    ):
        lines = [
            store.add(make_budget_line(label="Fit-out works")),
            store.add(make_budget_line(label="  FIT-OUT works ")),
            store.add(make_budget_line(label="Fit-out works", actual_amount=Decimal("10.00"))),
        ]

        result = recalculation_pass.run()

        assert result.duplicates_removed == 1
        remaining = store.query(EntityType.BUDGET_LINE)
        assert len(remaining) == 2

        remaining_ids = {line.id for line in remaining}
        removed = [
            (line.id, entry)
            for line in lines
            for entry in auditor.trace(EntityType.BUDGET_LINE, line.id).entries
            if entry.action == AuditAction.BUDGET_DUPLICATE_REMOVED
        ]
        assert len(removed) == 1
        [(removed_id, entry)] = removed
        assert removed_id not in remaining_ids
        assert entry.payload["old_value"]["duplicate_of"] in {str(i) for i in remaining_ids}


class TestDerivedState:

    def test_pass_derives_every_family(self, recalculation_pass, store):
        seed_portfolio(store)

        result = recalculation_pass.run(TODAY)

        assert result.as_of == TODAY
        assert result.actions.processed == 3
        assert result.milestones.processed == 1
        assert result.risks.updated == 1
        assert result.snapshot_recorded
        assert result.skipped_count == 0

        [milestone] = store.query(EntityType.MILESTONE)
        assert milestone.status == MilestoneStatus.EN_DANGER
        [risk] = store.query(EntityType.RISK)
        assert risk.score == 16
        late = next(a for a in store.query(EntityType.ACTION) if a.title == "Structural works")
        assert late.health == ActionHealth.RED


class TestAlerts:

    def test_conditions_raise_alerts(self, recalculation_pass, store, alerts):
        seed_portfolio(store)

        result = recalculation_pass.run(TODAY)

        kinds = {a.condition_kind for a in alerts.open_alerts()}
        assert {ACTION_BLOCKED, RISK_CRITICAL} <= kinds
        assert result.alerts_raised == len(alerts.open_alerts())

    def test_cleared_condition_is_resolved(self, recalculation_pass, store, alerts):
        blocked = store.add(make_action(status=ActionStatus.BLOCKED, planned_end=days(45)))
        recalculation_pass.run(TODAY)
        assert [a.condition_kind for a in alerts.open_alerts()] == [ACTION_BLOCKED]

        store.update(EntityType.ACTION, blocked.id, {"status": ActionStatus.IN_PROGRESS})
        result = recalculation_pass.run(TODAY)

        assert result.alerts_resolved == 1
        assert alerts.open_alerts() == []

    def test_manual_alerts_are_left_alone(self, recalculation_pass, store, alerts):
        action = store.add(make_action(planned_end=days(45)))
        alerts.upsert(EntityType.ACTION, action.id, "site_visit_requested", {})

        result = recalculation_pass.run(TODAY)

        assert result.alerts_resolved == 0
        assert [a.condition_kind for a in alerts.open_alerts()] == ["site_visit_requested"]

    def test_desynchronization_is_a_portfolio_alert(self, recalculation_pass, store, alerts):
        store.add(make_action(axis=Axis.TECHNICAL, progress=80, planned_end=days(45)))
        store.add(make_action(axis=Axis.HR, progress=20, planned_end=days(45)))

        recalculation_pass.run(TODAY)

        [alert] = alerts.open_alerts()
        assert alert.condition_kind == SYNC_DESYNC
        assert alert.payload["status"] == "critique"


class TestFailureIsolation:

    def test_invalid_risk_is_skipped_and_pass_continues(
        self, session, store, auditor, config, actor_id, clock,
    ):
        seed_portfolio(store)
        invalid = make_risk(probability=0, impact=3)
        recalculation_pass = build_pass(
            session, store, auditor, config, actor_id, clock,
            risk_store=ExtraRiskStore(store, invalid),
        )

        result = recalculation_pass.run(TODAY)

        assert result.skipped == (SkippedEntity(EntityType.RISK, invalid.id, "invalid rating"),)
        assert result.risks.updated == 1
        assert result.snapshot_recorded


class TestIdempotence:

    def test_second_pass_writes_nothing(self, recalculation_pass, store, auditor, alerts):
        seed_portfolio(store)
        recalculation_pass.run(TODAY)

        audit_count = auditor.count()
        open_before = alerts.open_alerts()
        changes = []
        store.subscribe(changes.append)

        result = recalculation_pass.run(TODAY)

        assert changes == []
        assert auditor.count() == audit_count
        assert open_before
        assert alerts.open_alerts() == open_before
        assert result.duplicates_removed == 0
        assert result.actions.updated == 0
        assert result.milestones.updated == 0
        assert result.alerts_raised == 0
        assert result.alerts_resolved == 0
        assert result.risks.updated == 0
        assert not result.snapshot_recorded

    def test_pass_runs_inside_a_log_context(self, recalculation_pass, captured_logs):
        result = recalculation_pass.run(TODAY)

        completed = [r for r in captured_logs() if r["message"] == "recalculation_pass_completed"]
        assert len(completed) == 1
        assert completed[0]["pass_id"] == str(result.pass_id)

    def test_second_pass_leaves_open_alerts_untouched(
        self, recalculation_pass, store, alerts, session, captured_logs,
    ):
        seed_portfolio(store)
        recalculation_pass.run(TODAY)
        stamps = {
            row.id: (row.payload, row.severity, row.updated_at, row.updated_by_id)
            for row in session.scalars(select(AlertModel).where(AlertModel.resolved.is_(False)))
        }
        assert stamps

        recalculation_pass.run(TODAY)

        session.expire_all()
        after = {
            row.id: (row.payload, row.severity, row.updated_at, row.updated_by_id)
            for row in session.scalars(select(AlertModel).where(AlertModel.resolved.is_(False)))
        }
        assert after == stamps
        assert not any(r["message"] == "alert_refreshed" for r in captured_logs())
