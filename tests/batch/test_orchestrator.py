"""
Tests for portfolio_batch.orchestrator -- EngineOrchestrator.

Validates the wiring, the change observer and the scheduler's
session-per-pass commit against a file-backed SQLite database.
"""

import pytest

from portfolio_batch.orchestrator import EngineOrchestrator
from portfolio_batch.scheduler import RecalculationScheduler
from portfolio_config import get_default_config
from portfolio_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from portfolio_kernel.domain.values import ActionHealth, ActionStatus, EntityType
from portfolio_kernel.store import SqlEntityStore
from tests.factories import TODAY, days, make_action, make_risk


@pytest.fixture
def orchestrator(session, config, clock, actor_id):
    return EngineOrchestrator.from_session(session, config=config, clock=clock, actor_id=actor_id)


class TestWiring:

    def test_defaults(self, session):
        orchestrator = EngineOrchestrator.from_session(session)

        assert orchestrator.config == get_default_config()
        assert orchestrator.session is session
        assert orchestrator.store.actor_id is not None

    def test_services_share_one_store(self, orchestrator, clock):
        action = orchestrator.store.add(make_action(
            status=ActionStatus.PLANNED, planned_start=days(-3), planned_end=days(40),
        ))

        result = orchestrator.run_pass()

        assert result.as_of == TODAY
        assert result.started_at == clock.now()
        stored = orchestrator.store.get(EntityType.ACTION, action.id)
        assert stored.status == ActionStatus.IN_PROGRESS
        assert orchestrator.auditor.count() == 2
        assert orchestrator.auditor.validate_chain()

    def test_propagation_is_wired(self, orchestrator):
        source = orchestrator.store.add(make_action(planned_end=days(10)))
        preview = orchestrator.propagation.preview_delay(source.id)
        assert preview.impacted_actions == ()


class TestChangeObserver:

    def test_observer_recomputes_on_raw_fact_change(self, orchestrator):
        unsubscribe = orchestrator.subscribe_change_observer()
        action = orchestrator.store.add(make_action(planned_end=days(40)))

        orchestrator.store.update(EntityType.ACTION, action.id, {"status": ActionStatus.BLOCKED})
        assert orchestrator.store.get(EntityType.ACTION, action.id).health == ActionHealth.RED

        unsubscribe()
        orchestrator.store.update(EntityType.ACTION, action.id, {"status": ActionStatus.IN_PROGRESS})
        assert orchestrator.store.get(EntityType.ACTION, action.id).health == ActionHealth.RED


class TestScheduler:

    @pytest.fixture
    def database(self, tmp_path):
        init_engine_from_url(f"sqlite:///{tmp_path / 'portfolio.db'}")
        create_tables()
        yield
        drop_tables()
        reset_engine()

    def test_scheduler_uses_configured_delays(self, orchestrator, database):
        scheduler = orchestrator.create_scheduler(get_session_factory())

        assert isinstance(scheduler, RecalculationScheduler)
        assert scheduler._startup_delay == 2.0
        assert scheduler._interval == 3600.0

    def test_triggered_pass_is_committed(self, config, clock, actor_id, database):
        with session_scope() as seed:
            store = SqlEntityStore(seed, actor_id)
            action = store.add(make_action(
                status=ActionStatus.PLANNED, planned_start=days(-3), planned_end=days(40),
            ))
            risk = store.add(make_risk(probability=3, impact=3))

        owner = get_session()
        orchestrator = EngineOrchestrator(owner, config, clock, actor_id)
        scheduler = orchestrator.create_scheduler(get_session_factory())
        result = scheduler.trigger()
        owner.close()

        assert result.actions.updated == 1
        check = get_session()
        try:
            reader = SqlEntityStore(check, actor_id)
            assert reader.get(EntityType.ACTION, action.id).status == ActionStatus.IN_PROGRESS
            assert reader.get(EntityType.RISK, risk.id).score == 9
        finally:
            check.close()
