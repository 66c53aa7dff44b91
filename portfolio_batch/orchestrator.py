"""
EngineOrchestrator -- DI container for the portfolio engine.

Contract:
    Composes the store, audit and alert sinks, the services and the
    recalculation pass from one session.  Single place where engine
    dependencies are wired.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Every derived write is audited through the same AuditorService.
    - The kernel never imports portfolio_batch (orchestrator lives here).
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from portfolio_config import get_default_config
from portfolio_config.schema import EngineConfig
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.services.alert_service import AlertService
from portfolio_kernel.services.auditor_service import AuditorService
from portfolio_kernel.store import SqlEntityStore, StoreChange
from portfolio_services.performance_service import PerformanceService
from portfolio_services.propagation_service import DelayPropagationService
from portfolio_services.recalculation_service import RecalculationService
from portfolio_services.risk_service import RiskService

from portfolio_batch.recalculation import RecalculationPass, RecalculationResult
from portfolio_batch.scheduler import RecalculationScheduler

logger = get_logger("batch.orchestrator")


class EngineOrchestrator:
    """DI container for the portfolio engine.

    Contract:
        - ``from_session()`` creates a fully wired orchestrator.
        - ``create_scheduler()`` returns a RecalculationScheduler whose
          passes each run in a fresh session.
        - ``subscribe_change_observer()`` keeps derived fields current
          after every raw-fact write through the store.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT commit the orchestrator's own session.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig,
        clock: Clock,
        actor_id: UUID,
    ) -> None:
        self._session = session
        self._config = config
        self._clock = clock
        self._actor_id = actor_id

        self._store = SqlEntityStore(session, actor_id)
        self._auditor = AuditorService(session=session, clock=clock)
        self._alerts = AlertService(session, actor_id, clock)
        self._recalculation = RecalculationService(
            self._store, self._auditor, config, actor_id, clock,
        )
        self._risks = RiskService(self._store, self._auditor, config.risk, actor_id, clock)
        self._performance = PerformanceService(self._store, config, clock)
        self._propagation = DelayPropagationService(self._store, self._auditor, clock)
        self._pass = RecalculationPass(
            store=self._store,
            auditor=self._auditor,
            alert_sink=self._alerts,
            recalculation=self._recalculation,
            risks=self._risks,
            performance=self._performance,
            config=config,
            actor_id=actor_id,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> EngineOrchestrator:
        """Create a fully wired orchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            config: Engine configuration; packaged defaults when None.
            clock: Optional clock for deterministic testing.
            actor_id: Actor recorded on derived writes; random when None.
        """
        return cls(
            session=session,
            config=config if config is not None else get_default_config(),
            clock=clock or SystemClock(),
            actor_id=actor_id or uuid4(),
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def run_pass(self) -> RecalculationResult:
        """Run one full pass in the orchestrator's session (no commit)."""
        return self._pass.run()

    def subscribe_change_observer(self) -> Callable[[], None]:
        """Recompute derived fields on every raw-fact store change.

        Returns:
            Callable that removes the observer.
        """
        def on_change(change: StoreChange) -> None:
            self._recalculation.handle_entity_change(change)

        return self._store.subscribe(on_change)

    def create_scheduler(
        self,
        session_factory: Callable[[], Session],
    ) -> RecalculationScheduler:
        """Create a scheduler whose passes each use a new session.

        A pass that completes is committed; a pass that raises is rolled
        back and the error propagates to the scheduler.

        Args:
            session_factory: Callable returning new sessions for each pass.
        """
        config = self._config
        clock = self._clock
        actor_id = self._actor_id

        def run_pass() -> RecalculationResult:
            session = session_factory()
            try:
                orchestrator = EngineOrchestrator(session, config, clock, actor_id)
                result = orchestrator.run_pass()
                session.commit()
                return result
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        settings = config.scheduler
        return RecalculationScheduler(
            run_pass=run_pass,
            startup_delay_seconds=settings.startup_delay_seconds,
            interval_seconds=settings.interval_seconds,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def store(self) -> SqlEntityStore:
        return self._store

    @property
    def auditor(self) -> AuditorService:
        return self._auditor

    @property
    def alerts(self) -> AlertService:
        return self._alerts

    @property
    def recalculation(self) -> RecalculationService:
        return self._recalculation

    @property
    def risks(self) -> RiskService:
        return self._risks

    @property
    def performance(self) -> PerformanceService:
        return self._performance

    @property
    def propagation(self) -> DelayPropagationService:
        return self._propagation

    @property
    def recalculation_pass(self) -> RecalculationPass:
        return self._pass
