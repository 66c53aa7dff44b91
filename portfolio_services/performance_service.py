"""
portfolio_services.performance_service -- Earned value and track synchronization.

Responsibility:
    Gathers the budget ledger, action progress and stored snapshots from
    the entity store and runs the performance and synchronization engines.
    Results are ephemeral, except the daily synchronization snapshot used
    for trend computation.

Architecture position:
    Services -- imperative shell over portfolio_engines.performance and
    portfolio_engines.synchronization.

Invariants enforced:
    - At most one synchronization snapshot per day; recording it again
      with unchanged figures writes nothing.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

from portfolio_config.schema import EngineConfig
from portfolio_engines.performance import EarnedValueMetrics, compute_earned_value
from portfolio_engines.synchronization import (
    SynchronizationMetrics,
    SyncTrendReport,
    average_progress,
    compute_sync_trend,
    compute_synchronization,
)
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import (
    Action,
    ActionStatus,
    Axis,
    EntityType,
    SyncSnapshot,
)
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.store import EntityStore

logger = get_logger("services.performance")


@dataclass(frozen=True)
class SynchronizationReport:
    metrics: SynchronizationMetrics
    trend: SyncTrendReport | None


class PerformanceService:
    """
    Computes performance indicators from the store.

    Args:
        store: Entity store.
        config: Engine configuration (bands, track axes, project window).
        clock: Source of "today" when ``as_of`` is not given.
    """

    def __init__(self, store: EntityStore, config: EngineConfig, clock: Clock | None = None):
        self._store = store
        self._config = config
        self._clock = clock or SystemClock()

    def _as_of(self, as_of: date | None) -> date:
        return as_of if as_of is not None else self._clock.today()

    def _live_actions(self) -> list[Action]:
        return [
            a for a in self._store.query(EntityType.ACTION)
            if a.status != ActionStatus.CANCELLED
        ]

    def project_window(self, actions: Sequence[Action]) -> tuple[date, date] | None:
        """
        Configured project window, or the span of the scheduled actions
        when the configuration leaves it open.
        """
        window = self._config.project
        start = window.start or min(
            (a.planned_start for a in actions if a.planned_start is not None), default=None,
        )
        end = window.end or max(
            (a.planned_end for a in actions if a.planned_end is not None), default=None,
        )
        if start is None or end is None:
            return None
        return (start, end)

    @staticmethod
    def axis_progress(actions: Sequence[Action]) -> dict[Axis | None, Decimal]:
        """Average progress per axis; the ``None`` key holds the overall average."""
        by_axis: dict[Axis, list[Action]] = {}
        for action in actions:
            by_axis.setdefault(action.axis, []).append(action)
        progress: dict[Axis | None, Decimal] = {
            axis: average_progress(group) for axis, group in by_axis.items()
        }
        progress[None] = average_progress(list(actions))
        return progress

    def earned_value(self, as_of: date | None = None) -> EarnedValueMetrics:
        actions = self._live_actions()
        return compute_earned_value(
            self._store.query(EntityType.BUDGET_LINE),
            self.axis_progress(actions),
            self.project_window(actions),
            self._as_of(as_of),
            self._config.performance,
        )

    def synchronization(self, as_of: date | None = None) -> SynchronizationReport:
        """Current synchronization metrics and their trend."""
        today = self._as_of(as_of)
        settings = self._config.sync
        metrics = compute_synchronization(self._store.query(EntityType.ACTION), settings)
        trend = compute_sync_trend(
            metrics.abs_gap,
            self._store.query(EntityType.SYNC_SNAPSHOT),
            today,
            settings.snapshot_min_age_days,
            settings.trend_noise,
        )
        return SynchronizationReport(metrics=metrics, trend=trend)

    def record_sync_snapshot(
        self,
        as_of: date | None = None,
        metrics: SynchronizationMetrics | None = None,
    ) -> tuple[SyncSnapshot, bool]:
        """
        Store today's synchronization figures.

        Returns:
            (snapshot, written) -- ``written`` is False when today's
            snapshot already holds the same figures.
        """
        today = self._as_of(as_of)
        if metrics is None:
            metrics = compute_synchronization(
                self._store.query(EntityType.ACTION), self._config.sync,
            )

        figures = {
            "technical_progress": metrics.technical_progress,
            "mobilization_progress": metrics.mobilization_progress,
            "gap": metrics.gap,
        }
        existing = self._store.query(EntityType.SYNC_SNAPSHOT, taken_on=today)
        if existing:
            snapshot = existing[0]
            if all(getattr(snapshot, name) == value for name, value in figures.items()):
                return snapshot, False
            return self._store.update(EntityType.SYNC_SNAPSHOT, snapshot.id, figures), True

        snapshot = self._store.add(SyncSnapshot(id=uuid4(), taken_on=today, **figures))
        logger.info(
            "sync_snapshot_recorded",
            extra={"taken_on": today, "gap": metrics.gap},
        )
        return snapshot, True
