"""
RecalculationPass -- one full, idempotent recomputation of derived state.

Contract:
    ``run()`` executes, in order:
        (a) remove exact-duplicate budget rows,
        (b) recompute action status/health, then milestone projection,
            slip and status,
        (c) detect alert conditions and upsert them into the alert sink,
            resolving automatic alerts whose condition disappeared,
        (d) recompute open risk scores,
        (e) record the day's synchronization snapshot.

Invariants enforced:
    - Idempotence: a second run on unchanged inputs performs no write.
    - A single entity failing is logged, counted as skipped, and the pass
      continues.
    - The pass never commits; the caller owns the transaction boundary.
    - Sequential: entities are processed one after another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID, uuid4

from portfolio_config.schema import EngineConfig
from portfolio_engines.alerts import AUTOMATIC_CONDITION_KINDS, detect_alert_conditions
from portfolio_engines.budget import find_duplicate_budget_lines
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import AuditEntry, EntityType
from portfolio_kernel.logging_config import LogContext, get_logger
from portfolio_kernel.models.audit_event import AuditAction
from portfolio_kernel.services.alert_service import AlertSink
from portfolio_kernel.services.auditor_service import AuditSink
from portfolio_kernel.store import EntityStore
from portfolio_services.performance_service import PerformanceService
from portfolio_services.recalculation_service import (
    RecalculationService,
    SkippedEntity,
    StepOutcome,
)
from portfolio_services.risk_service import RiskEvaluationSummary, RiskService

logger = get_logger("batch.recalculation")


@dataclass(frozen=True)
class RecalculationResult:
    """Counts of one full pass."""

    pass_id: UUID
    as_of: date
    started_at: datetime
    finished_at: datetime
    duplicates_removed: int = 0
    actions: StepOutcome = field(default_factory=StepOutcome)
    milestones: StepOutcome = field(default_factory=StepOutcome)
    alerts_raised: int = 0
    alerts_resolved: int = 0
    risks: RiskEvaluationSummary = field(
        default_factory=lambda: RiskEvaluationSummary(evaluated=0, updated=0),
    )
    snapshot_recorded: bool = False
    skipped: tuple[SkippedEntity, ...] = ()

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class RecalculationPass:
    """Runs steps (a)-(e) against one store."""

    def __init__(
        self,
        store: EntityStore,
        auditor: AuditSink,
        alert_sink: AlertSink,
        recalculation: RecalculationService,
        risks: RiskService,
        performance: PerformanceService,
        config: EngineConfig,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        self._store = store
        self._auditor = auditor
        self._alerts = alert_sink
        self._recalculation = recalculation
        self._risks = risks
        self._performance = performance
        self._config = config
        self._actor_id = actor_id
        self._clock = clock or SystemClock()

    def run(self, as_of: date | None = None) -> RecalculationResult:
        today = as_of if as_of is not None else self._clock.today()
        pass_id = uuid4()
        started_at = self._clock.now()

        with LogContext.bind(pass_id=str(pass_id), actor_id=str(self._actor_id)):
            logger.info("recalculation_pass_started", extra={"as_of": today})
            skipped: list[SkippedEntity] = []

            removed = self._remove_duplicate_budget_lines(skipped)

            actions = self._recalculation.recompute_actions(today)
            milestones = self._recalculation.recompute_milestones(today)
            skipped.extend(actions.skipped)
            skipped.extend(milestones.skipped)

            raised, resolved = self._refresh_alerts(today, skipped)

            risks = self._risks.evaluate_all_risks()
            skipped.extend(
                SkippedEntity(EntityType.RISK, risk_id, "invalid rating")
                for risk_id in risks.skipped_ids
            )

            _, snapshot_written = self._performance.record_sync_snapshot(today)

            result = RecalculationResult(
                pass_id=pass_id,
                as_of=today,
                started_at=started_at,
                finished_at=self._clock.now(),
                duplicates_removed=removed,
                actions=actions,
                milestones=milestones,
                alerts_raised=raised,
                alerts_resolved=resolved,
                risks=risks,
                snapshot_recorded=snapshot_written,
                skipped=tuple(skipped),
            )
            logger.info(
                "recalculation_pass_completed",
                extra={
                    "duplicates_removed": removed,
                    "actions_updated": actions.updated,
                    "milestones_updated": milestones.updated,
                    "milestones_degraded": milestones.degraded,
                    "alerts_raised": raised,
                    "alerts_resolved": resolved,
                    "risks_updated": risks.updated,
                    "skipped": result.skipped_count,
                },
            )
            return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _remove_duplicate_budget_lines(self, skipped: list[SkippedEntity]) -> int:
        lines = {line.id: line for line in self._store.query(EntityType.BUDGET_LINE)}
        removed = 0
        for duplicate in find_duplicate_budget_lines(lines.values()):
            line = lines[duplicate.line_id]
            try:
                self._store.delete(EntityType.BUDGET_LINE, duplicate.line_id)
                self._auditor.append(
                    AuditEntry(
                        timestamp=self._clock.now(),
                        entity_type=EntityType.BUDGET_LINE,
                        entity_id=duplicate.line_id,
                        field="row",
                        old_value={
                            "label": line.label,
                            "category": line.category,
                            "axis": line.axis,
                            "planned_amount": line.planned_amount,
                            "committed_amount": line.committed_amount,
                            "actual_amount": line.actual_amount,
                            "duplicate_of": duplicate.kept_id,
                        },
                        new_value=None,
                        actor=self._actor_id,
                    ),
                    action=AuditAction.BUDGET_DUPLICATE_REMOVED,
                )
            except Exception as exc:
                logger.exception(
                    "entity_recalculation_failed",
                    extra={"entity_type": "budget_line", "entity_id": str(duplicate.line_id)},
                )
                skipped.append(SkippedEntity(EntityType.BUDGET_LINE, duplicate.line_id, str(exc)))
                continue
            removed += 1
        return removed

    def _refresh_alerts(self, as_of: date, skipped: list[SkippedEntity]) -> tuple[int, int]:
        sync = self._performance.synchronization(as_of).metrics
        conditions = detect_alert_conditions(
            actions=self._store.query(EntityType.ACTION),
            milestones=self._store.query(EntityType.MILESTONE),
            risks=self._store.query(EntityType.RISK),
            budget_lines=self._store.query(EntityType.BUDGET_LINE),
            sync=sync,
            as_of=as_of,
            thresholds=self._config.alerts,
            risk_bands=self._config.risk,
        )

        raised = 0
        for condition in conditions:
            try:
                if self._alerts.upsert(
                    condition.entity_type,
                    condition.entity_id,
                    condition.condition_kind,
                    condition.payload,
                    condition.severity,
                ):
                    raised += 1
            except Exception as exc:
                logger.exception(
                    "entity_recalculation_failed",
                    extra={
                        "entity_type": condition.entity_type.value,
                        "entity_id": str(condition.entity_id),
                        "condition_kind": condition.condition_kind,
                    },
                )
                skipped.append(
                    SkippedEntity(condition.entity_type, condition.entity_id, str(exc)),
                )

        detected = {condition.key for condition in conditions}
        resolved = 0
        for alert in self._alerts.open_alerts():
            if alert.condition_kind not in AUTOMATIC_CONDITION_KINDS:
                continue
            if (alert.entity_type, alert.entity_id, alert.condition_kind) in detected:
                continue
            if self._alerts.resolve(alert.entity_type, alert.entity_id, alert.condition_kind):
                resolved += 1

        return raised, resolved
