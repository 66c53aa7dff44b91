"""
Module: portfolio_engines.alerts
Responsibility:
    Detect problem conditions in a portfolio snapshot: blocked actions,
    action deadlines, approaching or overdue milestones, critical risks,
    budget overruns and track desynchronization.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Detected conditions are
    written to the alert sink by the recalculation pass.

Invariants enforced:
    - Detection is deterministic for identical inputs and ``as_of``; the
      payload carries no timestamps so repeated passes compare equal.
    - At most one condition per (entity_type, entity_id, condition_kind).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import NAMESPACE_URL, UUID, uuid5

from portfolio_config.schema import AlertThresholds, RiskBands
from portfolio_engines.synchronization import SynchronizationMetrics, SyncStatus
from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import (
    Action,
    ActionStatus,
    AlertSeverity,
    BudgetLineItem,
    EntityType,
    Milestone,
    Risk,
)

ACTION_BLOCKED = "action_blocked"
ACTION_DEADLINE = "action_deadline"
MILESTONE_APPROACHING = "milestone_approaching"
MILESTONE_OVERDUE = "milestone_overdue"
RISK_CRITICAL = "risk_critical"
BUDGET_OVERRUN = "budget_overrun"
SYNC_DESYNC = "sync_desync"

AUTOMATIC_CONDITION_KINDS: frozenset[str] = frozenset({
    ACTION_BLOCKED,
    ACTION_DEADLINE,
    MILESTONE_APPROACHING,
    MILESTONE_OVERDUE,
    RISK_CRITICAL,
    BUDGET_OVERRUN,
    SYNC_DESYNC,
})

# Portfolio-wide conditions have no owning record; they are keyed on this id.
PORTFOLIO_ENTITY_ID: UUID = uuid5(NAMESPACE_URL, "portfolio-sync-engine:portfolio")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AlertCondition:
    entity_type: EntityType
    entity_id: UUID
    condition_kind: str
    severity: AlertSeverity
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[EntityType, UUID, str]:
        return (self.entity_type, self.entity_id, self.condition_kind)


def _action_deadline_severity(days_left: int, t: AlertThresholds) -> AlertSeverity | None:
    if days_left < 0:
        return AlertSeverity.CRITICAL
    if days_left <= t.action_high_days:
        return AlertSeverity.HIGH
    if days_left <= t.action_medium_days:
        return AlertSeverity.MEDIUM
    if days_left <= t.action_low_days:
        return AlertSeverity.LOW
    return None


def detect_action_conditions(
    actions: Iterable[Action], as_of: date, thresholds: AlertThresholds,
) -> list[AlertCondition]:
    found: list[AlertCondition] = []
    for action in actions:
        if action.status in (ActionStatus.DONE, ActionStatus.CANCELLED):
            continue

        if action.status == ActionStatus.BLOCKED:
            found.append(AlertCondition(
                entity_type=EntityType.ACTION,
                entity_id=action.id,
                condition_kind=ACTION_BLOCKED,
                severity=AlertSeverity.CRITICAL,
                payload={"title": action.title},
            ))

        if action.planned_end is None:
            continue
        days_left = (action.planned_end - as_of).days
        severity = _action_deadline_severity(days_left, thresholds)
        if severity is not None:
            found.append(AlertCondition(
                entity_type=EntityType.ACTION,
                entity_id=action.id,
                condition_kind=ACTION_DEADLINE,
                severity=severity,
                payload={
                    "title": action.title,
                    "planned_end": action.planned_end,
                    "days_left": days_left,
                },
            ))
    return found


def detect_milestone_conditions(
    milestones: Iterable[Milestone], as_of: date, thresholds: AlertThresholds,
) -> list[AlertCondition]:
    found: list[AlertCondition] = []
    for milestone in milestones:
        if milestone.is_terminal:
            continue

        days_left = (milestone.projected_date - as_of).days
        payload = {
            "title": milestone.title,
            "projected_date": milestone.projected_date,
            "days_left": days_left,
            "slip_days": milestone.slip_days,
        }
        if days_left < 0:
            found.append(AlertCondition(
                entity_type=EntityType.MILESTONE,
                entity_id=milestone.id,
                condition_kind=MILESTONE_OVERDUE,
                severity=AlertSeverity.CRITICAL,
                payload=payload,
            ))
        elif 0 < days_left <= thresholds.milestone_approach_days:
            if days_left <= thresholds.milestone_critical_days:
                severity = AlertSeverity.CRITICAL
            elif days_left <= thresholds.milestone_high_days:
                severity = AlertSeverity.HIGH
            else:
                severity = AlertSeverity.MEDIUM
            found.append(AlertCondition(
                entity_type=EntityType.MILESTONE,
                entity_id=milestone.id,
                condition_kind=MILESTONE_APPROACHING,
                severity=severity,
                payload=payload,
            ))
    return found


def detect_risk_conditions(risks: Iterable[Risk], bands: RiskBands) -> list[AlertCondition]:
    return [
        AlertCondition(
            entity_type=EntityType.RISK,
            entity_id=risk.id,
            condition_kind=RISK_CRITICAL,
            severity=AlertSeverity.CRITICAL,
            payload={"title": risk.title, "score": risk.probability * risk.impact},
        )
        for risk in risks
        if risk.is_open and risk.probability * risk.impact >= bands.critical_from
    ]


def detect_budget_conditions(
    lines: Iterable[BudgetLineItem], thresholds: AlertThresholds,
) -> list[AlertCondition]:
    found: list[AlertCondition] = []
    for line in lines:
        if line.planned_amount <= 0:
            continue
        overrun_pct = (line.actual_amount - line.planned_amount) / line.planned_amount * _HUNDRED
        if overrun_pct <= thresholds.budget_overrun_pct:
            continue
        severity = (
            AlertSeverity.CRITICAL
            if overrun_pct > thresholds.budget_overrun_critical_pct
            else AlertSeverity.HIGH
        )
        found.append(AlertCondition(
            entity_type=EntityType.BUDGET_LINE,
            entity_id=line.id,
            condition_kind=BUDGET_OVERRUN,
            severity=severity,
            payload={
                "label": line.label,
                "planned_amount": line.planned_amount,
                "actual_amount": line.actual_amount,
                "overrun_pct": overrun_pct.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
            },
        ))
    return found


def detect_sync_conditions(sync: SynchronizationMetrics | None) -> list[AlertCondition]:
    if sync is None or sync.status == SyncStatus.EN_PHASE:
        return []
    severity = AlertSeverity.CRITICAL if sync.status == SyncStatus.CRITIQUE else AlertSeverity.MEDIUM
    return [AlertCondition(
        entity_type=EntityType.SYNC_SNAPSHOT,
        entity_id=PORTFOLIO_ENTITY_ID,
        condition_kind=SYNC_DESYNC,
        severity=severity,
        payload={
            "status": sync.status.value,
            "gap": sync.gap,
            "critical_axis": sync.critical_axis.value if sync.critical_axis else None,
        },
    )]


@traced_engine("alert_detection", "1.0", fingerprint_fields=("as_of",))
def detect_alert_conditions(
    actions: Iterable[Action],
    milestones: Iterable[Milestone],
    risks: Iterable[Risk],
    budget_lines: Iterable[BudgetLineItem],
    sync: SynchronizationMetrics | None,
    as_of: date,
    thresholds: AlertThresholds,
    risk_bands: RiskBands,
) -> tuple[AlertCondition, ...]:
    """Every problem condition present in the snapshot."""
    found = [
        *detect_action_conditions(actions, as_of, thresholds),
        *detect_milestone_conditions(milestones, as_of, thresholds),
        *detect_risk_conditions(risks, risk_bands),
        *detect_budget_conditions(budget_lines, thresholds),
        *detect_sync_conditions(sync),
    ]

    unique: dict[tuple, AlertCondition] = {}
    for condition in found:
        unique.setdefault(condition.key, condition)
    return tuple(unique.values())
