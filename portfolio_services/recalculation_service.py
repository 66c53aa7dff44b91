"""
portfolio_services.recalculation_service -- Derived-field recomputation.

Responsibility:
    Reads actions and milestones from the entity store, runs the status,
    health and projection engines, and writes back only the derived fields
    whose value changed, with one audit entry per changed field.  Also
    reacts to raw-fact changes published by the store.

Architecture position:
    Services -- imperative shell over the pure engines and the kernel
    store / audit sink.

Invariants enforced:
    - Idempotence: recomputing from unchanged inputs writes nothing and
      audits nothing.
    - Only derived fields are written: status and health on actions;
      projected_date, slip_days and status on milestones.
    - A single entity failing is logged and reported as skipped; the
      other entities are still processed.

Failure modes:
    - Engine or store errors on one entity are caught per entity in the
      ``recompute_*`` loops and surface in ``StepOutcome.skipped``.
    - ``recompute_action`` / ``recompute_milestone`` propagate errors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any
from uuid import UUID

from portfolio_config.schema import EngineConfig
from portfolio_engines.projection import project_milestone
from portfolio_engines.status import (
    derive_action_health,
    derive_action_status,
    derive_milestone_status,
)
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import Action, AuditEntry, EntityType, Milestone
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.services.auditor_service import AuditSink
from portfolio_kernel.store import ChangeKind, EntityStore, StoreChange

logger = get_logger("services.recalculation")

# Raw facts whose change invalidates derived fields.  ``status`` is one
# because manual states feed health; the engine's own status write then
# re-derives once and finds nothing to change.
ACTION_TRIGGER_FIELDS = frozenset({
    "progress",
    "status",
    "actual_end",
    "planned_start",
    "planned_end",
    "prerequisites",
})
MILESTONE_TRIGGER_FIELDS = frozenset({"planned_date", "prerequisites"})


@dataclass(frozen=True)
class SkippedEntity:
    entity_type: EntityType
    entity_id: UUID
    error: str


@dataclass(frozen=True)
class StepOutcome:
    """Result of recomputing one family of records."""

    processed: int = 0
    updated: int = 0
    degraded: int = 0
    skipped: tuple[SkippedEntity, ...] = field(default_factory=tuple)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


class RecalculationService:
    """
    Recomputes derived fields of actions and milestones.

    Args:
        store: Entity store.
        auditor: Audit sink receiving one entry per changed field.
        config: Engine configuration.
        clock: Source of "today" when ``as_of`` is not given.
        actor_id: Recorded as the actor of every derived write.
    """

    def __init__(
        self,
        store: EntityStore,
        auditor: AuditSink,
        config: EngineConfig,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        self._store = store
        self._auditor = auditor
        self._config = config
        self._actor_id = actor_id
        self._clock = clock or SystemClock()

    def _as_of(self, as_of: date | None) -> date:
        return as_of if as_of is not None else self._clock.today()

    def _write_changes(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        current: Mapping[str, Any],
        derived: Mapping[str, Any],
    ) -> bool:
        changes = {
            name: value for name, value in derived.items() if current[name] != value
        }
        if not changes:
            return False

        self._store.update(entity_type, entity_id, changes)
        now = self._clock.now()
        for name, value in changes.items():
            self._auditor.append(AuditEntry(
                timestamp=now,
                entity_type=entity_type,
                entity_id=entity_id,
                field=name,
                old_value=_plain(current[name]),
                new_value=_plain(value),
                actor=self._actor_id,
            ))

        logger.info(
            "derived_fields_updated",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "fields": sorted(changes),
            },
        )
        return True

    # =========================================================================
    # Actions
    # =========================================================================

    def recompute_action(self, action: Action, as_of: date | None = None) -> bool:
        """Recompute status and health of one action; True if anything was written."""
        today = self._as_of(as_of)
        status = derive_action_status(action, today, self._config.actions)
        health = derive_action_health(action, status, today, self._config.health)
        return self._write_changes(
            EntityType.ACTION,
            action.id,
            current={"status": action.status, "health": action.health},
            derived={"status": status, "health": health},
        )

    def recompute_actions(self, as_of: date | None = None) -> StepOutcome:
        today = self._as_of(as_of)
        processed = updated = 0
        skipped: list[SkippedEntity] = []

        for action in self._store.query(EntityType.ACTION):
            processed += 1
            try:
                if self.recompute_action(action, today):
                    updated += 1
            except Exception as exc:
                logger.exception(
                    "entity_recalculation_failed",
                    extra={"entity_type": "action", "entity_id": str(action.id)},
                )
                skipped.append(SkippedEntity(EntityType.ACTION, action.id, str(exc)))

        return StepOutcome(processed=processed, updated=updated, skipped=tuple(skipped))

    # =========================================================================
    # Milestones
    # =========================================================================

    def recompute_milestone(
        self,
        milestone: Milestone,
        actions_by_id: Mapping[UUID, Action],
        as_of: date | None = None,
    ) -> tuple[bool, bool]:
        """
        Re-project one milestone and re-derive its status.

        Returns:
            (written, degraded)
        """
        today = self._as_of(as_of)
        projection = project_milestone(
            milestone, actions_by_id, self._config.scheduler.max_recursion_depth,
        )
        projected = replace(
            milestone,
            projected_date=projection.projected_date,
            slip_days=projection.slip_days,
        )
        prerequisites = [
            actions_by_id[p.action_id]
            for p in milestone.prerequisites
            if p.action_id in actions_by_id
        ]
        status = derive_milestone_status(
            projected, prerequisites, today, self._config.milestones,
        )

        written = self._write_changes(
            EntityType.MILESTONE,
            milestone.id,
            current={
                "projected_date": milestone.projected_date,
                "slip_days": milestone.slip_days,
                "status": milestone.status,
            },
            derived={
                "projected_date": projection.projected_date,
                "slip_days": projection.slip_days,
                "status": status,
            },
        )
        return written, projection.degraded

    def recompute_milestones(self, as_of: date | None = None) -> StepOutcome:
        today = self._as_of(as_of)
        actions_by_id = {a.id: a for a in self._store.query(EntityType.ACTION)}
        processed = updated = degraded = 0
        skipped: list[SkippedEntity] = []

        for milestone in self._store.query(EntityType.MILESTONE):
            processed += 1
            try:
                written, was_degraded = self.recompute_milestone(
                    milestone, actions_by_id, today,
                )
            except Exception as exc:
                logger.exception(
                    "entity_recalculation_failed",
                    extra={"entity_type": "milestone", "entity_id": str(milestone.id)},
                )
                skipped.append(SkippedEntity(EntityType.MILESTONE, milestone.id, str(exc)))
                continue
            updated += int(written)
            degraded += int(was_degraded)

        return StepOutcome(
            processed=processed, updated=updated, degraded=degraded, skipped=tuple(skipped),
        )

    # =========================================================================
    # Change observer
    # =========================================================================

    def handle_entity_change(self, change: StoreChange) -> int:
        """
        Store listener: refresh derived fields after a raw-fact change.

        An action change re-derives that action and then every milestone,
        since projection follows dependencies transitively.  A milestone
        change re-projects that milestone only.

        Returns:
            Number of records written.
        """
        if change.kind == ChangeKind.DELETED:
            return 0

        if change.entity_type == EntityType.ACTION:
            if change.kind == ChangeKind.UPDATED and not (
                ACTION_TRIGGER_FIELDS & set(change.fields)
            ):
                return 0
            action = self._store.get(EntityType.ACTION, change.entity_id)
            if action is None:
                return 0
            writes = int(self.recompute_action(action))
            outcome = self.recompute_milestones()
            return writes + outcome.updated

        if change.entity_type == EntityType.MILESTONE:
            if change.kind == ChangeKind.UPDATED and not (
                MILESTONE_TRIGGER_FIELDS & set(change.fields)
            ):
                return 0
            milestone = self._store.get(EntityType.MILESTONE, change.entity_id)
            if milestone is None:
                return 0
            actions_by_id = {a.id: a for a in self._store.query(EntityType.ACTION)}
            written, _ = self.recompute_milestone(milestone, actions_by_id)
            return int(written)

        return 0
