"""
portfolio_services.propagation_service -- Preview/apply of delay propagation.

Responsibility:
    Two-phase protocol for cascading a technical-track delay onto the
    mobilization actions linked to it: ``preview_delay`` computes the
    shift without writing; ``apply_delay`` writes it once the initiating
    actor has confirmed.

Architecture position:
    Services -- imperative shell over portfolio_engines.propagation and
    the kernel store / audit sink.

Invariants enforced:
    - Preview performs no writes.
    - Apply refuses to run without explicit confirmation.
    - Apply refuses a preview whose source delay no longer matches.
    - Every target is checked to exist before the first write.
    - With a transactional store the writes are all-or-nothing; otherwise
      they are sequential and a failure does not undo prior writes.
    - One audit entry per rewritten action.

Failure modes:
    - EntityNotFoundError: source or a target is missing (nothing written).
    - PropagationNotConfirmedError: ``confirmed`` is not True.
    - StalePreviewError: the source delay changed since the preview.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from portfolio_engines.propagation import (
    DelayPreview,
    ImpactedAction,
    compute_delay_preview,
    source_delay_days,
)
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import AuditEntry, EntityType
from portfolio_kernel.exceptions import (
    EntityNotFoundError,
    PropagationNotConfirmedError,
    StalePreviewError,
)
from portfolio_kernel.logging_config import LogContext, get_logger
from portfolio_kernel.models.audit_event import AuditAction
from portfolio_kernel.services.auditor_service import AuditSink
from portfolio_kernel.store import EntityStore

logger = get_logger("services.propagation")


@dataclass(frozen=True)
class PropagationResult:
    """Outcome of ``apply_delay``."""

    applied_count: int
    failed_ids: tuple[UUID, ...] = ()
    rolled_back: bool = False

    @property
    def fully_applied(self) -> bool:
        return not self.failed_ids and not self.rolled_back


class DelayPropagationService:
    """
    Preview and apply delay propagation.

    Args:
        store: Entity store.  Transactional stores get all-or-nothing apply.
        auditor: Audit sink.
        clock: Clock for audit timestamps.
    """

    def __init__(self, store: EntityStore, auditor: AuditSink, clock: Clock | None = None):
        self._store = store
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def _require_action(self, action_id: UUID):
        action = self._store.get(EntityType.ACTION, action_id)
        if action is None:
            raise EntityNotFoundError(EntityType.ACTION.value, str(action_id))
        return action

    def preview_delay(self, source_action_id: UUID) -> DelayPreview:
        """
        Compute the shift of every action linked downstream of the source.

        Raises:
            EntityNotFoundError: source or a link target does not exist.
        """
        source = self._require_action(source_action_id)
        links = self._store.query(EntityType.SYNC_LINK, source_action_id=source_action_id)

        target_ids = {t for link in links if link.propagates_delay for t in link.target_action_ids}
        targets_by_id = {}
        for target_id in target_ids:
            targets_by_id[target_id] = self._require_action(target_id)

        preview = compute_delay_preview(source, links, targets_by_id)
        logger.info(
            "delay_preview_computed",
            extra={
                "source_id": str(source_action_id),
                "retard_days": preview.retard_days,
                "impacted_count": len(preview.impacted_actions),
            },
        )
        return preview

    def apply_delay(
        self,
        preview: DelayPreview,
        actor_id: UUID,
        confirmed: bool = False,
    ) -> PropagationResult:
        """
        Write the planned windows of ``preview`` to the impacted actions.

        This rewrites other actions' planned dates and cannot be undone
        by the engine, hence the explicit ``confirmed`` flag.

        Raises:
            PropagationNotConfirmedError: ``confirmed`` is not True.
            EntityNotFoundError: source or an impacted action is missing.
            StalePreviewError: the source delay changed since the preview.
        """
        if confirmed is not True:
            raise PropagationNotConfirmedError(str(preview.source_id))

        source = self._require_action(preview.source_id)
        current_days = source_delay_days(source)
        if current_days != preview.retard_days:
            raise StalePreviewError(str(preview.source_id), preview.retard_days, current_days)

        if preview.is_empty:
            return PropagationResult(applied_count=0)

        for impacted in preview.impacted_actions:
            self._require_action(impacted.id)

        with LogContext.bind(actor_id=str(actor_id)):
            if self._store.supports_transactions:
                result = self._apply_atomically(preview, actor_id)
            else:
                result = self._apply_sequentially(preview, actor_id)

        logger.info(
            "delay_propagation_applied",
            extra={
                "source_id": str(preview.source_id),
                "retard_days": preview.retard_days,
                "applied_count": result.applied_count,
                "failed_count": len(result.failed_ids),
                "rolled_back": result.rolled_back,
            },
        )
        return result

    def _apply_one(self, impacted: ImpactedAction, source_id: UUID, actor_id: UUID) -> None:
        self._store.update(
            EntityType.ACTION,
            impacted.id,
            {"planned_start": impacted.new_start, "planned_end": impacted.new_end},
        )
        self._auditor.append(
            AuditEntry(
                timestamp=self._clock.now(),
                entity_type=EntityType.ACTION,
                entity_id=impacted.id,
                field="planned_window",
                old_value={"start": impacted.old_start, "end": impacted.old_end},
                new_value={
                    "start": impacted.new_start,
                    "end": impacted.new_end,
                    "decalage_days": impacted.decalage_days,
                    "source_id": source_id,
                },
                actor=actor_id,
            ),
            action=AuditAction.DELAY_PROPAGATED,
        )

    def _apply_atomically(self, preview: DelayPreview, actor_id: UUID) -> PropagationResult:
        current: UUID | None = None
        try:
            with self._store.transaction():
                for impacted in preview.impacted_actions:
                    current = impacted.id
                    self._apply_one(impacted, preview.source_id, actor_id)
        except Exception:
            logger.exception(
                "delay_propagation_rolled_back",
                extra={"source_id": str(preview.source_id), "failed_id": str(current)},
            )
            return PropagationResult(
                applied_count=0,
                failed_ids=(current,) if current is not None else (),
                rolled_back=True,
            )
        return PropagationResult(applied_count=len(preview.impacted_actions))

    def _apply_sequentially(self, preview: DelayPreview, actor_id: UUID) -> PropagationResult:
        applied = 0
        failed: list[UUID] = []
        for impacted in preview.impacted_actions:
            try:
                self._apply_one(impacted, preview.source_id, actor_id)
            except Exception:
                logger.exception(
                    "delay_propagation_write_failed",
                    extra={"source_id": str(preview.source_id), "failed_id": str(impacted.id)},
                )
                failed.append(impacted.id)
                continue
            applied += 1
        return PropagationResult(applied_count=applied, failed_ids=tuple(failed))
