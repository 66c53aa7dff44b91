"""
portfolio_services.risk_service -- Risk register scoring and linking.

Responsibility:
    Keeps every open risk's ``score`` equal to probability x impact and
    reports advisory matches between risks and actions.

Architecture position:
    Services -- imperative shell over portfolio_engines.risk.

Invariants enforced:
    - Closed risks are not re-scored.
    - The score is written only when it changed, with one audit entry.
    - Risk-action matches are returned, never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from portfolio_config.schema import RiskBands
from portfolio_engines.risk import (
    RiskActionMatch,
    RiskLevel,
    classify_risk,
    match_risks_to_actions,
    score_risk,
)
from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import AuditEntry, EntityType, Risk, RiskStatus
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.services.auditor_service import AuditSink
from portfolio_kernel.store import EntityStore

logger = get_logger("services.risk")


@dataclass(frozen=True)
class RiskEvaluationSummary:
    evaluated: int
    updated: int
    skipped_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class RiskLinkSummary:
    risks_linked: int
    total_links: int
    matches: tuple[RiskActionMatch, ...] = ()


class RiskService:
    """
    Scores and links the risk register.

    Args:
        store: Entity store.
        auditor: Audit sink.
        bands: Classification bands.
        actor_id: Recorded as the actor of score writes.
        clock: Clock for audit timestamps.
    """

    def __init__(
        self,
        store: EntityStore,
        auditor: AuditSink,
        bands: RiskBands,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        self._store = store
        self._auditor = auditor
        self._bands = bands
        self._actor_id = actor_id
        self._clock = clock or SystemClock()

    def _open_risks(self) -> list[Risk]:
        return [r for r in self._store.query(EntityType.RISK) if r.status != RiskStatus.CLOSED]

    def evaluate_risk(self, risk: Risk) -> bool:
        """Refresh the score of one risk; True when it was written."""
        score = score_risk(risk.probability, risk.impact)
        if score == risk.score:
            return False

        self._store.update(EntityType.RISK, risk.id, {"score": score})
        self._auditor.append(AuditEntry(
            timestamp=self._clock.now(),
            entity_type=EntityType.RISK,
            entity_id=risk.id,
            field="score",
            old_value=risk.score,
            new_value=score,
            actor=self._actor_id,
        ))
        return True

    def evaluate_all_risks(self) -> RiskEvaluationSummary:
        """Re-score every open risk.  A risk with invalid ratings is skipped."""
        evaluated = updated = 0
        skipped: list[UUID] = []
        for risk in self._open_risks():
            evaluated += 1
            try:
                if self.evaluate_risk(risk):
                    updated += 1
            except Exception:
                logger.exception(
                    "entity_recalculation_failed",
                    extra={"entity_type": "risk", "entity_id": str(risk.id)},
                )
                skipped.append(risk.id)

        logger.info(
            "risks_evaluated",
            extra={"evaluated": evaluated, "updated": updated, "skipped": len(skipped)},
        )
        return RiskEvaluationSummary(
            evaluated=evaluated, updated=updated, skipped_ids=tuple(skipped),
        )

    def link_risks_to_actions(self) -> RiskLinkSummary:
        """Advisory matches of open risks to actions on the same axis and building."""
        matches = match_risks_to_actions(
            self._open_risks(), self._store.query(EntityType.ACTION),
        )
        summary = RiskLinkSummary(
            risks_linked=len(matches),
            total_links=sum(m.link_count for m in matches),
            matches=matches,
        )
        logger.info(
            "risks_linked",
            extra={"risks_linked": summary.risks_linked, "total_links": summary.total_links},
        )
        return summary

    def classify(self, risk: Risk) -> RiskLevel:
        return classify_risk(score_risk(risk.probability, risk.impact), self._bands)
