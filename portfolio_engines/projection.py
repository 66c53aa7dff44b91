"""
Module: portfolio_engines.projection
Responsibility:
    Project a milestone's completion date from the completion dates of its
    prerequisite actions, following blocking dependencies upstream.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - projected_date >= planned_date, always.
    - slip_days = max(0, projected_date - planned_date).
    - Traversal is bounded by ``max_depth`` and guarded against cycles;
      it never raises and never loops.  A cycle or an exceeded depth
      yields the planned date with ``degraded=True``.
    - A prerequisite missing from the snapshot, or an unscheduled one, is
      skipped and marks the result degraded.

Effective completion of an action:
    - Finished (actual_end recorded, or progress == 100): actual_end,
      else planned_end.
    - Cancelled: no constraint.
    - Otherwise planned_end, pushed to ``latest blocking upstream
      completion + own duration`` when that upstream completion falls
      after the action's planned start.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import Action, ActionStatus, Milestone
from portfolio_kernel.logging_config import get_logger

logger = get_logger("engines.projection")

DEGRADED_CYCLE = "cycle_detected"
DEGRADED_DEPTH = "max_depth_exceeded"
DEGRADED_MISSING = "missing_prerequisite"
DEGRADED_UNSCHEDULED = "unscheduled_prerequisite"


@dataclass(frozen=True)
class ProjectionResult:
    """Projected date of one milestone."""

    milestone_id: UUID
    projected_date: date
    slip_days: int
    degraded: bool = False
    reasons: tuple[str, ...] = ()


class _TraversalAborted(Exception):
    def __init__(self, reason: str, action_id: UUID):
        self.reason = reason
        self.action_id = action_id
        super().__init__(reason)


class _Projector:
    """One traversal over an action snapshot."""

    def __init__(self, actions_by_id: Mapping[UUID, Action], max_depth: int):
        self._actions = actions_by_id
        self._max_depth = max_depth
        self._memo: dict[UUID, date | None] = {}
        self.reasons: list[str] = []

    def _note(self, reason: str) -> None:
        if reason not in self.reasons:
            self.reasons.append(reason)

    def completion(self, action_id: UUID, depth: int, path: frozenset[UUID]) -> date | None:
        if depth > self._max_depth:
            raise _TraversalAborted(DEGRADED_DEPTH, action_id)
        if action_id in path:
            raise _TraversalAborted(DEGRADED_CYCLE, action_id)
        if action_id in self._memo:
            return self._memo[action_id]

        action = self._actions.get(action_id)
        if action is None:
            self._note(DEGRADED_MISSING)
            result = None
        else:
            result = self._completion_of(action, depth, path | {action_id})

        self._memo[action_id] = result
        return result

    def _completion_of(
        self, action: Action, depth: int, path: frozenset[UUID],
    ) -> date | None:
        if action.status == ActionStatus.CANCELLED:
            return None
        if action.actual_end is not None:
            return action.actual_end
        if action.planned_end is None:
            self._note(DEGRADED_UNSCHEDULED)
            return None
        if action.progress == 100:
            return action.planned_end

        upstream: list[date] = []
        for prerequisite in action.prerequisites:
            if not prerequisite.is_blocking:
                continue
            done = self.completion(prerequisite.action_id, depth + 1, path)
            if done is not None:
                upstream.append(done)

        if not upstream or action.planned_start is None:
            return action.planned_end

        latest = max(upstream)
        if latest <= action.planned_start:
            return action.planned_end
        return max(action.planned_end, latest + timedelta(days=action.duration_days))


@traced_engine("milestone_projection", "1.0", fingerprint_fields=("milestone", "max_depth"))
def project_milestone(
    milestone: Milestone,
    actions_by_id: Mapping[UUID, Action],
    max_depth: int = 50,
) -> ProjectionResult:
    """
    Project the completion date of ``milestone``.

    Args:
        milestone: The milestone to project.
        actions_by_id: Snapshot of the actions reachable from the
            milestone's prerequisites.
        max_depth: Maximum dependency depth followed before giving up.
    """
    projector = _Projector(actions_by_id, max_depth)
    root_path = frozenset()

    completions: list[date] = []
    try:
        for prerequisite in milestone.prerequisites:
            done = projector.completion(prerequisite.action_id, 1, root_path)
            if done is not None:
                completions.append(done)
    except _TraversalAborted as aborted:
        logger.warning(
            "projection_degraded",
            extra={
                "milestone_id": str(milestone.id),
                "reason": aborted.reason,
                "action_id": str(aborted.action_id),
                "max_depth": max_depth,
            },
        )
        return ProjectionResult(
            milestone_id=milestone.id,
            projected_date=milestone.planned_date,
            slip_days=0,
            degraded=True,
            reasons=tuple(projector.reasons) + (aborted.reason,),
        )

    projected = max([milestone.planned_date, *completions])
    slip_days = max(0, (projected - milestone.planned_date).days)

    if projector.reasons:
        logger.warning(
            "projection_degraded",
            extra={
                "milestone_id": str(milestone.id),
                "reason": ",".join(projector.reasons),
            },
        )

    return ProjectionResult(
        milestone_id=milestone.id,
        projected_date=projected,
        slip_days=slip_days,
        degraded=bool(projector.reasons),
        reasons=tuple(projector.reasons),
    )
