"""
Module: portfolio_engines.propagation
Responsibility:
    Compute, without writing anything, how a late technical-track action
    shifts the mobilization-track actions linked to it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The apply step lives in
    portfolio_services.propagation_service.

Invariants enforced:
    - The preview is immutable and performs no writes.
    - Every impacted action is shifted by the full source delay; start
      and end move together so durations are preserved.
    - Only blocking links propagate; informative links are ignored.
    - An action reached through several links appears once.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import Action, EntityType, SyncLink
from portfolio_kernel.exceptions import EntityNotFoundError


@dataclass(frozen=True)
class ImpactedAction:
    """One action whose planned window moves by ``decalage_days``."""

    id: UUID
    title: str
    decalage_days: int
    new_start: date | None
    new_end: date | None
    old_start: date | None
    old_end: date | None


@dataclass(frozen=True)
class DelayPreview:
    """Read-only result of a delay computation, shown before any write."""

    source_id: UUID
    source_title: str
    retard_days: int
    impacted_actions: tuple[ImpactedAction, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.retard_days <= 0 or not self.impacted_actions


def source_delay_days(action: Action) -> int:
    """Days by which an action finished after its planned end; 0 otherwise."""
    if action.actual_end is None or action.planned_end is None:
        return 0
    return max(0, (action.actual_end - action.planned_end).days)


def _shift(value: date | None, days: int) -> date | None:
    return value + timedelta(days=days) if value is not None else None


@traced_engine("delay_preview", "1.0", fingerprint_fields=("source",))
def compute_delay_preview(
    source: Action,
    links: Iterable[SyncLink],
    targets_by_id: Mapping[UUID, Action],
) -> DelayPreview:
    """
    Preview the shift of every action linked downstream of ``source``.

    Args:
        source: The technical-track action that may be late.
        links: Synchronization links; those not sourced at ``source`` or
            not blocking are ignored.
        targets_by_id: The target actions of the links.

    Raises:
        EntityNotFoundError: a link target is absent from ``targets_by_id``.
    """
    retard_days = source_delay_days(source)
    if retard_days <= 0:
        return DelayPreview(source_id=source.id, source_title=source.title, retard_days=0)

    impacted: list[ImpactedAction] = []
    seen: set[UUID] = set()
    for link in links:
        if link.source_action_id != source.id or not link.propagates_delay:
            continue
        for target_id in link.target_action_ids:
            if target_id in seen or target_id == source.id:
                continue
            target = targets_by_id.get(target_id)
            if target is None:
                raise EntityNotFoundError(EntityType.ACTION.value, str(target_id))
            seen.add(target_id)
            impacted.append(ImpactedAction(
                id=target.id,
                title=target.title,
                decalage_days=retard_days,
                new_start=_shift(target.planned_start, retard_days),
                new_end=_shift(target.planned_end, retard_days),
                old_start=target.planned_start,
                old_end=target.planned_end,
            ))

    return DelayPreview(
        source_id=source.id,
        source_title=source.title,
        retard_days=retard_days,
        impacted_actions=tuple(impacted),
    )
