"""
Module: portfolio_engines.status
Responsibility:
    Derive the lifecycle status of milestones and actions, and the health
    color of actions, from dates, completion and manual overrides.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import portfolio_kernel/domain and portfolio_config/schema.

Invariants enforced:
    - Purity: no clock access; ``as_of`` is always passed in.
    - Manual milestone states (atteint, annule) are never overridden.
    - Manual action states (blocked, waiting, in_validation, postponed,
      cancelled) are never cleared; only progress == 100 moves a manual
      state other than cancelled, to done.
    - ``done`` holds iff progress == 100.

Usage:
    from portfolio_engines.status import derive_action_status

    status = derive_action_status(action, as_of=date(2025, 3, 1), policy=config.actions)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from portfolio_config.schema import ActionStatusPolicy, HealthPolicy, MilestoneThresholds
from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import (
    MANUAL_ACTION_STATUSES,
    Action,
    ActionHealth,
    ActionStatus,
    Milestone,
    MilestoneStatus,
)


def is_action_late(action: Action, as_of: date) -> bool:
    """
    True when an unfinished action threatens whatever depends on it.

    An action is late when it is neither done nor cancelled and it is
    blocked, past its planned end, or finished after its planned end.
    """
    if action.is_closed or action.progress == 100:
        return False
    if action.status == ActionStatus.BLOCKED:
        return True
    if action.planned_end is None:
        return False
    if action.planned_end < as_of:
        return True
    return action.actual_end is not None and action.actual_end > action.planned_end


@traced_engine("milestone_status", "1.0", fingerprint_fields=("milestone", "as_of"))
def derive_milestone_status(
    milestone: Milestone,
    prerequisites: Iterable[Action],
    as_of: date,
    thresholds: MilestoneThresholds,
) -> MilestoneStatus:
    """
    Derive the status of a milestone from its projected date.

    Args:
        milestone: The milestone; its ``projected_date`` should already be
            up to date.
        prerequisites: The prerequisite actions that could be resolved.
            Only those referenced as blocking prerequisites of the
            milestone are considered for en_danger.
        as_of: Reference day.
        thresholds: Approach and danger windows.
    """
    if milestone.is_terminal:
        return milestone.status

    days_left = (milestone.projected_date - as_of).days
    if days_left < 0:
        return MilestoneStatus.DEPASSE

    if days_left <= thresholds.danger_days:
        blocking_ids = {p.action_id for p in milestone.prerequisites if p.is_blocking}
        if any(a.id in blocking_ids and is_action_late(a, as_of) for a in prerequisites):
            return MilestoneStatus.EN_DANGER

    if days_left <= thresholds.approach_days:
        return MilestoneStatus.EN_APPROCHE
    return MilestoneStatus.A_VENIR


@traced_engine("action_status", "1.0", fingerprint_fields=("action", "as_of"))
def derive_action_status(
    action: Action,
    as_of: date,
    policy: ActionStatusPolicy,
) -> ActionStatus:
    """Derive the status of an action (see module docstring for precedence)."""
    if action.status == ActionStatus.CANCELLED:
        return ActionStatus.CANCELLED
    if action.progress == 100:
        return ActionStatus.DONE
    if action.status in MANUAL_ACTION_STATUSES:
        return action.status

    # Automatic statuses, plus a stale done whose progress was lowered.
    if action.planned_start is None or action.planned_end is None:
        return ActionStatus.TO_SCHEDULE
    if policy.in_progress_on_progress and action.progress > 0:
        return ActionStatus.IN_PROGRESS
    if policy.in_progress_on_start and as_of >= action.planned_start:
        return ActionStatus.IN_PROGRESS
    if (action.planned_start - as_of).days <= policy.to_do_window_days:
        return ActionStatus.TO_DO
    return ActionStatus.PLANNED


@traced_engine("action_health", "1.0", fingerprint_fields=("action", "status", "as_of"))
def derive_action_health(
    action: Action,
    status: ActionStatus,
    as_of: date,
    policy: HealthPolicy,
) -> ActionHealth:
    """
    Color signal of an action's schedule risk.

    Close to the deadline, an action is orange when its progress is below
    the expected curve ``100 - days_left * expected_drop_per_week / 7``.
    """
    if status == ActionStatus.BLOCKED:
        return ActionHealth.RED
    if status == ActionStatus.WAITING:
        return ActionHealth.BLUE
    if status in (ActionStatus.TO_SCHEDULE, ActionStatus.PLANNED):
        return ActionHealth.GREY
    if status in (ActionStatus.DONE, ActionStatus.CANCELLED):
        return ActionHealth.GREEN
    if action.planned_end is None:
        return ActionHealth.GREY

    days_left = (action.planned_end - as_of).days
    if days_left < 0:
        return ActionHealth.RED
    if days_left <= policy.warning_days:
        # integer form of progress < 100 - days_left * drop / 7
        if action.progress * 7 < 700 - days_left * policy.expected_drop_per_week:
            return ActionHealth.ORANGE
        return ActionHealth.YELLOW
    if days_left <= policy.watch_days and action.progress < policy.watch_progress:
        return ActionHealth.YELLOW
    return ActionHealth.GREEN
