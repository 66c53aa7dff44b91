"""
Domain values -- frozen snapshots of portfolio entities.

Responsibility:
    Immutable, ORM-free representations of the records the engine reads:
    actions, milestones, synchronization links, risks, budget lines,
    alerts and synchronization snapshots.  Engines consume these types
    exclusively; the entity store converts ORM rows into them.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import SQLAlchemy.

Invariants enforced:
    - Action progress is an integer in [0, 100].
    - Milestone projected_date defaults to planned_date.
    - Milestone slip_days is never negative.
    - Monetary amounts are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enumerations
# =============================================================================


class EntityType(str, Enum):
    """Record families held by the entity store."""

    ACTION = "action"
    MILESTONE = "milestone"
    SYNC_LINK = "sync_link"
    RISK = "risk"
    BUDGET_LINE = "budget_line"
    ALERT = "alert"
    SYNC_SNAPSHOT = "sync_snapshot"


class Axis(str, Enum):
    """Strategic workstream an entity belongs to."""

    HR = "axe1_rh"
    COMMERCIAL = "axe2_commercial"
    TECHNICAL = "axe3_technique"
    BUDGET = "axe4_budget"
    MARKETING = "axe5_marketing"
    OPERATIONS = "axe6_exploitation"


class LinkKind(str, Enum):
    """Strength of a dependency between two entities."""

    BLOCKING = "blocking"
    INFORMATIVE = "informative"


class ActionStatus(str, Enum):
    """Lifecycle status of an action."""

    TO_SCHEDULE = "to_schedule"
    PLANNED = "planned"
    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"  # manual
    BLOCKED = "blocked"  # manual
    IN_VALIDATION = "in_validation"  # manual
    DONE = "done"  # reached iff progress == 100
    CANCELLED = "cancelled"  # manual, terminal
    POSTPONED = "postponed"  # manual


AUTOMATIC_ACTION_STATUSES: frozenset[ActionStatus] = frozenset({
    ActionStatus.TO_SCHEDULE,
    ActionStatus.PLANNED,
    ActionStatus.TO_DO,
    ActionStatus.IN_PROGRESS,
})

MANUAL_ACTION_STATUSES: frozenset[ActionStatus] = frozenset({
    ActionStatus.WAITING,
    ActionStatus.BLOCKED,
    ActionStatus.IN_VALIDATION,
    ActionStatus.POSTPONED,
})


class ActionHealth(str, Enum):
    """Color signal of an action's schedule risk."""

    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"
    BLUE = "blue"  # waiting on someone else
    GREY = "grey"  # not started / not scheduled


class MilestoneStatus(str, Enum):
    """Lifecycle status of a milestone (jalon)."""

    A_VENIR = "a_venir"
    EN_APPROCHE = "en_approche"
    EN_DANGER = "en_danger"
    ATTEINT = "atteint"  # manual, terminal
    DEPASSE = "depasse"
    ANNULE = "annule"  # manual, terminal


TERMINAL_MILESTONE_STATUSES: frozenset[MilestoneStatus] = frozenset({
    MilestoneStatus.ATTEINT,
    MilestoneStatus.ANNULE,
})


class RiskStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Entities
# =============================================================================


@dataclass(frozen=True)
class Prerequisite:
    """Reference to an upstream action and the strength of the dependency."""

    action_id: UUID
    kind: LinkKind = LinkKind.BLOCKING

    @property
    def is_blocking(self) -> bool:
        return self.kind == LinkKind.BLOCKING


@dataclass(frozen=True)
class Action:
    """
    Immutable snapshot of a scheduled work item.

    ``planned_start`` / ``planned_end`` may be missing for actions that
    have not been scheduled yet.
    """

    id: UUID
    title: str
    axis: Axis
    building_code: str | None = None
    planned_start: date | None = None
    planned_end: date | None = None
    actual_end: date | None = None
    progress: int = 0
    status: ActionStatus = ActionStatus.TO_SCHEDULE
    health: ActionHealth | None = None
    prerequisites: tuple[Prerequisite, ...] = ()
    milestone_id: UUID | None = None
    owner_id: UUID | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.progress <= 100:
            raise ValueError(
                f"Action progress must be within [0, 100], got {self.progress}"
            )

    @property
    def is_closed(self) -> bool:
        """True when the action is done or cancelled."""
        return self.status in (ActionStatus.DONE, ActionStatus.CANCELLED)

    @property
    def effective_end(self) -> date | None:
        """Actual end when recorded, planned end otherwise."""
        return self.actual_end or self.planned_end

    @property
    def duration_days(self) -> int:
        if self.planned_start is None or self.planned_end is None:
            return 0
        return max(0, (self.planned_end - self.planned_start).days)


@dataclass(frozen=True)
class Milestone:
    """Immutable snapshot of a milestone (jalon)."""

    id: UUID
    title: str
    axis: Axis
    planned_date: date
    projected_date: date | None = None
    status: MilestoneStatus = MilestoneStatus.A_VENIR
    prerequisites: tuple[Prerequisite, ...] = ()
    slip_days: int = 0

    def __post_init__(self) -> None:
        if self.projected_date is None:
            object.__setattr__(self, "projected_date", self.planned_date)
        if self.slip_days < 0:
            raise ValueError(f"slip_days cannot be negative, got {self.slip_days}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MILESTONE_STATUSES


@dataclass(frozen=True)
class SyncLink:
    """
    Link from a technical-track action to one or more mobilization actions.

    Only ``BLOCKING`` links carry delay propagation.
    """

    id: UUID
    source_action_id: UUID
    target_action_ids: tuple[UUID, ...]
    lag_days: int = 0
    kind: LinkKind = LinkKind.BLOCKING

    @property
    def propagates_delay(self) -> bool:
        return self.kind == LinkKind.BLOCKING


@dataclass(frozen=True)
class Risk:
    """Immutable snapshot of a risk register entry."""

    id: UUID
    title: str
    probability: int
    impact: int
    score: int | None = None
    status: RiskStatus = RiskStatus.OPEN
    axis: Axis | None = None
    building_code: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status != RiskStatus.CLOSED


@dataclass(frozen=True)
class BudgetLineItem:
    """Immutable snapshot of a budget ledger row."""

    id: UUID
    label: str
    category: str
    axis: Axis | None
    planned_amount: Decimal = Decimal("0")
    committed_amount: Decimal = Decimal("0")
    actual_amount: Decimal = Decimal("0")

    @property
    def duplicate_key(self) -> tuple:
        """Fields that make two rows redundant copies of each other."""
        return (
            self.label.strip().lower(),
            self.category,
            self.axis,
            self.planned_amount,
            self.committed_amount,
            self.actual_amount,
        )


@dataclass(frozen=True)
class AlertRecord:
    """Immutable snapshot of a raised alert."""

    id: UUID
    entity_type: EntityType
    entity_id: UUID
    condition_kind: str
    severity: AlertSeverity
    payload: dict[str, Any] = field(default_factory=dict)
    resolved: bool = False
    raised_at: datetime | None = None


@dataclass(frozen=True)
class SyncSnapshot:
    """Stored daily record of track progress, used for trend computation."""

    id: UUID
    taken_on: date
    technical_progress: Decimal
    mobilization_progress: Decimal
    gap: Decimal


@dataclass(frozen=True)
class AuditEntry:
    """One derived-field or propagation mutation, as handed to the audit sink."""

    timestamp: datetime
    entity_type: EntityType
    entity_id: UUID
    field: str
    old_value: Any
    new_value: Any
    actor: UUID
