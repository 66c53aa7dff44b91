"""
Pure domain layer.

Immutable snapshots and the clock abstraction, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from portfolio_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from portfolio_kernel.domain.values import (
    Action,
    ActionHealth,
    ActionStatus,
    AlertRecord,
    AlertSeverity,
    AuditEntry,
    Axis,
    BudgetLineItem,
    EntityType,
    LinkKind,
    Milestone,
    MilestoneStatus,
    Prerequisite,
    Risk,
    RiskStatus,
    SyncLink,
    SyncSnapshot,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Action",
    "ActionHealth",
    "ActionStatus",
    "AlertRecord",
    "AlertSeverity",
    "AuditEntry",
    "Axis",
    "BudgetLineItem",
    "EntityType",
    "LinkKind",
    "Milestone",
    "MilestoneStatus",
    "Prerequisite",
    "Risk",
    "RiskStatus",
    "SyncLink",
    "SyncSnapshot",
]
