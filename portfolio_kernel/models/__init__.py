"""ORM models for the portfolio engine."""

from portfolio_kernel.models.action import ActionModel, ActionPrerequisiteModel
from portfolio_kernel.models.alert import AlertModel
from portfolio_kernel.models.audit_event import AuditAction, AuditEvent
from portfolio_kernel.models.budget import BudgetLineModel
from portfolio_kernel.models.milestone import MilestoneModel, MilestonePrerequisiteModel
from portfolio_kernel.models.risk import RiskModel
from portfolio_kernel.models.sync_link import SyncLinkModel, SyncLinkTargetModel
from portfolio_kernel.models.sync_snapshot import SyncSnapshotModel

__all__ = [
    "ActionModel",
    "ActionPrerequisiteModel",
    "AlertModel",
    "AuditAction",
    "AuditEvent",
    "BudgetLineModel",
    "MilestoneModel",
    "MilestonePrerequisiteModel",
    "RiskModel",
    "SyncLinkModel",
    "SyncLinkTargetModel",
    "SyncSnapshotModel",
]
