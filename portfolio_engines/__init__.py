"""
Pure calculation engines of the portfolio engine.

Every function here takes domain values and configuration in and returns
values out: no database, no clock, no I/O.
"""

from portfolio_engines.alerts import AlertCondition, detect_alert_conditions
from portfolio_engines.budget import DuplicateBudgetLine, find_duplicate_budget_lines
from portfolio_engines.performance import (
    EarnedValueMetrics,
    PerformanceBand,
    compute_earned_value,
)
from portfolio_engines.projection import ProjectionResult, project_milestone
from portfolio_engines.propagation import (
    DelayPreview,
    ImpactedAction,
    compute_delay_preview,
    source_delay_days,
)
from portfolio_engines.risk import (
    RiskActionMatch,
    RiskLevel,
    classify_risk,
    match_risks_to_actions,
    score_risk,
)
from portfolio_engines.status import (
    derive_action_health,
    derive_action_status,
    derive_milestone_status,
    is_action_late,
)
from portfolio_engines.synchronization import (
    AxisSyncDetail,
    SynchronizationMetrics,
    SyncStatus,
    SyncTrend,
    SyncTrendReport,
    compute_sync_trend,
    compute_synchronization,
)

__all__ = [
    "AlertCondition",
    "AxisSyncDetail",
    "DelayPreview",
    "DuplicateBudgetLine",
    "EarnedValueMetrics",
    "ImpactedAction",
    "PerformanceBand",
    "ProjectionResult",
    "RiskActionMatch",
    "RiskLevel",
    "SyncStatus",
    "SyncTrend",
    "SyncTrendReport",
    "SynchronizationMetrics",
    "classify_risk",
    "compute_delay_preview",
    "compute_earned_value",
    "compute_sync_trend",
    "compute_synchronization",
    "derive_action_health",
    "derive_action_status",
    "derive_milestone_status",
    "detect_alert_conditions",
    "find_duplicate_budget_lines",
    "is_action_late",
    "match_risks_to_actions",
    "project_milestone",
    "score_risk",
    "source_delay_days",
]
