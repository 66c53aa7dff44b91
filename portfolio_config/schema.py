"""
EngineConfig schema.

Typed, frozen configuration for every calculation the engine performs.
YAML documents are parsed into these types by the loader; services and
engines receive them as explicit arguments and never read configuration
on their own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from portfolio_kernel.domain.values import Axis

# ---------------------------------------------------------------------------
# Status derivation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MilestoneThresholds:
    """Day thresholds for en_approche / en_danger."""

    approach_days: int = 30
    danger_days: int = 15


@dataclass(frozen=True)
class ActionStatusPolicy:
    """
    Date-boundary rules among the automatic action statuses.

    to_do_window_days: an action starting within this many days is to_do.
    in_progress_on_start: the planned start being reached means in_progress.
    in_progress_on_progress: any recorded progress means in_progress.
    """

    to_do_window_days: int = 7
    in_progress_on_start: bool = True
    in_progress_on_progress: bool = True


@dataclass(frozen=True)
class HealthPolicy:
    """Windows of the action health signal."""

    warning_days: int = 7
    watch_days: int = 15
    watch_progress: int = 50
    expected_drop_per_week: int = 20


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PerformanceBands:
    """SPI / CPI classification: ahead above, behind below, on track between."""

    ahead_above: Decimal = Decimal("1.05")
    behind_below: Decimal = Decimal("0.95")


@dataclass(frozen=True)
class SyncSettings:
    """Track definition and gap bands of the synchronization indicator."""

    technical_axis: Axis = Axis.TECHNICAL
    mobilization_axes: tuple[Axis, ...] = (
        Axis.HR,
        Axis.COMMERCIAL,
        Axis.BUDGET,
        Axis.MARKETING,
        Axis.OPERATIONS,
    )
    in_phase_max: Decimal = Decimal("10")
    critical_above: Decimal = Decimal("20")
    risk_flag_points: Decimal = Decimal("15")
    trend_noise: Decimal = Decimal("2")
    snapshot_min_age_days: int = 7


@dataclass(frozen=True)
class ProjectWindow:
    """Planned project window used to prorate the planned value.

    When either end is missing the window is derived from the actions'
    planned dates.
    """

    start: date | None = None
    end: date | None = None


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskBands:
    """Lowest score of each risk level on the 1-25 scale."""

    moderate_from: int = 4
    major_from: int = 9
    critical_from: int = 12


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlertThresholds:
    """Detection windows for automatic alerts."""

    action_high_days: int = 1
    action_medium_days: int = 3
    action_low_days: int = 7
    milestone_approach_days: int = 30
    milestone_high_days: int = 15
    milestone_critical_days: int = 7
    budget_overrun_pct: Decimal = Decimal("5")
    budget_overrun_critical_pct: Decimal = Decimal("15")


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerSettings:
    startup_delay_seconds: float = 2.0
    interval_seconds: float = 3600.0
    max_recursion_depth: int = 50


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""

    config_id: str = "default"
    version: int = 1
    milestones: MilestoneThresholds = field(default_factory=MilestoneThresholds)
    actions: ActionStatusPolicy = field(default_factory=ActionStatusPolicy)
    health: HealthPolicy = field(default_factory=HealthPolicy)
    performance: PerformanceBands = field(default_factory=PerformanceBands)
    sync: SyncSettings = field(default_factory=SyncSettings)
    project: ProjectWindow = field(default_factory=ProjectWindow)
    risk: RiskBands = field(default_factory=RiskBands)
    alerts: AlertThresholds = field(default_factory=AlertThresholds)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
