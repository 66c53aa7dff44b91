"""
Module: portfolio_engines.synchronization
Responsibility:
    Compare the progress of the technical track with the mobilization
    track: gap, classification, per-axis detail, risk flags and trend.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - gap = technical - mobilization; a positive gap means mobilization
      is behind the technical track.
    - Averages, gaps and per-axis figures are Decimal rounded to 0.1.
    - Cancelled actions do not count towards any average.
    - Trend is None when no snapshot is old enough.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from portfolio_config.schema import SyncSettings
from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import Action, ActionStatus, Axis, SyncSnapshot

_ZERO = Decimal("0")
_TENTH = Decimal("0.1")


class SyncStatus(str, Enum):
    EN_PHASE = "en_phase"
    EN_AVANCE = "en_avance"  # mobilization ahead
    EN_RETARD = "en_retard"  # mobilization behind
    CRITIQUE = "critique"


class SyncTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


@dataclass(frozen=True)
class AxisSyncDetail:
    """Progress of one mobilization axis."""

    axis: Axis
    average_progress: Decimal
    action_count: int
    done_count: int
    gap_vs_technical: Decimal


@dataclass(frozen=True)
class SynchronizationMetrics:
    technical_progress: Decimal
    mobilization_progress: Decimal
    gap: Decimal
    status: SyncStatus
    axis_details: tuple[AxisSyncDetail, ...]
    critical_axis: Axis | None
    leading_axis: Axis | None
    waste_risk: bool
    opening_delay_risk: bool

    @property
    def abs_gap(self) -> Decimal:
        return abs(self.gap)


@dataclass(frozen=True)
class SyncTrendReport:
    trend: SyncTrend
    reference_date: date
    reference_abs_gap: Decimal
    change: Decimal


def _round(value: Decimal) -> Decimal:
    return value.quantize(_TENTH, rounding=ROUND_HALF_UP)


def average_progress(actions: Sequence[Action]) -> Decimal:
    """Mean progress of ``actions`` (unrounded); 0 when empty."""
    if not actions:
        return _ZERO
    return Decimal(sum(a.progress for a in actions)) / Decimal(len(actions))


def classify_gap(gap: Decimal, settings: SyncSettings) -> SyncStatus:
    magnitude = abs(gap)
    if magnitude <= settings.in_phase_max:
        return SyncStatus.EN_PHASE
    if magnitude <= settings.critical_above:
        return SyncStatus.EN_RETARD if gap > 0 else SyncStatus.EN_AVANCE
    return SyncStatus.CRITIQUE


@traced_engine("synchronization", "1.0")
def compute_synchronization(
    actions: Iterable[Action],
    settings: SyncSettings,
) -> SynchronizationMetrics:
    """
    Synchronization of the technical track with the mobilization track.

    ``settings`` names the technical axis, the mobilization axes and the
    gap bands.
    """
    by_axis: dict[Axis, list[Action]] = {}
    for action in actions:
        if action.status == ActionStatus.CANCELLED:
            continue
        by_axis.setdefault(action.axis, []).append(action)

    technical_raw = average_progress(by_axis.get(settings.technical_axis, []))
    mobilization_actions = [
        a for axis in settings.mobilization_axes for a in by_axis.get(axis, [])
    ]
    mobilization_raw = average_progress(mobilization_actions)

    technical = _round(technical_raw)
    mobilization = _round(mobilization_raw)
    gap = _round(technical_raw - mobilization_raw)

    details: list[AxisSyncDetail] = []
    for axis in settings.mobilization_axes:
        axis_actions = by_axis.get(axis, [])
        axis_avg = average_progress(axis_actions)
        details.append(AxisSyncDetail(
            axis=axis,
            average_progress=_round(axis_avg),
            action_count=len(axis_actions),
            done_count=sum(1 for a in axis_actions if a.status == ActionStatus.DONE),
            gap_vs_technical=_round(axis_avg - technical_raw),
        ))

    populated = [d for d in details if d.action_count > 0]
    critical_axis = leading_axis = None
    if populated:
        critical_axis = min(populated, key=lambda d: d.average_progress).axis
        leading_axis = max(populated, key=lambda d: d.average_progress).axis

    return SynchronizationMetrics(
        technical_progress=technical,
        mobilization_progress=mobilization,
        gap=gap,
        status=classify_gap(gap, settings),
        axis_details=tuple(details),
        critical_axis=critical_axis,
        leading_axis=leading_axis,
        waste_risk=gap < -settings.risk_flag_points,
        opening_delay_risk=gap > settings.risk_flag_points,
    )


@traced_engine("sync_trend", "1.0", fingerprint_fields=("current_abs_gap", "as_of"))
def compute_sync_trend(
    current_abs_gap: Decimal,
    snapshots: Iterable[SyncSnapshot],
    as_of: date,
    min_age_days: int,
    noise: Decimal,
) -> SyncTrendReport | None:
    """
    Trend of the gap magnitude against the nearest snapshot at least
    ``min_age_days`` old.
    """
    cutoff = as_of - timedelta(days=min_age_days)
    eligible = [s for s in snapshots if s.taken_on <= cutoff]
    if not eligible:
        return None

    reference = max(eligible, key=lambda s: s.taken_on)
    reference_abs = abs(reference.gap)
    change = _round(current_abs_gap - reference_abs)

    if change < -noise:
        trend = SyncTrend.IMPROVING
    elif change > noise:
        trend = SyncTrend.DEGRADING
    else:
        trend = SyncTrend.STABLE

    return SyncTrendReport(
        trend=trend,
        reference_date=reference.taken_on,
        reference_abs_gap=reference_abs,
        change=change,
    )
