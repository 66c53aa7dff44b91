"""
Module: portfolio_engines.performance
Responsibility:
    Earned-value indicators (BAC, PV, EV, AC, SPI, CPI, EAC, ETC, VAC) of
    the budget ledger against schedule progress.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic; no float ever enters a computation.
    - Division by zero yields None ("not computable"), never an
      exception, NaN or infinity.
    - PV is BAC prorated by the elapsed fraction of the project window,
      clamped to [0, 1].

Usage:
    metrics = compute_earned_value(
        lines, axis_progress, window=(date(2025, 1, 1), date(2026, 1, 1)),
        as_of=date(2025, 7, 1), bands=config.performance,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from portfolio_config.schema import PerformanceBands
from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import Axis, BudgetLineItem

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_CENTS = Decimal("0.01")
_INDEX_PLACES = Decimal("0.0001")


class PerformanceBand(str, Enum):
    AHEAD = "ahead"
    ON_TRACK = "on_track"
    BEHIND = "behind"


@dataclass(frozen=True)
class EarnedValueMetrics:
    """Earned-value snapshot.  Optional fields are None when not computable."""

    bac: Decimal
    pv: Decimal
    ev: Decimal
    ac: Decimal
    spi: Decimal | None
    cpi: Decimal | None
    eac: Decimal | None
    etc: Decimal | None
    vac: Decimal | None
    spi_band: PerformanceBand | None
    cpi_band: PerformanceBand | None
    elapsed_fraction: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _index(value: Decimal) -> Decimal:
    return value.quantize(_INDEX_PLACES, rounding=ROUND_HALF_UP)


def elapsed_fraction(window: tuple[date, date] | None, as_of: date) -> Decimal:
    """Share of the project window elapsed at ``as_of``, within [0, 1]."""
    if window is None:
        return _ZERO
    start, end = window
    total = (end - start).days
    if total <= 0:
        return _ONE if as_of >= end else _ZERO
    elapsed = Decimal((as_of - start).days) / Decimal(total)
    return min(_ONE, max(_ZERO, elapsed))


def classify_index(index: Decimal | None, bands: PerformanceBands) -> PerformanceBand | None:
    if index is None:
        return None
    if index > bands.ahead_above:
        return PerformanceBand.AHEAD
    if index < bands.behind_below:
        return PerformanceBand.BEHIND
    return PerformanceBand.ON_TRACK


def earned_value_from_totals(
    bac: Decimal,
    pv: Decimal,
    ev: Decimal,
    ac: Decimal,
    bands: PerformanceBands,
    fraction: Decimal = _ZERO,
) -> EarnedValueMetrics:
    """Derive the indices from the four base amounts."""
    spi = ev / pv if pv != _ZERO else None
    cpi = ev / ac if ac != _ZERO else None
    eac = ac + (bac - ev) / cpi if cpi is not None and cpi > _ZERO else None
    etc = eac - ac if eac is not None else None
    vac = bac - eac if eac is not None else None

    return EarnedValueMetrics(
        bac=_money(bac),
        pv=_money(pv),
        ev=_money(ev),
        ac=_money(ac),
        spi=_index(spi) if spi is not None else None,
        cpi=_index(cpi) if cpi is not None else None,
        eac=_money(eac) if eac is not None else None,
        etc=_money(etc) if etc is not None else None,
        vac=_money(vac) if vac is not None else None,
        spi_band=classify_index(spi, bands),
        cpi_band=classify_index(cpi, bands),
        elapsed_fraction=_index(fraction),
    )


@traced_engine("earned_value", "1.0", fingerprint_fields=("window", "as_of"))
def compute_earned_value(
    lines: Iterable[BudgetLineItem],
    axis_progress: Mapping[Axis | None, Decimal],
    window: tuple[date, date] | None,
    as_of: date,
    bands: PerformanceBands,
) -> EarnedValueMetrics:
    """
    Earned-value indicators of the budget ledger.

    Args:
        lines: Budget ledger rows.
        axis_progress: Average action progress (0-100) per axis.  The
            ``None`` key, when present, is used for lines without an axis
            or whose axis has no actions; otherwise such lines earn 0.
        window: (start, end) of the project, or None when unknown.
        as_of: Reference day for the planned value.
        bands: SPI/CPI classification bands.
    """
    fallback = axis_progress.get(None, _ZERO)
    bac = ac = ev = _ZERO
    for line in lines:
        bac += line.planned_amount
        ac += line.actual_amount
        progress = axis_progress.get(line.axis, fallback) if line.axis else fallback
        ev += line.planned_amount * Decimal(progress) / _HUNDRED

    fraction = elapsed_fraction(window, as_of)
    pv = bac * fraction
    return earned_value_from_totals(bac, pv, ev, ac, bands, fraction)
