"""
Module: portfolio_engines.risk
Responsibility:
    Score and classify risks, and match open risks to the actions that
    share their axis and building.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - probability and impact are within [1, 5]; score within [1, 25].
    - Classification bands come from configuration, never constants.
    - Matching is advisory: it returns values and persists nothing.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from portfolio_config.schema import RiskBands
from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import Action, Axis, Risk
from portfolio_kernel.exceptions import InvalidRiskRatingError

RATING_MIN = 1
RATING_MAX = 5


class RiskLevel(str, Enum):
    FAIBLE = "faible"
    MODERE = "modere"
    MAJEUR = "majeur"
    CRITIQUE = "critique"


@dataclass(frozen=True)
class RiskActionMatch:
    """Open risk and the actions sharing its (axis, building_code)."""

    risk_id: UUID
    axis: Axis | None
    building_code: str | None
    action_ids: tuple[UUID, ...]

    @property
    def link_count(self) -> int:
        return len(self.action_ids)


def _check_rating(field: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRiskRatingError(field, value)
    if not RATING_MIN <= value <= RATING_MAX:
        raise InvalidRiskRatingError(field, value)


def score_risk(probability: int, impact: int) -> int:
    """
    Score of a risk: probability x impact.

    Raises:
        InvalidRiskRatingError: a rating is outside [1, 5].
    """
    _check_rating("probability", probability)
    _check_rating("impact", impact)
    return probability * impact


def classify_risk(score: int, bands: RiskBands) -> RiskLevel:
    """Level of a score against the configured band lower bounds."""
    if score >= bands.critical_from:
        return RiskLevel.CRITIQUE
    if score >= bands.major_from:
        return RiskLevel.MAJEUR
    if score >= bands.moderate_from:
        return RiskLevel.MODERE
    return RiskLevel.FAIBLE


@traced_engine("risk_matching", "1.0")
def match_risks_to_actions(
    risks: Iterable[Risk],
    actions: Iterable[Action],
) -> tuple[RiskActionMatch, ...]:
    """
    Match every open risk to the actions with the same axis and building.

    Risks without an axis match nothing.  Risks with no matching action
    are omitted from the result.
    """
    by_key: dict[tuple[Axis, str | None], list[UUID]] = defaultdict(list)
    for action in actions:
        by_key[(action.axis, action.building_code)].append(action.id)

    matches: list[RiskActionMatch] = []
    for risk in risks:
        if not risk.is_open or risk.axis is None:
            continue
        action_ids = by_key.get((risk.axis, risk.building_code))
        if action_ids:
            matches.append(RiskActionMatch(
                risk_id=risk.id,
                axis=risk.axis,
                building_code=risk.building_code,
                action_ids=tuple(action_ids),
            ))
    return tuple(matches)
