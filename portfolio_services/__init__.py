"""
Services of the portfolio engine.

Each service reads domain values from an ``EntityStore``, calls the pure
engines, and writes back only derived fields, auditing every mutation.
Services never commit; the caller owns the transaction boundary.
"""

from portfolio_services.performance_service import PerformanceService, SynchronizationReport
from portfolio_services.propagation_service import DelayPropagationService, PropagationResult
from portfolio_services.recalculation_service import (
    RecalculationService,
    SkippedEntity,
    StepOutcome,
)
from portfolio_services.risk_service import RiskEvaluationSummary, RiskLinkSummary, RiskService

__all__ = [
    "DelayPropagationService",
    "PerformanceService",
    "PropagationResult",
    "RecalculationService",
    "RiskEvaluationSummary",
    "RiskLinkSummary",
    "RiskService",
    "SkippedEntity",
    "StepOutcome",
    "SynchronizationReport",
]
