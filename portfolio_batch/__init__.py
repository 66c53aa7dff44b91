"""
Batch layer of the portfolio engine: the full recalculation pass, its
scheduler, and the orchestrator that wires them.
"""

from portfolio_batch.orchestrator import EngineOrchestrator
from portfolio_batch.recalculation import RecalculationPass, RecalculationResult
from portfolio_batch.scheduler import RecalculationScheduler

__all__ = [
    "EngineOrchestrator",
    "RecalculationPass",
    "RecalculationResult",
    "RecalculationScheduler",
]
