"""
Module: portfolio_engines.budget
Responsibility:
    Find budget ledger rows that are exact copies of an earlier row.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The first row of each duplicate group (in input order) is kept.
    - Two rows are duplicates when label (case and surrounding blanks
      ignored), category, axis and all three amounts are equal.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from portfolio_engines.tracer import traced_engine
from portfolio_kernel.domain.values import BudgetLineItem


@dataclass(frozen=True)
class DuplicateBudgetLine:
    """A redundant row and the row it duplicates."""

    line_id: UUID
    kept_id: UUID
    label: str


@traced_engine("budget_duplicates", "1.0")
def find_duplicate_budget_lines(
    lines: Iterable[BudgetLineItem],
) -> tuple[DuplicateBudgetLine, ...]:
    kept: dict[tuple, UUID] = {}
    duplicates: list[DuplicateBudgetLine] = []
    for line in lines:
        key = line.duplicate_key
        if key in kept:
            duplicates.append(DuplicateBudgetLine(
                line_id=line.id, kept_id=kept[key], label=line.label,
            ))
        else:
            kept[key] = line.id
    return tuple(duplicates)
