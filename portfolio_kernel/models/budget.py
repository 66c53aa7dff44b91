"""
Module: portfolio_kernel.models.budget
Responsibility: ORM persistence for budget ledger rows.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - Amounts are Numeric, never float.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_kernel.db.base import TrackedBase
from portfolio_kernel.domain.values import Axis, BudgetLineItem


class BudgetLineModel(TrackedBase):
    """Persistent budget line."""

    __tablename__ = "budget_lines"

    __table_args__ = (
        Index("idx_budget_axis", "axis"),
        Index("idx_budget_category", "category"),
    )

    label: Mapped[str] = mapped_column(String(300), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    axis: Mapped[str | None] = mapped_column(String(50), nullable=True)
    planned_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    committed_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    actual_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def to_dto(self) -> BudgetLineItem:
        return BudgetLineItem(
            id=self.id,
            label=self.label,
            category=self.category,
            axis=Axis(self.axis) if self.axis else None,
            planned_amount=Decimal(self.planned_amount),
            committed_amount=Decimal(self.committed_amount),
            actual_amount=Decimal(self.actual_amount),
        )

    @classmethod
    def from_dto(cls, dto: BudgetLineItem, created_by_id: UUID) -> BudgetLineModel:
        return cls(
            id=dto.id,
            label=dto.label,
            category=dto.category,
            axis=dto.axis.value if dto.axis else None,
            planned_amount=dto.planned_amount,
            committed_amount=dto.committed_amount,
            actual_amount=dto.actual_amount,
            created_by_id=created_by_id,
        )
