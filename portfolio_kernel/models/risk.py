"""
Module: portfolio_kernel.models.risk
Responsibility: ORM persistence for the risk register.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - probability and impact are within [1, 5] (CHECK constraints).
    - score, when set, equals probability * impact (maintained by RiskService).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_kernel.db.base import TrackedBase
from portfolio_kernel.domain.values import Axis, Risk, RiskStatus


class RiskModel(TrackedBase):
    """Persistent risk record."""

    __tablename__ = "risks"

    __table_args__ = (
        CheckConstraint("probability BETWEEN 1 AND 5", name="ck_risk_probability"),
        CheckConstraint("impact BETWEEN 1 AND 5", name="ck_risk_impact"),
        Index("idx_risk_status", "status"),
        Index("idx_risk_axis_building", "axis", "building_code"),
    )

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    probability: Mapped[int] = mapped_column(Integer, nullable=False)
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=RiskStatus.OPEN.value, nullable=False,
    )
    axis: Mapped[str | None] = mapped_column(String(50), nullable=True)
    building_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self) -> Risk:
        return Risk(
            id=self.id,
            title=self.title,
            probability=self.probability,
            impact=self.impact,
            score=self.score,
            status=RiskStatus(self.status),
            axis=Axis(self.axis) if self.axis else None,
            building_code=self.building_code,
        )

    @classmethod
    def from_dto(cls, dto: Risk, created_by_id: UUID) -> RiskModel:
        return cls(
            id=dto.id,
            title=dto.title,
            probability=dto.probability,
            impact=dto.impact,
            score=dto.score,
            status=dto.status.value,
            axis=dto.axis.value if dto.axis else None,
            building_code=dto.building_code,
            created_by_id=created_by_id,
        )
