"""
Module: portfolio_kernel.models.milestone
Responsibility: ORM persistence for milestones (jalons) and the actions they
    depend on.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - slip_days is never negative (CHECK constraint).
    - projected_date is NULL until first projected; the DTO then reports
      planned_date.

Derived fields (written by the engine only): status, projected_date,
slip_days.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_kernel.db.base import Base, TrackedBase, UUIDString
from portfolio_kernel.domain.values import (
    Axis,
    LinkKind,
    Milestone,
    MilestoneStatus,
    Prerequisite,
)


class MilestoneModel(TrackedBase):
    """Persistent milestone record."""

    __tablename__ = "milestones"

    __table_args__ = (
        CheckConstraint("slip_days >= 0", name="ck_milestone_slip"),
        Index("idx_milestone_axis", "axis"),
        Index("idx_milestone_planned", "planned_date"),
    )

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    axis: Mapped[str] = mapped_column(String(50), nullable=False)
    planned_date: Mapped[date] = mapped_column(nullable=False)
    projected_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), default=MilestoneStatus.A_VENIR.value, nullable=False,
    )
    slip_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    prerequisite_links: Mapped[list["MilestonePrerequisiteModel"]] = relationship(
        "MilestonePrerequisiteModel",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Milestone {self.title!r} {self.status} {self.planned_date}>"

    def to_dto(self) -> Milestone:
        return Milestone(
            id=self.id,
            title=self.title,
            axis=Axis(self.axis),
            planned_date=self.planned_date,
            projected_date=self.projected_date,
            status=MilestoneStatus(self.status),
            prerequisites=tuple(
                Prerequisite(action_id=link.action_id, kind=LinkKind(link.kind))
                for link in sorted(self.prerequisite_links, key=lambda l: str(l.action_id))
            ),
            slip_days=self.slip_days,
        )

    @classmethod
    def from_dto(cls, dto: Milestone, created_by_id: UUID) -> MilestoneModel:
        model = cls(
            id=dto.id,
            title=dto.title,
            axis=dto.axis.value,
            planned_date=dto.planned_date,
            projected_date=dto.projected_date,
            status=dto.status.value,
            slip_days=dto.slip_days,
            created_by_id=created_by_id,
        )
        model.set_prerequisites(dto.prerequisites)
        return model

    def set_prerequisites(self, prerequisites: tuple[Prerequisite, ...]) -> None:
        """Replace the prerequisite rows with the given links."""
        self.prerequisite_links = [
            MilestonePrerequisiteModel(action_id=p.action_id, kind=LinkKind(p.kind).value)
            for p in prerequisites
        ]


class MilestonePrerequisiteModel(Base):
    """Action that must complete before a milestone is reached."""

    __tablename__ = "milestone_prerequisites"

    __table_args__ = (
        UniqueConstraint("milestone_id", "action_id", name="uq_milestone_prerequisite"),
    )

    milestone_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False,
    )
    action_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(20), default=LinkKind.BLOCKING.value, nullable=False,
    )
