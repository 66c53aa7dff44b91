"""
Module: portfolio_kernel.models.action
Responsibility: ORM persistence for actions (scheduled work items) and their
    prerequisite links.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - progress is within [0, 100] (CHECK constraint + DTO validation).
    - A prerequisite row is unique per (action_id, prerequisite_id).

Derived fields (written by the engine only): status, health, and the
planned_start / planned_end pair when a delay propagation is applied.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_kernel.db.base import Base, TrackedBase, UUIDString
from portfolio_kernel.domain.values import (
    Action,
    ActionHealth,
    ActionStatus,
    Axis,
    LinkKind,
    Prerequisite,
)


class ActionModel(TrackedBase):
    """Persistent action record."""

    __tablename__ = "actions"

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_action_progress"),
        Index("idx_action_axis", "axis"),
        Index("idx_action_axis_building", "axis", "building_code"),
        Index("idx_action_milestone", "milestone_id"),
        Index("idx_action_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    axis: Mapped[str] = mapped_column(String(50), nullable=False)
    building_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    planned_start: Mapped[date | None] = mapped_column(nullable=True)
    planned_end: Mapped[date | None] = mapped_column(nullable=True)
    actual_end: Mapped[date | None] = mapped_column(nullable=True)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=ActionStatus.TO_SCHEDULE.value, nullable=False,
    )
    health: Mapped[str | None] = mapped_column(String(20), nullable=True)
    milestone_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    owner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    prerequisite_links: Mapped[list["ActionPrerequisiteModel"]] = relationship(
        "ActionPrerequisiteModel",
        foreign_keys="ActionPrerequisiteModel.action_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Action {self.title!r} {self.status} {self.progress}%>"

    def to_dto(self) -> Action:
        return Action(
            id=self.id,
            title=self.title,
            axis=Axis(self.axis),
            building_code=self.building_code,
            planned_start=self.planned_start,
            planned_end=self.planned_end,
            actual_end=self.actual_end,
            progress=self.progress,
            status=ActionStatus(self.status),
            health=ActionHealth(self.health) if self.health else None,
            prerequisites=tuple(
                Prerequisite(action_id=link.prerequisite_id, kind=LinkKind(link.kind))
                for link in sorted(self.prerequisite_links, key=lambda l: str(l.prerequisite_id))
            ),
            milestone_id=self.milestone_id,
            owner_id=self.owner_id,
        )

    @classmethod
    def from_dto(cls, dto: Action, created_by_id: UUID) -> ActionModel:
        model = cls(
            id=dto.id,
            title=dto.title,
            axis=dto.axis.value,
            building_code=dto.building_code,
            planned_start=dto.planned_start,
            planned_end=dto.planned_end,
            actual_end=dto.actual_end,
            progress=dto.progress,
            status=dto.status.value,
            health=dto.health.value if dto.health else None,
            milestone_id=dto.milestone_id,
            owner_id=dto.owner_id,
            created_by_id=created_by_id,
        )
        model.set_prerequisites(dto.prerequisites)
        return model

    def set_prerequisites(self, prerequisites: tuple[Prerequisite, ...]) -> None:
        """Replace the prerequisite rows with the given links."""
        self.prerequisite_links = [
            ActionPrerequisiteModel(
                prerequisite_id=p.action_id,
                kind=LinkKind(p.kind).value,
            )
            for p in prerequisites
        ]


class ActionPrerequisiteModel(Base):
    """Dependency of an action on an upstream action."""

    __tablename__ = "action_prerequisites"

    __table_args__ = (
        UniqueConstraint("action_id", "prerequisite_id", name="uq_action_prerequisite"),
    )

    action_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("actions.id", ondelete="CASCADE"), nullable=False,
    )
    prerequisite_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(20), default=LinkKind.BLOCKING.value, nullable=False,
    )
