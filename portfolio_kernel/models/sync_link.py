"""
Module: portfolio_kernel.models.sync_link
Responsibility: ORM persistence for synchronization links between a
    technical-track action and the mobilization actions that depend on it.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_kernel.db.base import Base, TrackedBase, UUIDString
from portfolio_kernel.domain.values import LinkKind, SyncLink


class SyncLinkModel(TrackedBase):
    """Persistent synchronization link."""

    __tablename__ = "sync_links"

    __table_args__ = (
        Index("idx_sync_link_source", "source_action_id"),
    )

    source_action_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    lag_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    kind: Mapped[str] = mapped_column(
        String(20), default=LinkKind.BLOCKING.value, nullable=False,
    )

    targets: Mapped[list["SyncLinkTargetModel"]] = relationship(
        "SyncLinkTargetModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SyncLinkTargetModel.position",
    )

    def to_dto(self) -> SyncLink:
        return SyncLink(
            id=self.id,
            source_action_id=self.source_action_id,
            target_action_ids=tuple(t.target_action_id for t in self.targets),
            lag_days=self.lag_days,
            kind=LinkKind(self.kind),
        )

    @classmethod
    def from_dto(cls, dto: SyncLink, created_by_id: UUID) -> SyncLinkModel:
        model = cls(
            id=dto.id,
            source_action_id=dto.source_action_id,
            lag_days=dto.lag_days,
            kind=dto.kind.value,
            created_by_id=created_by_id,
        )
        model.set_target_action_ids(dto.target_action_ids)
        return model

    def set_target_action_ids(self, target_ids: tuple[UUID, ...]) -> None:
        """Replace the link targets, keeping the given order."""
        self.targets = [
            SyncLinkTargetModel(target_action_id=target_id, position=i)
            for i, target_id in enumerate(target_ids)
        ]


class SyncLinkTargetModel(Base):
    """One mobilization action reached by a synchronization link."""

    __tablename__ = "sync_link_targets"

    __table_args__ = (
        UniqueConstraint("sync_link_id", "target_action_id", name="uq_sync_link_target"),
        Index("idx_sync_link_target_action", "target_action_id"),
    )

    sync_link_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sync_links.id", ondelete="CASCADE"), nullable=False,
    )
    target_action_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
