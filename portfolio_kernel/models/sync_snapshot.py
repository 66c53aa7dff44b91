"""
Module: portfolio_kernel.models.sync_snapshot
Responsibility: ORM persistence for daily synchronization snapshots.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - One snapshot per calendar day (UNIQUE taken_on).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_kernel.db.base import TrackedBase
from portfolio_kernel.domain.values import SyncSnapshot


class SyncSnapshotModel(TrackedBase):
    """Persistent synchronization snapshot."""

    __tablename__ = "sync_snapshots"

    __table_args__ = (
        UniqueConstraint("taken_on", name="uq_sync_snapshot_day"),
    )

    taken_on: Mapped[date] = mapped_column(nullable=False)
    technical_progress: Mapped[Decimal] = mapped_column(nullable=False)
    mobilization_progress: Mapped[Decimal] = mapped_column(nullable=False)
    gap: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> SyncSnapshot:
        return SyncSnapshot(
            id=self.id,
            taken_on=self.taken_on,
            technical_progress=Decimal(self.technical_progress),
            mobilization_progress=Decimal(self.mobilization_progress),
            gap=Decimal(self.gap),
        )

    @classmethod
    def from_dto(cls, dto: SyncSnapshot, created_by_id: UUID) -> SyncSnapshotModel:
        return cls(
            id=dto.id,
            taken_on=dto.taken_on,
            technical_progress=dto.technical_progress,
            mobilization_progress=dto.mobilization_progress,
            gap=dto.gap,
            created_by_id=created_by_id,
        )
