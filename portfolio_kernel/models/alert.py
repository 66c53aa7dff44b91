"""
Module: portfolio_kernel.models.alert
Responsibility: ORM persistence for automatically raised alerts.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - At most one unresolved alert per (entity_type, entity_id,
      condition_kind); maintained by AlertService.upsert().
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_kernel.db.base import TrackedBase, UUIDString
from portfolio_kernel.domain.values import AlertRecord, AlertSeverity, EntityType


class AlertModel(TrackedBase):
    """Persistent alert record."""

    __tablename__ = "alerts"

    __table_args__ = (
        Index("idx_alert_key", "entity_type", "entity_id", "condition_kind", "resolved"),
    )

    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    condition_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    raised_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> AlertRecord:
        return AlertRecord(
            id=self.id,
            entity_type=EntityType(self.entity_type),
            entity_id=self.entity_id,
            condition_kind=self.condition_kind,
            severity=AlertSeverity(self.severity),
            payload=dict(self.payload or {}),
            resolved=self.resolved,
            raised_at=self.raised_at,
        )
