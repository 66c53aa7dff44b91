"""
ORM row of the audit trail.

One row per field the engine rewrote.  Rows are chained: each stores the
hash of the row before it, and its own hash covers its identity, its
payload hash and that link.  Only ``AuditorService`` writes here, and it
never updates or deletes.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_kernel.db.base import Base


class AuditAction(str, Enum):
    DERIVED_FIELD_UPDATED = "derived_field_updated"
    DELAY_PROPAGATED = "delay_propagated"
    BUDGET_DUPLICATE_REMOVED = "budget_duplicate_removed"


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
    )

    # position in the chain, 1 for the first row
    seq: Mapped[int] = mapped_column(unique=True, index=True)
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[UUID]
    action: Mapped[str] = mapped_column(String(50))
    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
    # {"field": ..., "old_value": ..., "new_value": ...}
    payload: Mapped[dict | None] = mapped_column(JSON)
    payload_hash: Mapped[str] = mapped_column(String(64))
    prev_hash: Mapped[str | None] = mapped_column(String(64))
    hash: Mapped[str] = mapped_column(String(64))

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
