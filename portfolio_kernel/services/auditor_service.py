"""
Hash-chained audit trail of derived-field writes.

Every value the engine rewrites (a status, a projected date, a score, a
shifted window, a removed duplicate budget line) is recorded here as one
``AuditEvent`` carrying ``field``, ``old_value`` and ``new_value``.  Each
event's hash covers its identity, the hash of its payload and the hash of
the event before it:

    hash = H(entity_type | entity_id | action | payload_hash | prev_hash)

so rewriting or dropping any row breaks every later link, which
``validate_chain`` reports as ``AuditChainBrokenError``.

The service flushes but never commits; the caller owns the transaction.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import AuditEntry, EntityType
from portfolio_kernel.exceptions import AuditChainBrokenError
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.models.audit_event import AuditAction, AuditEvent
from portfolio_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


class AuditSink(Protocol):
    """Where services send field changes."""

    def append(
        self,
        entry: AuditEntry,
        action: AuditAction = AuditAction.DERIVED_FIELD_UPDATED,
    ) -> Any: ...


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str

    @property
    def field(self) -> str | None:
        return self.payload.get("field")


@dataclass(frozen=True)
class AuditTrace:
    """Audit history of one record, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _event_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


def _first_break(events: Iterable[AuditEvent]) -> tuple[AuditEvent, str, str] | None:
    """(event, expected, actual) of the first inconsistency, or None."""
    previous_hash: str | None = None
    for event in events:
        if event.prev_hash != previous_hash:
            return event, previous_hash or "None", event.prev_hash or "None"
        recomputed_payload = hash_payload(event.payload or {})
        if recomputed_payload != event.payload_hash:
            return event, event.payload_hash, recomputed_payload
        recomputed = _event_hash(event)
        if recomputed != event.hash:
            return event, recomputed, event.hash
        previous_hash = event.hash
    return None


class AuditorService:
    """
    Appends to and verifies the audit chain.

    The engine is the chain's only writer, so the next ``seq`` and
    ``prev_hash`` are read from the current last event.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _head(self) -> AuditEvent | None:
        return self._session.scalars(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).first()

    def append(
        self,
        entry: AuditEntry,
        action: AuditAction = AuditAction.DERIVED_FIELD_UPDATED,
    ) -> AuditEvent:
        """Chain one field change onto the trail and flush it."""
        head = self._head()
        payload = to_json_safe({
            "field": entry.field,
            "old_value": entry.old_value,
            "new_value": entry.new_value,
        })

        event = AuditEvent(
            seq=head.seq + 1 if head else 1,
            entity_type=EntityType(entry.entity_type).value,
            entity_id=entry.entity_id,
            action=action.value,
            actor_id=entry.actor,
            occurred_at=entry.timestamp or self._clock.now(),
            payload=payload,
            payload_hash=hash_payload(payload),
            prev_hash=head.hash if head else None,
        )
        event.hash = _event_hash(event)

        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": event.entity_type,
                "entity_id": str(event.entity_id),
                "action": event.action,
                "field": entry.field,
                "seq": event.seq,
            },
        )
        return event

    def validate_chain(self) -> bool:
        """
        Recompute every link from the first event.

        Returns True for an intact (or empty) chain.

        Raises:
            AuditChainBrokenError: at the first event whose payload hash,
                own hash or link to its predecessor does not match.
        """
        events = self._session.scalars(select(AuditEvent).order_by(AuditEvent.seq)).all()

        broken = _first_break(events)
        if broken is not None:
            event, expected, actual = broken
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(str(event.id), expected, actual)

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def trace(self, entity_type: EntityType, entity_id: UUID) -> AuditTrace:
        type_value = EntityType(entity_type).value
        events = self._session.scalars(
            select(AuditEvent)
            .where(AuditEvent.entity_type == type_value, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        )
        return AuditTrace(
            entity_type=type_value,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=AuditAction(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(AuditEvent)) or 0
