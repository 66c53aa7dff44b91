"""
AlertService -- alert sink with dedupe-by-key upsert.

Responsibility:
    Persists automatically detected problem conditions as alerts.  The key
    of an alert is ``(entity_type, entity_id, condition_kind)``; at most one
    unresolved alert exists per key, so repeated recalculation passes never
    duplicate an alert for a condition that is still open.

Architecture position:
    Kernel > Services -- imperative shell, called by the recalculation pass.

Invariants enforced:
    - Re-raising an unresolved condition with an identical payload and
      severity performs no write.
    - Never calls ``session.commit()``.
"""

from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_kernel.domain.clock import Clock, SystemClock
from portfolio_kernel.domain.values import AlertRecord, AlertSeverity, EntityType
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.models.alert import AlertModel
from portfolio_kernel.utils.hashing import to_json_safe

logger = get_logger("services.alerts")


class AlertSink(Protocol):
    """Destination for automatically raised alerts."""

    def upsert(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        condition_kind: str,
        payload: dict[str, Any],
        severity: AlertSeverity = AlertSeverity.MEDIUM,
    ) -> bool: ...

    def resolve(
        self, entity_type: EntityType, entity_id: UUID, condition_kind: str,
    ) -> bool: ...

    def open_alerts(self) -> list[AlertRecord]: ...


class AlertService:
    """
    SQLAlchemy-backed ``AlertSink``.

    Args:
        session: SQLAlchemy session.
        actor_id: Recorded as creator of raised alerts.
        clock: Clock for raised_at / resolved_at.
    """

    def __init__(self, session: Session, actor_id: UUID, clock: Clock | None = None):
        self._session = session
        self._actor_id = actor_id
        self._clock = clock or SystemClock()

    def _find_open(
        self, entity_type: EntityType, entity_id: UUID, condition_kind: str,
    ) -> AlertModel | None:
        return self._session.execute(
            select(AlertModel).where(
                AlertModel.entity_type == EntityType(entity_type).value,
                AlertModel.entity_id == entity_id,
                AlertModel.condition_kind == condition_kind,
                AlertModel.resolved.is_(False),
            )
        ).scalars().first()

    def upsert(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        condition_kind: str,
        payload: dict[str, Any],
        severity: AlertSeverity = AlertSeverity.MEDIUM,
    ) -> bool:
        """
        Raise an alert for a detected condition.

        Returns:
            True when a new alert was raised, False when an unresolved
            alert with the same key already existed.  The existing alert's
            payload and severity are refreshed only if they changed.
        """
        safe_payload = to_json_safe(payload)
        existing = self._find_open(entity_type, entity_id, condition_kind)

        if existing is not None:
            if existing.payload != safe_payload or existing.severity != severity.value:
                existing.payload = safe_payload
                existing.severity = AlertSeverity(severity).value
                existing.updated_by_id = self._actor_id
                self._session.flush()
                logger.debug(
                    "alert_refreshed",
                    extra={
                        "entity_id": str(entity_id),
                        "condition_kind": condition_kind,
                    },
                )
            return False

        alert = AlertModel(
            entity_type=EntityType(entity_type).value,
            entity_id=entity_id,
            condition_kind=condition_kind,
            severity=AlertSeverity(severity).value,
            payload=safe_payload,
            resolved=False,
            raised_at=self._clock.now(),
            created_by_id=self._actor_id,
        )
        self._session.add(alert)
        self._session.flush()

        logger.info(
            "alert_raised",
            extra={
                "entity_type": alert.entity_type,
                "entity_id": str(entity_id),
                "condition_kind": condition_kind,
                "severity": alert.severity,
            },
        )
        return True

    def resolve(
        self, entity_type: EntityType, entity_id: UUID, condition_kind: str,
    ) -> bool:
        """Mark the unresolved alert for this key as resolved.  Returns False if none."""
        existing = self._find_open(entity_type, entity_id, condition_kind)
        if existing is None:
            return False

        existing.resolved = True
        existing.resolved_at = self._clock.now()
        existing.updated_by_id = self._actor_id
        self._session.flush()

        logger.info(
            "alert_resolved",
            extra={"entity_id": str(entity_id), "condition_kind": condition_kind},
        )
        return True

    def open_alerts(self) -> list[AlertRecord]:
        rows = self._session.execute(
            select(AlertModel)
            .where(AlertModel.resolved.is_(False))
            .order_by(AlertModel.raised_at, AlertModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]
