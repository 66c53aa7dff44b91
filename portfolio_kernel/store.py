"""
Module: portfolio_kernel.store
Responsibility: Entity store adapter -- CRUD and filtered query over the
    portfolio records, expressed in domain values rather than ORM rows.
Architecture position: Kernel > Store.  Imports models/ and domain/.
    Services and the batch layer talk to the store only through the
    ``EntityStore`` protocol.

Invariants enforced:
    - Every per-record write (update, add, delete) runs in its own
      SAVEPOINT and is flushed before returning.  A failing write leaves
      the rest of the session untouched.
    - ``transaction()`` groups writes into one all-or-nothing unit.
    - Listeners are notified only for writes that survive; changes made
      inside a rolled-back ``transaction()`` are never published.
    - Never calls ``session.commit()`` -- the caller owns the boundary.

Failure modes:
    - EntityNotFoundError on update/delete of a missing record.
    - ValueError on an unknown field name or an unsupported entity value.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_kernel.domain.values import (
    Action,
    AlertRecord,
    BudgetLineItem,
    EntityType,
    Milestone,
    Risk,
    SyncLink,
    SyncSnapshot,
)
from portfolio_kernel.exceptions import EntityNotFoundError
from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.models import (
    ActionModel,
    AlertModel,
    BudgetLineModel,
    MilestoneModel,
    RiskModel,
    SyncLinkModel,
    SyncSnapshotModel,
)

logger = get_logger("store")


_MODELS: dict[EntityType, type] = {
    EntityType.ACTION: ActionModel,
    EntityType.MILESTONE: MilestoneModel,
    EntityType.SYNC_LINK: SyncLinkModel,
    EntityType.RISK: RiskModel,
    EntityType.BUDGET_LINE: BudgetLineModel,
    EntityType.ALERT: AlertModel,
    EntityType.SYNC_SNAPSHOT: SyncSnapshotModel,
}

_DTO_TYPES: dict[type, EntityType] = {
    Action: EntityType.ACTION,
    Milestone: EntityType.MILESTONE,
    SyncLink: EntityType.SYNC_LINK,
    Risk: EntityType.RISK,
    BudgetLineItem: EntityType.BUDGET_LINE,
    AlertRecord: EntityType.ALERT,
    SyncSnapshot: EntityType.SYNC_SNAPSHOT,
}

# Fields backed by child rows rather than a column.
_COLLECTION_SETTERS: dict[str, str] = {
    "prerequisites": "set_prerequisites",
    "target_action_ids": "set_target_action_ids",
}

_READ_ONLY_FIELDS = frozenset({"id", "created_at", "created_by_id"})


class ChangeKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class StoreChange:
    """One write published to store listeners."""

    kind: ChangeKind
    entity_type: EntityType
    entity_id: UUID
    fields: tuple[str, ...]
    actor_id: UUID


StoreListener = Callable[[StoreChange], None]


class EntityStore(Protocol):
    """Persistent store consumed by the services and the recalculation pass."""

    @property
    def supports_transactions(self) -> bool: ...

    def get(self, entity_type: EntityType, entity_id: UUID) -> Any | None: ...

    def query(self, entity_type: EntityType, **filters: Any) -> list[Any]: ...

    def update(
        self, entity_type: EntityType, entity_id: UUID, fields: Mapping[str, Any],
    ) -> Any: ...

    def bulk_update(
        self,
        entity_type: EntityType,
        updates: Sequence[tuple[UUID, Mapping[str, Any]]],
    ) -> int: ...

    def add(self, entity: Any) -> Any: ...

    def delete(self, entity_type: EntityType, entity_id: UUID) -> None: ...

    def transaction(self) -> Any: ...

    def subscribe(self, listener: StoreListener) -> Callable[[], None]: ...


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class SqlEntityStore:
    """
    ``EntityStore`` backed by a SQLAlchemy session.

    Args:
        session: SQLAlchemy session.  Not committed by the store.
        actor_id: Recorded as creator/updater of every row written.
    """

    def __init__(self, session: Session, actor_id: UUID):
        self._session = session
        self._actor_id = actor_id
        self._listeners: list[StoreListener] = []
        self._tx_depth = 0
        self._pending: list[StoreChange] = []

    @property
    def supports_transactions(self) -> bool:
        return True

    @property
    def actor_id(self) -> UUID:
        return self._actor_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_type: EntityType, entity_id: UUID) -> Any | None:
        model = self._session.get(self._model_for(entity_type), entity_id)
        return model.to_dto() if model is not None else None

    def query(self, entity_type: EntityType, **filters: Any) -> list[Any]:
        """
        Return every record of ``entity_type`` matching all ``filters``.

        A filter value that is a list, tuple, set or frozenset matches any
        of its members; other values match by equality.  Results are in
        insertion order.
        """
        model_cls = self._model_for(entity_type)
        stmt = select(model_cls)
        for name, value in filters.items():
            column = getattr(model_cls, name, None)
            if column is None:
                raise ValueError(f"{entity_type.value} has no field '{name}'")
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_([_column_value(v) for v in value]))
            else:
                stmt = stmt.where(column == _column_value(value))
        stmt = stmt.order_by(model_cls.created_at, model_cls.id)
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update(
        self, entity_type: EntityType, entity_id: UUID, fields: Mapping[str, Any],
    ) -> Any:
        """Write ``fields`` onto one record and return its new snapshot."""
        model = self._session.get(self._model_for(entity_type), entity_id)
        if model is None:
            raise EntityNotFoundError(entity_type.value, str(entity_id))

        with self._session.begin_nested():
            for name, value in fields.items():
                self._assign(model, name, value)
            model.updated_by_id = self._actor_id
            self._session.flush()

        self._publish(StoreChange(
            kind=ChangeKind.UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            fields=tuple(fields),
            actor_id=self._actor_id,
        ))
        return model.to_dto()

    def bulk_update(
        self,
        entity_type: EntityType,
        updates: Sequence[tuple[UUID, Mapping[str, Any]]],
    ) -> int:
        """Apply several updates in order; returns the number written."""
        count = 0
        for entity_id, fields in updates:
            self.update(entity_type, entity_id, fields)
            count += 1
        return count

    def add(self, entity: Any) -> Any:
        entity_type = _DTO_TYPES.get(type(entity))
        if entity_type is None or entity_type == EntityType.ALERT:
            raise ValueError(f"Cannot add {type(entity).__name__} through the store")

        model = self._model_for(entity_type).from_dto(entity, created_by_id=self._actor_id)
        with self._session.begin_nested():
            self._session.add(model)
            self._session.flush()

        self._publish(StoreChange(
            kind=ChangeKind.ADDED,
            entity_type=entity_type,
            entity_id=model.id,
            fields=(),
            actor_id=self._actor_id,
        ))
        return model.to_dto()

    def delete(self, entity_type: EntityType, entity_id: UUID) -> None:
        model = self._session.get(self._model_for(entity_type), entity_id)
        if model is None:
            raise EntityNotFoundError(entity_type.value, str(entity_id))

        with self._session.begin_nested():
            self._session.delete(model)
            self._session.flush()

        self._publish(StoreChange(
            kind=ChangeKind.DELETED,
            entity_type=entity_type,
            entity_id=entity_id,
            fields=(),
            actor_id=self._actor_id,
        ))

    @contextmanager
    def transaction(self) -> Iterator[SqlEntityStore]:
        """
        Group writes into one all-or-nothing unit.

        On exception the SAVEPOINT is rolled back, queued change
        notifications are dropped and the exception propagates.
        """
        mark = len(self._pending)
        self._tx_depth += 1
        try:
            with self._session.begin_nested():
                yield self
        except Exception:
            del self._pending[mark:]
            raise
        finally:
            self._tx_depth -= 1

        if self._tx_depth == 0:
            pending, self._pending = self._pending, []
            for change in pending:
                self._notify(change)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` for every published write; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _model_for(entity_type: EntityType) -> type:
        return _MODELS[EntityType(entity_type)]

    def _assign(self, model: Any, name: str, value: Any) -> None:
        if name in _READ_ONLY_FIELDS:
            raise ValueError(f"Field '{name}' cannot be updated")

        setter = _COLLECTION_SETTERS.get(name)
        if setter is not None:
            if not hasattr(model, setter):
                raise ValueError(f"{type(model).__name__} has no field '{name}'")
            # Flush the removal first so re-added child rows don't collide
            # with the unique constraint.
            getattr(model, setter)(())
            self._session.flush()
            getattr(model, setter)(tuple(value))
            return

        if not hasattr(type(model), name):
            raise ValueError(f"{type(model).__name__} has no field '{name}'")
        setattr(model, name, _column_value(value))

    def _publish(self, change: StoreChange) -> None:
        if self._tx_depth > 0:
            self._pending.append(change)
        else:
            self._notify(change)

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                # The write already happened; a listener failure must not
                # be reported as a failed write.
                logger.exception(
                    "store_listener_failed",
                    extra={
                        "entity_type": change.entity_type.value,
                        "entity_id": str(change.entity_id),
                    },
                )
