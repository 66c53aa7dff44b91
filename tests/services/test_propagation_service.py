"""
Tests for DelayPropagationService -- preview / confirm / apply.

Covers the confirmation gate, stale previews, missing records, the
all-or-nothing apply on a transactional store and the sequential apply
on a store without transactions.
"""

from contextlib import contextmanager
from uuid import uuid4

import pytest

from portfolio_kernel.domain.values import Axis, EntityType, SyncLink
from portfolio_kernel.exceptions import (
    EntityNotFoundError,
    PropagationNotConfirmedError,
    StalePreviewError,
)
from portfolio_kernel.models.audit_event import AuditAction
from portfolio_services.propagation_service import DelayPropagationService
from tests.factories import days, make_action


@pytest.fixture
def service(store, auditor, clock):
    return DelayPropagationService(store, auditor, clock)


@pytest.fixture
def portfolio(store):
    """A technical action finished 5 days late, linked to 3 mobilization actions."""
    source = store.add(make_action(
        title="Structural works", planned_end=days(10), actual_end=days(15), progress=100,
    ))
    targets = [
        store.add(make_action(
            title=f"Mobilization {i}",
            axis=Axis.HR,
            planned_start=days(20 + i),
            planned_end=days(30 + i),
        ))
        for i in range(3)
    ]
    store.add(SyncLink(
        id=uuid4(),
        source_action_id=source.id,
        target_action_ids=tuple(t.id for t in targets),
        lag_days=2,
    ))
    return source, targets


class TestPreview:

    def test_preview_writes_nothing(self, service, store, auditor, portfolio):
        source, targets = portfolio

        preview = service.preview_delay(source.id)

        assert preview.retard_days == 5
        assert {i.id for i in preview.impacted_actions} == {t.id for t in targets}
        for target in targets:
            assert store.get(EntityType.ACTION, target.id) == target
        assert auditor.count() == 0

    def test_unknown_source(self, service):
        with pytest.raises(EntityNotFoundError):
            service.preview_delay(uuid4())

    def test_missing_link_target(self, service, store, portfolio):
        source, targets = portfolio
        store.delete(EntityType.ACTION, targets[1].id)
        with pytest.raises(EntityNotFoundError):
            service.preview_delay(source.id)


class TestApply:

    def test_apply_requires_confirmation(self, service, store, portfolio, actor_id):
        source, targets = portfolio
        preview = service.preview_delay(source.id)

        for confirmed in (False, "yes", 1):
            with pytest.raises(PropagationNotConfirmedError):
                service.apply_delay(preview, actor_id, confirmed=confirmed)

        assert store.get(EntityType.ACTION, targets[0].id).planned_start == days(20)

    def test_confirmed_apply_shifts_every_target(self, service, store, auditor, portfolio, actor_id):
        source, targets = portfolio
        preview = service.preview_delay(source.id)

        result = service.apply_delay(preview, actor_id, confirmed=True)

        assert result.applied_count == 3
        assert result.fully_applied
        for i, target in enumerate(targets):
            stored = store.get(EntityType.ACTION, target.id)
            assert stored.planned_start == days(25 + i)
            assert stored.planned_end == days(35 + i)

            [audit] = auditor.trace(EntityType.ACTION, target.id).entries
            assert audit.action == AuditAction.DELAY_PROPAGATED
            assert audit.actor_id == actor_id
            assert audit.payload["field"] == "planned_window"
            assert audit.payload["new_value"]["decalage_days"] == 5
            assert audit.payload["new_value"]["source_id"] == str(source.id)

    def test_stale_preview_is_refused(self, service, store, portfolio, actor_id):
        source, targets = portfolio
        preview = service.preview_delay(source.id)
        store.update(EntityType.ACTION, source.id, {"actual_end": days(18)})

        with pytest.raises(StalePreviewError):
            service.apply_delay(preview, actor_id, confirmed=True)

        assert store.get(EntityType.ACTION, targets[0].id).planned_start == days(20)

    def test_target_deleted_after_preview(self, service, store, auditor, portfolio, actor_id):
        source, targets = portfolio
        preview = service.preview_delay(source.id)
        store.delete(EntityType.ACTION, targets[2].id)

        with pytest.raises(EntityNotFoundError):
            service.apply_delay(preview, actor_id, confirmed=True)

        assert store.get(EntityType.ACTION, targets[0].id).planned_start == days(20)
        assert auditor.count() == 0

    def test_empty_preview_applies_nothing(self, service, store, actor_id):
        on_time = store.add(make_action(planned_end=days(10), actual_end=days(9), progress=100))
        preview = service.preview_delay(on_time.id)
        result = service.apply_delay(preview, actor_id, confirmed=True)
        assert result.applied_count == 0
        assert result.fully_applied

    def test_failure_rolls_back_every_write(self, store, auditor, clock, portfolio, actor_id):
        source, targets = portfolio
        failing = FailingOnTargetStore(store, fail_on=targets[2].id)
        service = DelayPropagationService(failing, auditor, clock)
        preview = service.preview_delay(source.id)

        result = service.apply_delay(preview, actor_id, confirmed=True)

        assert result.rolled_back
        assert result.applied_count == 0
        assert result.failed_ids == (targets[2].id,)
        for target in targets:
            assert store.get(EntityType.ACTION, target.id).planned_start == target.planned_start
        assert auditor.count() == 0


class TestSequentialApply:

    def test_failure_keeps_prior_writes(self, store, auditor, clock, portfolio, actor_id):
        source, targets = portfolio
        sequential = FailingOnTargetStore(store, fail_on=targets[1].id, transactional=False)
        service = DelayPropagationService(sequential, auditor, clock)
        preview = service.preview_delay(source.id)

        result = service.apply_delay(preview, actor_id, confirmed=True)

        assert not result.rolled_back
        assert result.applied_count == 2
        assert result.failed_ids == (targets[1].id,)
        assert store.get(EntityType.ACTION, targets[0].id).planned_start == days(25)
        assert store.get(EntityType.ACTION, targets[1].id).planned_start == days(21)
        assert store.get(EntityType.ACTION, targets[2].id).planned_start == days(27)


class FailingOnTargetStore:
    """Store wrapper whose update of one record raises."""

    def __init__(self, inner, fail_on, transactional=True):
        self._inner = inner
        self._fail_on = fail_on
        self.supports_transactions = transactional

    def get(self, entity_type, entity_id):
        return self._inner.get(entity_type, entity_id)

    def query(self, entity_type, **filters):
        return self._inner.query(entity_type, **filters)

    def update(self, entity_type, entity_id, fields):
        if entity_id == self._fail_on:
            raise RuntimeError("write refused")
        return self._inner.update(entity_type, entity_id, fields)

    @contextmanager
    def transaction(self):
        with self._inner.transaction():
            yield self
