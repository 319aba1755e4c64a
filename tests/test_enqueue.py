"""Tests for adding operations to the queue."""

import pytest

from ride_retry.audit import AuditLogger
from ride_retry.clock import MINUTE_MS
from ride_retry.enqueue import enqueue_operation, new_item_id
from ride_retry.errors import ValidationError
from ride_retry.host import FileHost
from ride_retry.store import QueueStore
from ride_retry.trigger_manager import TriggerManager
from ride_retry.triggers import TriggerType

T0 = 1_768_039_200_000


class TestEnqueueOperation:
    """Persisting new queue items."""

    def test_persists_item(self, store: QueueStore, operation: dict) -> None:
        item = enqueue_operation(store, operation, T0, generate_id=lambda: "q1")

        assert item.id == "q1"
        assert store.load() == [item]

    def test_appends_in_order(self, store: QueueStore, operation: dict) -> None:
        enqueue_operation(store, operation, T0, generate_id=lambda: "q1")
        enqueue_operation(store, operation, T0 + MINUTE_MS, generate_id=lambda: "q2")

        assert [i.id for i in store.load()] == ["q1", "q2"]

    def test_default_ids_unique(self, store: QueueStore, operation: dict) -> None:
        first = enqueue_operation(store, operation, T0)
        second = enqueue_operation(store, operation, T0)
        assert first.id != second.id
        assert len(new_item_id()) == 36

    def test_invalid_operation_not_stored(self, store: QueueStore, operation: dict) -> None:
        del operation["rideUrl"]
        with pytest.raises(ValidationError):
            enqueue_operation(store, operation, T0)
        assert not store.queue_path.exists()

    def test_logged(self, store: QueueStore, operation: dict, audit: AuditLogger) -> None:
        enqueue_operation(store, operation, T0, generate_id=lambda: "q1", audit=audit)

        [entry] = audit.read_entries("ENQUEUE")
        assert entry.fields["item"] == "q1"
        assert entry.fields["type"] == "create"
        assert entry.fields["next_retry"] == "2026-01-10T10:05:00.000Z"

    def test_schedules_retry_trigger(
        self, store: QueueStore, operation: dict, manager: TriggerManager
    ) -> None:
        enqueue_operation(store, operation, T0, trigger_manager=manager)
        assert manager.scheduled_time(TriggerType.RETRY_SCHEDULED) == T0 + 5 * MINUTE_MS

    def test_later_item_keeps_trigger(
        self, store: QueueStore, operation: dict, manager: TriggerManager, host: FileHost
    ) -> None:
        enqueue_operation(store, operation, T0, trigger_manager=manager)
        enqueue_operation(store, operation, T0 + 10 * MINUTE_MS, trigger_manager=manager)

        assert manager.scheduled_time(TriggerType.RETRY_SCHEDULED) == T0 + 5 * MINUTE_MS
        assert len(host.list_triggers()) == 1

    def test_non_owner_enqueue_saves_and_warns(
        self, store: QueueStore, operation: dict, host: FileHost
    ) -> None:
        manager = TriggerManager(host, host, "owner@club.example", "leader@club.example")

        with pytest.warns(UserWarning, match="Only the owner"):
            item = enqueue_operation(store, operation, T0, trigger_manager=manager)

        assert store.load() == [item]
        assert host.list_triggers() == []

    def test_unreadable_queue_not_overwritten(self, store: QueueStore, operation: dict) -> None:
        store.queue_path.write_text("{broken")

        with pytest.raises(ValidationError):
            enqueue_operation(store, operation, T0)

        assert store.queue_path.read_text() == "{broken"
