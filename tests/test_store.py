"""Tests for queue persistence."""

import json
import os
import time
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from ride_retry.errors import QueueBusyError, ValidationError
from ride_retry.retry_queue import remove_item
from ride_retry.store import QueueStore


class TestLoadSave:
    """Snapshot persistence."""

    def test_missing_file_is_empty_queue(self, store: QueueStore) -> None:
        assert store.load() == []

    def test_save_then_load(self, store: QueueStore, make_item) -> None:
        items = [make_item("a"), make_item("b", attempt_count=2, last_error="boom")]
        store.save(items)
        assert store.load() == items

    def test_terminal_item_persists(self, store: QueueStore, make_item) -> None:
        store.save([make_item(attempt_count=3, next_retry_at=None)])
        [item] = store.load()
        assert item.next_retry_at is None
        assert item.status == "failed"

    def test_camel_case_on_disk(self, store: QueueStore, make_item) -> None:
        store.save([make_item("a")])

        data = json.loads(store.queue_path.read_text())

        assert "updated_at" in data
        record = data["items"][0]
        assert record["rideUrl"] == "https://ridewithgps.com/events/a"
        assert record["nextRetryAt"] == record["enqueuedAt"] + 5 * 60 * 1000
        assert record["attemptCount"] == 0
        assert "ride_url" not in record

    def test_no_temp_file_left(self, store: QueueStore, make_item) -> None:
        store.save([make_item()])
        assert [p.name for p in store.queue_path.parent.iterdir()] == ["queue.json"]

    def test_creates_parent_directory(self, tmp_path: Path, make_item) -> None:
        store = QueueStore(tmp_path / "data" / "queue.json")
        store.save([make_item()])
        assert store.queue_path.exists()

    def test_unknown_keys_ignored(self, store: QueueStore, make_item) -> None:
        store.save([make_item("a")])
        data = json.loads(store.queue_path.read_text())
        data["items"][0]["legacyField"] = "x"
        store.queue_path.write_text(json.dumps(data))

        assert store.load()[0].id == "a"


    def test_updated_at_is_utc(self, store: QueueStore, make_item) -> None:
        store.save([make_item()])
        stamp = json.loads(store.queue_path.read_text())["updated_at"]
        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        assert parsed.utcoffset() == timedelta(0)

    def test_null_context_fields_load(self, store: QueueStore) -> None:
        store.queue_path.write_text(json.dumps({
            "items": [{
                "id": "x",
                "type": "delete",
                "rideUrl": "https://ridewithgps.com/events/2",
                "calendarId": None,
                "rideTitle": None,
                "rowNum": None,
                "userEmail": None,
                "params": None,
                "enqueuedAt": 1_768_039_200_000,
                "attemptCount": 0,
                "nextRetryAt": 1_768_039_500_000,
                "lastError": None,
            }],
        }))

        [item] = store.load()

        assert item.ride_title == ""
        assert item.calendar_id == ""
        assert item.params == {}

    def test_corrupt_json_raises_validation_error(self, store: QueueStore) -> None:
        store.queue_path.write_text("{not json")
        with pytest.raises(ValidationError, match="not valid JSON"):
            store.load()

    def test_invalid_item_raises_validation_error(self, store: QueueStore) -> None:
        store.queue_path.write_text(json.dumps({"items": [{"id": "x", "type": "move"}]}))
        with pytest.raises(ValidationError, match="Invalid queue file"):
            store.load()

class TestTransaction:
    """Load once, save once."""

    def test_saves_on_clean_exit(self, store: QueueStore, make_item) -> None:
        store.save([make_item("a"), make_item("b")])

        with store.transaction() as txn:
            txn.items = remove_item(txn.items, "a")

        assert [i.id for i in store.load()] == ["b"]

    def test_no_save_on_exception(self, store: QueueStore, make_item) -> None:
        store.save([make_item("a")])

        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.items = []
                raise RuntimeError("boom")

        assert [i.id for i in store.load()] == ["a"]

    def test_creates_file_for_empty_queue(self, store: QueueStore) -> None:
        with store.transaction():
            pass
        assert store.queue_path.exists()
        assert store.load() == []


class TestProcessingGuard:
    """Exclusive processing lock."""

    def test_lock_file_held_and_released(self, store: QueueStore) -> None:
        with store.processing_guard():
            assert store.lock_path.exists()
        assert not store.lock_path.exists()

    def test_second_guard_is_busy(self, store: QueueStore) -> None:
        with store.processing_guard():
            with pytest.raises(QueueBusyError):
                with store.processing_guard():
                    pass
        assert not store.lock_path.exists()

    def test_released_after_exception(self, store: QueueStore) -> None:
        with pytest.raises(ValueError):
            with store.processing_guard():
                raise ValueError("boom")
        assert not store.lock_path.exists()

    def test_recent_foreign_lock_blocks(self, store: QueueStore) -> None:
        store.lock_path.write_text("12345")
        with pytest.raises(QueueBusyError, match="already being processed"):
            with store.processing_guard():
                pass

    def test_old_lock_taken_over(self, store: QueueStore) -> None:
        store.lock_path.write_text("12345")
        old = time.time() - 2 * store.stale_lock_seconds
        os.utime(store.lock_path, (old, old))

        with pytest.warns(UserWarning, match="Removing stale processing lock"):
            with store.processing_guard():
                assert store.lock_path.read_text() == str(os.getpid())

        assert not store.lock_path.exists()

    def test_custom_stale_threshold(self, tmp_path: Path) -> None:
        store = QueueStore(tmp_path / "queue.json", stale_lock_seconds=3600)
        store.lock_path.write_text("12345")
        recent = time.time() - 1800
        os.utime(store.lock_path, (recent, recent))

        with pytest.raises(QueueBusyError):
            with store.processing_guard():
                pass
