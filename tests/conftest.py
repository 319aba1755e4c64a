"""Pytest fixtures for ride_retry tests."""

from pathlib import Path

import pytest

from ride_retry.audit import AuditLogger
from ride_retry.clock import MINUTE_MS
from ride_retry.host import FileHost
from ride_retry.models.queue import QueueItem
from ride_retry.store import QueueStore
from ride_retry.trigger_manager import TriggerManager

# 2026-01-10T10:00:00Z
T0 = 1_768_039_200_000
OWNER = "owner@club.example"


@pytest.fixture
def t0() -> int:
    """Fixed enqueue time for deterministic tests."""
    return T0


@pytest.fixture
def make_item():
    """Factory for queue items with sensible defaults."""

    def _make(
        item_id: str = "item-1",
        enqueued_at: int = T0,
        attempt_count: int = 0,
        next_retry_at: int | None = -1,
        **overrides,
    ) -> QueueItem:
        if next_retry_at == -1:
            next_retry_at = enqueued_at + 5 * MINUTE_MS
        data = {
            "id": item_id,
            "type": "create",
            "calendar_id": "rides@club.example",
            "ride_url": f"https://ridewithgps.com/events/{item_id}",
            "ride_title": f"Ride {item_id}",
            "row_num": 12,
            "user_email": "leader@club.example",
            "params": {"title": f"Ride {item_id}", "startTime": "2026-01-11T09:00:00Z"},
            "enqueued_at": enqueued_at,
            "attempt_count": attempt_count,
            "next_retry_at": next_retry_at,
        }
        data.update(overrides)
        return QueueItem(**data)

    return _make


@pytest.fixture
def operation() -> dict:
    """A calendar create request as the scheduling code submits it."""
    return {
        "type": "create",
        "calendarId": "rides@club.example",
        "rideUrl": "https://ridewithgps.com/events/4242",
        "rideTitle": "Sat A Ride",
        "rowNum": 7,
        "userEmail": "leader@club.example",
        "params": {
            "title": "Sat A Ride",
            "startTime": "2026-01-11T09:00:00Z",
            "endTime": "2026-01-11T12:00:00Z",
            "location": "Main St Cafe",
        },
    }


@pytest.fixture
def store(tmp_path: Path) -> QueueStore:
    """QueueStore backed by a temp file."""
    return QueueStore(tmp_path / "queue.json")


@pytest.fixture
def host(tmp_path: Path) -> FileHost:
    """FileHost backed by a temp state file."""
    return FileHost(tmp_path / "host.json")


@pytest.fixture
def audit(tmp_path: Path) -> AuditLogger:
    """AuditLogger writing to a temp file."""
    return AuditLogger(tmp_path / "activity.log")


@pytest.fixture
def manager(host: FileHost, audit: AuditLogger) -> TriggerManager:
    """TriggerManager run by the owner."""
    return TriggerManager(host, host, owner_email=OWNER, current_user_email=OWNER, audit=audit)
