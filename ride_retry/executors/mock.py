"""In-memory calendar executor for tests and dry runs.

Keeps events in a dict keyed by calendar id and event id. Failures can be
forced globally or for specific ride URLs to exercise the retry path.
"""

import uuid
from collections.abc import Iterable

from ..models.queue import QueueItem
from .base import ExecutionResult, OperationExecutor

FORCED_FAILURE_MESSAGE = "Calendar Not Found - Forced Test Failure"


class MockExecutor(OperationExecutor):
    """Executor backed by an in-memory calendar.

    Args:
        calendars: Calendar ids that exist; any other id fails with
            "Calendar not found". None means every calendar exists.
        fail_all: Fail every attempt with FORCED_FAILURE_MESSAGE.
        failing_ride_urls: Ride URLs whose attempts always fail.
    """

    def __init__(
        self,
        calendars: Iterable[str] | None = None,
        fail_all: bool = False,
        failing_ride_urls: Iterable[str] = (),
    ) -> None:
        self.calendars = set(calendars) if calendars is not None else None
        self.fail_all = fail_all
        self.failing_ride_urls = set(failing_ride_urls)
        self.events: dict[tuple[str, str], dict] = {}
        self.attempts: list[str] = []

    def execute(self, item: QueueItem) -> ExecutionResult:
        self.attempts.append(item.id)
        if self.fail_all or item.ride_url in self.failing_ride_urls:
            return ExecutionResult(success=False, error=FORCED_FAILURE_MESSAGE)
        return super().execute(item)

    def _calendar_exists(self, calendar_id: str) -> bool:
        return self.calendars is None or calendar_id in self.calendars

    def create(self, item: QueueItem) -> ExecutionResult:
        if not self._calendar_exists(item.calendar_id):
            return ExecutionResult(success=False, error="Calendar not found")
        event_id = str(uuid.uuid4())
        self.events[(item.calendar_id, event_id)] = {
            "title": item.params.get("title", item.ride_title),
            "startTime": item.params.get("startTime"),
            "endTime": item.params.get("endTime"),
            "location": item.params.get("location"),
            "description": item.params.get("description"),
            "rideUrl": item.ride_url,
        }
        return ExecutionResult(success=True, event_id=event_id)

    def update(self, item: QueueItem) -> ExecutionResult:
        if not self._calendar_exists(item.calendar_id):
            return ExecutionResult(success=False, error="Calendar not found")
        key = (item.calendar_id, item.params.get("eventId", ""))
        if key not in self.events:
            return ExecutionResult(success=False, error="Event not found")
        for field in ("title", "startTime", "endTime", "location", "description"):
            if field in item.params:
                self.events[key][field] = item.params[field]
        return ExecutionResult(success=True, event_id=key[1])

    def delete(self, item: QueueItem) -> ExecutionResult:
        if not self._calendar_exists(item.calendar_id):
            return ExecutionResult(success=False, error="Calendar not found")
        self.events.pop((item.calendar_id, item.params.get("eventId", "")), None)
        return ExecutionResult(success=True)
