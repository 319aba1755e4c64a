"""Executor interface for queued calendar operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..models.queue import QueueItem


@dataclass
class ExecutionResult:
    """Outcome of one attempt. Failures carry a message, never an exception."""

    success: bool
    error: str | None = None
    event_id: str | None = None


class OperationExecutor(ABC):
    """Performs the operation a queue item describes against an external service."""

    def execute(self, item: QueueItem) -> ExecutionResult:
        """Dispatch on the item's operation type.

        Exceptions raised by the concrete operation are turned into a failed
        result so they feed the retry loop.
        """
        handlers = {
            "create": self.create,
            "update": self.update,
            "delete": self.delete,
        }
        handler = handlers.get(item.type)
        if handler is None:
            return ExecutionResult(success=False, error=f"Unknown operation type: {item.type}")
        try:
            return handler(item)
        except Exception as e:
            return ExecutionResult(success=False, error=str(e) or type(e).__name__)

    @abstractmethod
    def create(self, item: QueueItem) -> ExecutionResult:
        """Create the calendar event for a ride."""

    @abstractmethod
    def update(self, item: QueueItem) -> ExecutionResult:
        """Update an existing calendar event (``params["eventId"]``)."""

    @abstractmethod
    def delete(self, item: QueueItem) -> ExecutionResult:
        """Delete a calendar event; an already missing event counts as success."""
