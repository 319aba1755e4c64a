"""Lifecycle of queued ride operations over in-memory snapshots.

Every function takes a queue snapshot (a list of QueueItem) and returns a
new list or item; inputs are never modified. Callers load a snapshot, apply
any number of these transformations, and persist the result once.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .clock import HOUR_MS, MINUTE_MS, to_iso
from .errors import ValidationError
from .models.queue import (
    OPERATION_TYPES,
    AgeBuckets,
    DisplayItem,
    QueueItem,
    QueueStatistics,
)
from .retry_policy import DEFAULT_SCHEDULE, RetrySchedule, calculate_next_retry

UNKNOWN = "Unknown"

# Keys owned by the queue; an operation request cannot preset them.
_LIFECYCLE_KEYS = frozenset({
    "id",
    "enqueued_at", "enqueuedAt",
    "attempt_count", "attemptCount",
    "next_retry_at", "nextRetryAt",
    "last_error", "lastError",
})


@dataclass(frozen=True)
class FailureUpdate:
    """Outcome of recording a failed attempt."""

    updated_item: QueueItem
    should_retry: bool


def create_queue_item(
    operation: Mapping[str, Any],
    generate_id: Callable[[], str],
    get_current_time: Callable[[], int],
    schedule: RetrySchedule = DEFAULT_SCHEDULE,
) -> QueueItem:
    """Build a new queue item from an operation request.

    Args:
        operation: Operation fields; ``type`` and ``rideUrl`` (or ``ride_url``)
            are required, the rest (calendarId, rideTitle, rowNum, userEmail,
            params) are carried through untouched.
        generate_id: Returns a unique identifier for the new item.
        get_current_time: Returns the current time in epoch ms.
        schedule: Retry timing constants.

    Returns:
        QueueItem with attempt_count 0, first retry ``initial_delay_ms`` out.

    Raises:
        ValidationError: If the type or target ride URL is missing or invalid.
    """
    op_type = operation.get("type")
    if not op_type:
        raise ValidationError("Operation type is required")
    if op_type not in OPERATION_TYPES:
        raise ValidationError(
            f"Operation type must be one of {', '.join(OPERATION_TYPES)}: {op_type!r}"
        )

    ride_url = operation.get("ride_url") or operation.get("rideUrl")
    if not ride_url:
        raise ValidationError("Operation rideUrl is required")

    now = get_current_time()
    data = {k: v for k, v in operation.items() if k not in _LIFECYCLE_KEYS}
    data.update(
        id=generate_id(),
        enqueued_at=now,
        next_retry_at=now + schedule.initial_delay_ms,
        attempt_count=0,
        last_error=None,
    )

    try:
        return QueueItem.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid operation: {e}") from e


def get_due_items(queue: Sequence[QueueItem], current_time: int) -> list[QueueItem]:
    """Return items whose next retry time has arrived, in input order.

    Terminal items (no next retry time) are never due.
    """
    return [
        item
        for item in queue
        if item.next_retry_at is not None and item.next_retry_at <= current_time
    ]


def update_after_failure(
    item: QueueItem,
    error_message: str,
    current_time: int,
    schedule: RetrySchedule = DEFAULT_SCHEDULE,
) -> FailureUpdate:
    """Record a failed attempt and compute the next retry.

    The next retry is derived from the item's original ``enqueued_at``. When
    ``should_retry`` is False the returned item has no ``next_retry_at`` and
    is terminal: the caller removes it and reports it.
    """
    attempt_count = item.attempt_count + 1
    next_retry = calculate_next_retry(
        attempt_count, item.enqueued_at, current_time, schedule
    )
    updated = item.model_copy(
        update={
            "attempt_count": attempt_count,
            "last_error": error_message,
            "next_retry_at": next_retry,
        }
    )
    return FailureUpdate(updated_item=updated, should_retry=next_retry is not None)


def remove_item(queue: Sequence[QueueItem], item_id: str) -> list[QueueItem]:
    """Return a copy of the queue without the item; removing twice is harmless."""
    return [item for item in queue if item.id != item_id]


def remove_by_event_id(queue: Sequence[QueueItem], event_id: str) -> list[QueueItem]:
    """Return a copy of the queue without the items targeting calendar event ``event_id``.

    Items are matched on ``params["eventId"]``. Every pending operation for
    the event is removed.
    """
    return [item for item in queue if item.params.get("eventId") != event_id]


def update_item(queue: Sequence[QueueItem], updated_item: QueueItem) -> list[QueueItem]:
    """Return a copy of the queue with the matching item replaced."""
    return [updated_item if item.id == updated_item.id else item for item in queue]


def get_statistics(queue: Sequence[QueueItem], current_time: int) -> QueueStatistics:
    """Count items overall, due now, and by age.

    Age counts are independent thresholds, not a partition: an item aged
    10 minutes counts toward both ``less_than_1_hour`` and
    ``less_than_24_hours``.
    """
    ages = [current_time - item.enqueued_at for item in queue]
    return QueueStatistics(
        total_items=len(queue),
        due_now=len(get_due_items(queue, current_time)),
        by_age=AgeBuckets(
            less_than_1_hour=sum(1 for age in ages if age < HOUR_MS),
            less_than_24_hours=sum(1 for age in ages if age < 24 * HOUR_MS),
            more_than_24_hours=sum(1 for age in ages if age >= 24 * HOUR_MS),
        ),
    )


def format_items(queue: Sequence[QueueItem], current_time: int) -> list[DisplayItem]:
    """Map items to a display view with ages in whole minutes."""
    return [
        DisplayItem(
            id=item.id,
            type=item.type,
            ride_url=item.ride_url,
            ride_title=item.ride_title or UNKNOWN,
            row_num=item.row_num if item.row_num is not None else UNKNOWN,
            user_email=item.user_email,
            attempt_count=item.attempt_count,
            status=item.status,
            enqueued_at=to_iso(item.enqueued_at),
            next_retry_at=to_iso(item.next_retry_at),
            age_minutes=(current_time - item.enqueued_at) // MINUTE_MS,
            last_error=item.last_error,
        )
        for item in queue
    ]


def get_next_due_time(queue: Sequence[QueueItem]) -> int | None:
    """Earliest next retry time among retryable items, or None if there are none."""
    times = [item.next_retry_at for item in queue if item.next_retry_at is not None]
    return min(times) if times else None


def partition_terminal(
    queue: Sequence[QueueItem],
) -> tuple[list[QueueItem], list[QueueItem]]:
    """Split a snapshot into (retryable, exhausted) items, preserving order."""
    live: list[QueueItem] = []
    terminal: list[QueueItem] = []
    for item in queue:
        (terminal if item.status == "failed" else live).append(item)
    return live, terminal
