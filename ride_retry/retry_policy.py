"""Retry timing and status classification for queued ride operations.

Two-tier backoff:
- First hour after enqueue: retry every 5 minutes
- After the first hour: retry every hour
- 48 hours after enqueue: give up

Everything here is a pure function of its arguments. Callers pass the
current time explicitly.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .clock import HOUR_MS, MINUTE_MS

ItemStatus = Literal["pending", "retrying", "failed"]

INITIAL_RETRY_DELAY_MS = 5 * MINUTE_MS
FAST_RETRY_INTERVAL_MS = 5 * MINUTE_MS
SLOW_RETRY_INTERVAL_MS = 60 * MINUTE_MS
FAST_RETRY_WINDOW_MS = 1 * HOUR_MS
MAX_RETRY_AGE_MS = 48 * HOUR_MS


class RetrySchedule(BaseModel):
    """Tunable retry timing. Defaults must stay compatible with stored queues."""

    model_config = ConfigDict(frozen=True, extra="forbid")
    initial_delay_ms: int = Field(default=INITIAL_RETRY_DELAY_MS, gt=0)
    fast_interval_ms: int = Field(default=FAST_RETRY_INTERVAL_MS, gt=0)
    slow_interval_ms: int = Field(default=SLOW_RETRY_INTERVAL_MS, gt=0)
    fast_window_ms: int = Field(default=FAST_RETRY_WINDOW_MS, ge=0)
    max_age_ms: int = Field(default=MAX_RETRY_AGE_MS, gt=0)


DEFAULT_SCHEDULE = RetrySchedule()


def calculate_next_retry(
    attempt_count: int,
    enqueued_at: int,
    current_time: int,
    schedule: RetrySchedule = DEFAULT_SCHEDULE,
) -> int | None:
    """Compute when an item may next be attempted.

    The tier is chosen from the age of the item at ``current_time``, so a
    call exactly one hour after enqueue already uses the hourly interval.
    ``attempt_count`` does not affect the result; the age ceiling applies
    regardless of how many attempts were made.

    Args:
        attempt_count: Attempts recorded so far (including the one just failed).
        enqueued_at: Epoch ms when the item was first enqueued.
        current_time: Epoch ms of the scheduling decision.
        schedule: Timing constants.

    Returns:
        Epoch ms of the next permitted attempt, or None when retries are exhausted.
    """
    elapsed = current_time - enqueued_at

    if elapsed >= schedule.max_age_ms:
        return None

    if elapsed < schedule.fast_window_ms:
        return current_time + schedule.fast_interval_ms

    return current_time + schedule.slow_interval_ms


def derive_status(attempt_count: int, next_retry_at: int | None) -> ItemStatus:
    """Classify an item from its attempt counter and next retry time."""
    if attempt_count == 0:
        return "pending"
    if next_retry_at is not None:
        return "retrying"
    return "failed"
