"""Queue data models for pending ride operations."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..retry_policy import ItemStatus, derive_status

OperationType = Literal["create", "update", "delete"]
OPERATION_TYPES: tuple[str, ...] = ("create", "update", "delete")


class QueueItem(BaseModel):
    """A single pending calendar operation.

    Serialized with camelCase keys (``rideUrl``, ``nextRetryAt``...) so stored
    queues stay readable by other tools. Instances are immutable; the queue
    functions return updated copies.

    Contextual fields (calendarId, rideTitle, userEmail, params) are opaque
    and may arrive as null; they are held as empty values.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    id: str = Field(..., min_length=1)
    type: OperationType
    calendar_id: str = ""
    ride_url: str = Field(..., min_length=1)
    ride_title: str = ""
    row_num: int | None = None
    user_email: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: int
    attempt_count: int = Field(default=0, ge=0)
    next_retry_at: int | None = None
    last_error: str | None = None

    @field_validator("calendar_id", "ride_title", "user_email", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("params", mode="before")
    @classmethod
    def none_as_no_params(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="after")
    def check_retry_after_enqueue(self) -> "QueueItem":
        if self.next_retry_at is not None and self.next_retry_at <= self.enqueued_at:
            raise ValueError("nextRetryAt must be later than enqueuedAt")
        return self

    @property
    def status(self) -> ItemStatus:
        """pending | retrying | failed, derived from attempts and next retry."""
        return derive_status(self.attempt_count, self.next_retry_at)


class QueueFile(BaseModel):
    """On-disk container for a queue snapshot."""

    items: list[QueueItem] = Field(default_factory=list)
    updated_at: datetime | None = None


class AgeBuckets(BaseModel):
    """Cumulative age thresholds (an item under 1h also counts under 24h)."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    less_than_1_hour: int = Field(default=0, alias="lessThan1Hour")
    less_than_24_hours: int = Field(default=0, alias="lessThan24Hours")
    more_than_24_hours: int = Field(default=0, alias="moreThan24Hours")


class QueueStatistics(BaseModel):
    """Aggregate counts over a queue snapshot."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    total_items: int = 0
    due_now: int = 0
    by_age: AgeBuckets = Field(default_factory=AgeBuckets)


class DisplayItem(BaseModel):
    """Human-oriented view of a queue item."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: str
    type: str
    ride_url: str
    ride_title: str
    row_num: int | str
    user_email: str
    attempt_count: int
    status: ItemStatus
    enqueued_at: str
    next_retry_at: str | None
    age_minutes: int
    last_error: str | None = None
