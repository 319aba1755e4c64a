"""Trigger catalog and scheduling decisions.

Triggers come in three families:
- event triggers (onOpen, onEdit) installed once to run as the owner
- backstop triggers: fixed daily schedule, permanent, never auto-removed
- scheduled triggers: fire at a computed instant tied to pending work,
  removed once no work remains

This module only decides. Installing and deleting timers is done by
TriggerManager against a host.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from .clock import to_iso
from .errors import ValidationError
from .models.trigger import (
    InstallationResult,
    InstallationSummary,
    TriggerConfig,
    TriggerSchedule,
)

BACKSTOP_HOUR = 2


class TriggerType(str, Enum):
    """Known trigger types."""

    ON_OPEN = "onOpen"
    ON_EDIT = "onEdit"
    DAILY_ANNOUNCEMENT = "dailyAnnouncement"
    ANNOUNCEMENT_SCHEDULED = "announcementScheduled"
    DAILY_RETRY = "dailyRetry"
    RETRY_SCHEDULED = "retryScheduled"


class PropertyKey(str, Enum):
    """Host property keys holding installed trigger ids and fire times."""

    ANNOUNCEMENT_NEXT_TRIGGER_TIME = "ANNOUNCEMENT_NEXT_TRIGGER_TIME"
    ANNOUNCEMENT_TRIGGER_ID = "ANNOUNCEMENT_TRIGGER_ID"
    RETRY_NEXT_TRIGGER_TIME = "RETRY_NEXT_TRIGGER_TIME"
    RETRY_TRIGGER_ID = "RETRY_TRIGGER_ID"
    DAILY_ANNOUNCEMENT_TRIGGER_ID = "DAILY_ANNOUNCEMENT_TRIGGER_ID"
    DAILY_RETRY_TRIGGER_ID = "DAILY_RETRY_TRIGGER_ID"
    ON_OPEN_TRIGGER_ID = "ON_OPEN_TRIGGER_ID"
    ON_EDIT_TRIGGER_ID = "ON_EDIT_TRIGGER_ID"


HANDLER_FUNCTIONS: Mapping[TriggerType, str] = MappingProxyType({
    TriggerType.ON_OPEN: "onOpen",
    TriggerType.ON_EDIT: "editHandler",
    TriggerType.DAILY_ANNOUNCEMENT: "dailyAnnouncementCheck",
    TriggerType.ANNOUNCEMENT_SCHEDULED: "announcementTrigger",
    TriggerType.DAILY_RETRY: "dailyRetryCheck",
    TriggerType.RETRY_SCHEDULED: "retryQueueTrigger",
})

_DAILY = TriggerSchedule(kind="daily", hour=BACKSTOP_HOUR)
_AT = TriggerSchedule(kind="at")

TRIGGER_CATALOG: Mapping[TriggerType, TriggerConfig] = MappingProxyType({
    TriggerType.ON_OPEN: TriggerConfig(
        trigger_type=TriggerType.ON_OPEN.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.ON_OPEN],
        property_key=PropertyKey.ON_OPEN_TRIGGER_ID.value,
    ),
    TriggerType.ON_EDIT: TriggerConfig(
        trigger_type=TriggerType.ON_EDIT.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.ON_EDIT],
        property_key=PropertyKey.ON_EDIT_TRIGGER_ID.value,
    ),
    TriggerType.DAILY_ANNOUNCEMENT: TriggerConfig(
        trigger_type=TriggerType.DAILY_ANNOUNCEMENT.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.DAILY_ANNOUNCEMENT],
        property_key=PropertyKey.DAILY_ANNOUNCEMENT_TRIGGER_ID.value,
        schedule=_DAILY,
    ),
    TriggerType.ANNOUNCEMENT_SCHEDULED: TriggerConfig(
        trigger_type=TriggerType.ANNOUNCEMENT_SCHEDULED.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.ANNOUNCEMENT_SCHEDULED],
        property_key=PropertyKey.ANNOUNCEMENT_TRIGGER_ID.value,
        time_property_key=PropertyKey.ANNOUNCEMENT_NEXT_TRIGGER_TIME.value,
        schedule=_AT,
    ),
    TriggerType.DAILY_RETRY: TriggerConfig(
        trigger_type=TriggerType.DAILY_RETRY.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.DAILY_RETRY],
        property_key=PropertyKey.DAILY_RETRY_TRIGGER_ID.value,
        schedule=_DAILY,
    ),
    TriggerType.RETRY_SCHEDULED: TriggerConfig(
        trigger_type=TriggerType.RETRY_SCHEDULED.value,
        handler_function=HANDLER_FUNCTIONS[TriggerType.RETRY_SCHEDULED],
        property_key=PropertyKey.RETRY_TRIGGER_ID.value,
        time_property_key=PropertyKey.RETRY_NEXT_TRIGGER_TIME.value,
        schedule=_AT,
    ),
})


@dataclass(frozen=True)
class ScheduleDecision:
    """Whether a scheduled trigger must be (re)installed."""

    should_schedule: bool
    reason: str


@dataclass(frozen=True)
class RemovalDecision:
    """Whether a trigger should be torn down."""

    should_remove: bool
    reason: str


@dataclass(frozen=True)
class InstallationValidation:
    """Whether the current user may install owner-privileged triggers."""

    valid: bool
    error: str | None = None


def get_trigger_config(trigger_type: TriggerType | str) -> TriggerConfig:
    """Look up the static configuration for a trigger type.

    Raises:
        ValidationError: If the trigger type is unknown.
    """
    try:
        return TRIGGER_CATALOG[TriggerType(trigger_type)]
    except ValueError:
        raise ValidationError(f"Unknown trigger type: {trigger_type}") from None


def get_backstop_triggers() -> list[TriggerType]:
    """Daily backstop trigger types."""
    return [TriggerType.DAILY_ANNOUNCEMENT, TriggerType.DAILY_RETRY]


def get_all_installable_triggers() -> list[TriggerType]:
    """Trigger types installed up front by install_all_triggers."""
    return [
        TriggerType.ON_OPEN,
        TriggerType.ON_EDIT,
        TriggerType.DAILY_ANNOUNCEMENT,
        TriggerType.DAILY_RETRY,
    ]


def get_scheduled_triggers() -> list[TriggerType]:
    """Trigger types scheduled at runtime for pending work."""
    return [TriggerType.ANNOUNCEMENT_SCHEDULED, TriggerType.RETRY_SCHEDULED]


def should_schedule_trigger(
    trigger_type: TriggerType | str,
    existing_trigger_time: int | None,
    new_time: int,
) -> ScheduleDecision:
    """Decide whether a scheduled trigger needs installing or moving.

    Scheduling the same instant twice is a no-op. Trigger types without a
    time property key (backstops, event triggers) never schedule.
    """
    config = get_trigger_config(trigger_type)

    if not config.time_property_key:
        return ScheduleDecision(False, "Trigger type does not support scheduling")

    if existing_trigger_time is None:
        return ScheduleDecision(True, "No trigger currently scheduled")

    if existing_trigger_time == new_time:
        return ScheduleDecision(False, "Trigger already scheduled for this time")

    return ScheduleDecision(
        True,
        f"Time changed from {to_iso(existing_trigger_time)} to {to_iso(new_time)}",
    )


def should_remove_trigger(trigger_type: TriggerType | str, has_work: bool) -> RemovalDecision:
    """Decide whether a trigger should be removed given pending work."""
    config = get_trigger_config(trigger_type)

    if config.is_scheduled:
        if not has_work:
            return RemovalDecision(True, "No pending work for scheduled trigger")
        return RemovalDecision(False, "Work still pending")

    return RemovalDecision(False, "Backstop triggers are permanent")


def validate_trigger_installation(
    current_user_email: str | None, owner_email: str | None
) -> InstallationValidation:
    """Only the owner may install triggers that run with owner privilege."""
    if not current_user_email:
        return InstallationValidation(False, "Current user email not provided")

    if not owner_email:
        return InstallationValidation(False, "Owner email not available")

    if current_user_email != owner_email:
        return InstallationValidation(
            False,
            f"Only the owner ({owner_email}) can install triggers. "
            f"Current user: {current_user_email}",
        )

    return InstallationValidation(True)


def build_installation_summary(
    results: Mapping[str, InstallationResult | Mapping[str, Any]],
) -> InstallationSummary:
    """Aggregate per-type installation outcomes into counts."""
    summary = InstallationSummary()

    for trigger_type, raw in results.items():
        result = (
            raw if isinstance(raw, InstallationResult)
            else InstallationResult.model_validate(raw)
        )
        if result.success:
            if result.existed:
                summary.existed += 1
            else:
                summary.installed += 1
        else:
            summary.failed += 1
        key = trigger_type.value if isinstance(trigger_type, Enum) else str(trigger_type)
        summary.details[key] = result

    return summary
