"""Applies trigger decisions to a host.

All operations are idempotent and owner-only. Decisions come from
``triggers``; this module only talks to the host and the activity log.
"""

import argparse
import sys
import warnings
from collections.abc import Sequence
from pathlib import Path

from .audit import AuditLogger
from .clock import to_iso
from .errors import OwnershipError, RideRetryError, ValidationError
from .host import FileHost, PropertyStore, TimerHost
from .models.queue import QueueItem
from .models.trigger import InstallationResult, InstallationSummary
from .retry_queue import get_next_due_time
from .triggers import (
    PropertyKey,
    TriggerType,
    build_installation_summary,
    get_all_installable_triggers,
    get_scheduled_triggers,
    get_trigger_config,
    should_remove_trigger,
    should_schedule_trigger,
    validate_trigger_installation,
)

EVENT_NAMES = {
    TriggerType.ON_OPEN: "open",
    TriggerType.ON_EDIT: "edit",
}


class TriggerManager:
    """Installs, reschedules and removes triggers on a TimerHost."""

    def __init__(
        self,
        host: TimerHost,
        properties: PropertyStore,
        owner_email: str | None,
        current_user_email: str | None,
        audit: AuditLogger | None = None,
    ) -> None:
        self.host = host
        self.properties = properties
        self.owner_email = owner_email
        self.current_user_email = current_user_email
        self.audit = audit

    def require_owner(self) -> None:
        """Raise OwnershipError unless the current user owns the triggers."""
        check = validate_trigger_installation(self.current_user_email, self.owner_email)
        if not check.valid:
            raise OwnershipError(check.error)

    def _log(self, action: str, **kwargs) -> None:
        if self.audit:
            self.audit.log(action, **kwargs)

    def install_all_triggers(self) -> InstallationSummary:
        """Install event and backstop triggers that are not already present."""
        self.require_owner()

        results: dict[str, InstallationResult] = {}
        for trigger_type in get_all_installable_triggers():
            try:
                results[trigger_type.value] = self._ensure_trigger(trigger_type)
            except Exception as e:
                results[trigger_type.value] = InstallationResult(success=False, error=str(e))

        summary = build_installation_summary(results)
        self._log(
            "INSTALL_TRIGGERS",
            installed=summary.installed,
            existed=summary.existed,
            failed=summary.failed,
        )
        return summary

    def remove_all_triggers(self) -> int:
        """Delete every known trigger and clear stored trigger properties.

        Returns:
            Number of triggers deleted.
        """
        self.require_owner()

        handlers = {
            get_trigger_config(t).handler_function
            for t in [*get_all_installable_triggers(), *get_scheduled_triggers()]
        }
        deleted = 0
        for trigger in self.host.list_triggers():
            if trigger.handler_function in handlers:
                if self.host.delete_trigger(trigger.trigger_id):
                    deleted += 1

        for key in PropertyKey:
            self.properties.delete(key.value)

        self._log("REMOVE_TRIGGERS", deleted=deleted)
        return deleted

    def scheduled_time(self, trigger_type: TriggerType | str) -> int | None:
        """Fire time currently stored for a scheduled trigger, if it still exists."""
        config = get_trigger_config(trigger_type)
        if not config.time_property_key:
            return None
        trigger_id = self.properties.get(config.property_key)
        if not trigger_id or self.host.find_by_id(trigger_id) is None:
            return None
        raw = self.properties.get(config.time_property_key)
        return int(raw) if raw else None

    def schedule_trigger(self, trigger_type: TriggerType | str, at: int) -> tuple[bool, str | None]:
        """Make sure a scheduled trigger fires at ``at``.

        Returns:
            (created, trigger_id). ``created`` is False when the trigger was
            already scheduled for that instant.

        Raises:
            ValidationError: If the trigger type does not support scheduling.
        """
        self.require_owner()
        config = get_trigger_config(trigger_type)
        if not config.is_scheduled:
            raise ValidationError(f"Trigger type does not support scheduling: {config.trigger_type}")

        decision = should_schedule_trigger(trigger_type, self.scheduled_time(trigger_type), at)
        if not decision.should_schedule:
            return False, self.properties.get(config.property_key)

        self._delete_stored(config.property_key, config.handler_function)
        trigger_id = self.host.create_time_trigger(config.handler_function, at)
        self.properties.set(config.property_key, trigger_id)
        self.properties.set(config.time_property_key, str(at))

        self._log(
            "SCHEDULE_TRIGGER",
            trigger=config.trigger_type,
            at=to_iso(at),
            trigger_id=trigger_id,
            reason=decision.reason,
        )
        return True, trigger_id

    def remove_scheduled_trigger(self, trigger_type: TriggerType | str) -> bool:
        """Remove a scheduled trigger. Safe to call when none exists."""
        self.require_owner()
        config = get_trigger_config(trigger_type)
        removed = self._delete_stored(config.property_key, config.handler_function)
        self.properties.delete(config.property_key)
        if config.time_property_key:
            self.properties.delete(config.time_property_key)
        if removed:
            self._log("REMOVE_TRIGGER", trigger=config.trigger_type)
        return removed

    def sync_retry_trigger(self, queue: Sequence[QueueItem]) -> str:
        """Point the retry trigger at the next due item, or remove it.

        Returns:
            "scheduled", "unchanged" or "removed".
        """
        next_due = get_next_due_time(queue)
        removal = should_remove_trigger(TriggerType.RETRY_SCHEDULED, next_due is not None)
        if removal.should_remove:
            self.remove_scheduled_trigger(TriggerType.RETRY_SCHEDULED)
            return "removed"

        created, _ = self.schedule_trigger(TriggerType.RETRY_SCHEDULED, next_due)
        return "scheduled" if created else "unchanged"

    def _ensure_trigger(self, trigger_type: TriggerType) -> InstallationResult:
        config = get_trigger_config(trigger_type)
        existing_id = self.properties.get(config.property_key)
        if existing_id and self.host.find_by_id(existing_id) is not None:
            return InstallationResult(success=True, existed=True, trigger_id=existing_id)

        if trigger_type in EVENT_NAMES:
            trigger_id = self.host.create_event_trigger(
                config.handler_function, EVENT_NAMES[trigger_type]
            )
        elif config.is_backstop:
            trigger_id = self.host.create_daily_trigger(
                config.handler_function, config.schedule.hour
            )
        else:
            raise ValidationError(
                f"Cannot install {config.trigger_type} up front; schedule it instead"
            )

        self.properties.set(config.property_key, trigger_id)
        return InstallationResult(success=True, installed=True, trigger_id=trigger_id)

    def _delete_stored(self, property_key: str, handler_function: str) -> bool:
        """Delete the trigger recorded under ``property_key``, or any stray one for the handler."""
        trigger_id = self.properties.get(property_key)
        if trigger_id and self.host.delete_trigger(trigger_id):
            return True
        stray = self.host.find_by_handler(handler_function)
        if stray is not None:
            return self.host.delete_trigger(stray.trigger_id)
        return False


def sync_after_change(
    manager: TriggerManager | None, queue: Sequence[QueueItem]
) -> str | None:
    """Resync the retry trigger once a queue change has been saved.

    The change is already persisted, so a refused or failed sync (for example
    a non-owner enqueueing a ride) only warns; the daily backstop trigger
    still picks the work up.

    Returns:
        The sync outcome, or None when there is no manager or the sync failed.
    """
    if manager is None:
        return None
    try:
        return manager.sync_retry_trigger(queue)
    except RideRetryError as e:
        warnings.warn(f"Retry trigger not updated: {e}", stacklevel=2)
        return None


def main() -> None:
    """CLI entry point for trigger installation."""
    parser = argparse.ArgumentParser(description="Install, remove or list host triggers")
    parser.add_argument("action", choices=["install", "remove", "list"], help="What to do")
    parser.add_argument("--host-state", required=True, type=Path, help="Path to the host trigger state file")
    parser.add_argument("--owner", help="Email of the trigger owner")
    parser.add_argument("--user", help="Email of the user running this command")
    parser.add_argument("--audit-log", type=Path, help="Path to activity log file (optional)")

    args = parser.parse_args()

    host = FileHost(args.host_state)
    audit = AuditLogger(args.audit_log, user=args.user) if args.audit_log else None
    manager = TriggerManager(host, host, args.owner, args.user, audit=audit)

    if args.action == "list":
        for trigger in host.list_triggers():
            when = to_iso(trigger.at) if trigger.at is not None else trigger.event or f"daily {trigger.hour:02d}:00"
            print(f"{trigger.trigger_id}  {trigger.handler_function}  {when}")
        return

    try:
        if args.action == "install":
            summary = manager.install_all_triggers()
            print(f"Installed {summary.installed} trigger(s), {summary.existed} existed, {summary.failed} failed")
            for trigger_type, result in summary.details.items():
                if not result.success:
                    print(f"  {trigger_type}: {result.error}")
            if not summary.success:
                sys.exit(1)
        else:
            deleted = manager.remove_all_triggers()
            print(f"Removed {deleted} trigger(s)")
    except OwnershipError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
