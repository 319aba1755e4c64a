"""Cancel queued operations whose ride no longer needs them."""

import argparse
import sys
from pathlib import Path

from .audit import AuditLogger
from .errors import ValidationError
from .host import FileHost
from .models.queue import QueueItem
from .retry_queue import remove_by_event_id, remove_item
from .store import QueueStore
from .trigger_manager import TriggerManager, sync_after_change


def cancel_item(
    store: QueueStore,
    item_id: str,
    trigger_manager: TriggerManager | None = None,
    audit: AuditLogger | None = None,
) -> QueueItem | None:
    """Remove one item by id.

    Returns:
        The removed item, or None if it was not queued.
    """
    with store.transaction() as txn:
        removed = next((item for item in txn.items if item.id == item_id), None)
        txn.items = remove_item(txn.items, item_id)
        remaining = list(txn.items)

    if removed is not None and audit:
        audit.log("CANCEL", item=removed.id, type=removed.type, ride=removed.ride_url)
    sync_after_change(trigger_manager, remaining)
    return removed


def cancel_event(
    store: QueueStore,
    event_id: str,
    trigger_manager: TriggerManager | None = None,
    audit: AuditLogger | None = None,
) -> list[QueueItem]:
    """Remove every item targeting calendar event ``event_id``.

    Returns:
        The removed items, in queue order.
    """
    with store.transaction() as txn:
        kept = remove_by_event_id(txn.items, event_id)
        kept_ids = {item.id for item in kept}
        removed = [item for item in txn.items if item.id not in kept_ids]
        txn.items = kept

    if audit:
        for item in removed:
            audit.log("CANCEL", item=item.id, type=item.type, ride=item.ride_url, event_id=event_id)
    sync_after_change(trigger_manager, kept)
    return removed


def clear_queue(
    store: QueueStore,
    trigger_manager: TriggerManager | None = None,
    audit: AuditLogger | None = None,
) -> int:
    """Drop every queued item and the retry trigger.

    Returns:
        Number of items dropped.
    """
    with store.transaction() as txn:
        count = len(txn.items)
        txn.items = []

    if audit:
        audit.log("CLEAR_QUEUE", removed=count)
    sync_after_change(trigger_manager, [])
    return count


def main() -> None:
    """CLI entry point for cancelling queued operations."""
    parser = argparse.ArgumentParser(description="Remove operations from the retry queue")
    parser.add_argument("--queue", required=True, type=Path, help="Path to the queue JSON file")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--item-id", help="Remove the queue item with this id")
    target.add_argument("--event-id", help="Remove every item for this calendar event")
    target.add_argument("--all", action="store_true", help="Empty the queue")
    parser.add_argument("--audit-log", type=Path, help="Path to activity log file (optional)")
    parser.add_argument("--host-state", type=Path, help="Path to the host trigger state file")
    parser.add_argument("--owner", help="Email of the trigger owner")
    parser.add_argument("--user", help="Email of the user running this command")

    args = parser.parse_args()

    store = QueueStore(args.queue)
    audit = AuditLogger(args.audit_log, user=args.user) if args.audit_log else None
    trigger_manager = None
    if args.host_state:
        host = FileHost(args.host_state)
        trigger_manager = TriggerManager(
            host, host, owner_email=args.owner, current_user_email=args.user, audit=audit
        )

    try:
        if args.all:
            count = clear_queue(store, trigger_manager, audit)
            print(f"Cleared {count} item(s) from the queue")
        elif args.event_id:
            removed = cancel_event(store, args.event_id, trigger_manager, audit)
            if removed:
                print(f"Removed {len(removed)} item(s) for event {args.event_id}")
            else:
                print(f"No item found for event {args.event_id}")
        else:
            item = cancel_item(store, args.item_id, trigger_manager, audit)
            if item is not None:
                print(f"Removed {item.id} ({item.type} {item.ride_url})")
            else:
                print(f"No item found with id {args.item_id}")
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
