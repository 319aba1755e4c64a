"""Add a failed ride operation to the retry queue."""

import argparse
import json
import sys
import uuid
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from .audit import AuditLogger
from .clock import now_ms, parse_time_arg, to_iso
from .errors import ValidationError
from .host import FileHost
from .models.queue import QueueItem
from .retry_policy import DEFAULT_SCHEDULE, RetrySchedule
from .retry_queue import create_queue_item
from .store import QueueStore
from .trigger_manager import TriggerManager, sync_after_change


def new_item_id() -> str:
    """Random unique queue item id."""
    return str(uuid.uuid4())


def enqueue_operation(
    store: QueueStore,
    operation: Mapping[str, Any],
    current_time: int,
    generate_id: Callable[[], str] = new_item_id,
    trigger_manager: TriggerManager | None = None,
    audit: AuditLogger | None = None,
    schedule: RetrySchedule = DEFAULT_SCHEDULE,
) -> QueueItem:
    """Create a queue item for ``operation`` and persist it.

    When a trigger manager is given, the retry trigger is moved to the
    earliest due item afterwards. A refused trigger update only warns: the
    item is saved either way.

    Raises:
        ValidationError: If the operation is missing its type or ride URL, or
            the stored queue cannot be read.
    """
    item = create_queue_item(operation, generate_id, lambda: current_time, schedule)

    with store.transaction() as txn:
        txn.items = [*txn.items, item]
        snapshot = list(txn.items)

    if audit:
        audit.log(
            "ENQUEUE",
            item=item.id,
            type=item.type,
            ride=item.ride_url,
            next_retry=to_iso(item.next_retry_at),
        )

    sync_after_change(trigger_manager, snapshot)

    return item


def main() -> None:
    """CLI entry point for enqueueing an operation."""
    parser = argparse.ArgumentParser(description="Add a failed ride operation to the retry queue")
    parser.add_argument("--queue", required=True, type=Path, help="Path to the queue JSON file")
    parser.add_argument(
        "--type",
        required=True,
        dest="op_type",
        choices=["create", "update", "delete"],
        help="Operation to replay",
    )
    parser.add_argument("--ride-url", required=True, help="Ride URL the operation targets")
    parser.add_argument("--calendar-id", default="", help="Target calendar id")
    parser.add_argument("--ride-title", default="", help="Ride title for reports")
    parser.add_argument("--row-num", type=int, default=None, help="Source row number")
    parser.add_argument("--params", default="{}", help="Operation parameters as a JSON object")
    parser.add_argument("--now", type=parse_time_arg, default=None, help="Enqueue time (epoch ms or ISO 8601)")
    parser.add_argument("--audit-log", type=Path, help="Path to activity log file (optional)")
    parser.add_argument("--host-state", type=Path, help="Path to the host trigger state file")
    parser.add_argument("--owner", help="Email of the trigger owner")
    parser.add_argument("--user", default="", help="Email of the user requesting the operation")

    args = parser.parse_args()

    try:
        params = json.loads(args.params)
    except json.JSONDecodeError as e:
        print(f"Error: --params is not valid JSON: {e}")
        sys.exit(1)

    audit = AuditLogger(args.audit_log, user=args.user or None) if args.audit_log else None
    trigger_manager = None
    if args.host_state:
        host = FileHost(args.host_state)
        trigger_manager = TriggerManager(
            host, host, owner_email=args.owner, current_user_email=args.user, audit=audit
        )

    operation = {
        "type": args.op_type,
        "rideUrl": args.ride_url,
        "calendarId": args.calendar_id,
        "rideTitle": args.ride_title,
        "rowNum": args.row_num,
        "userEmail": args.user,
        "params": params,
    }

    try:
        item = enqueue_operation(
            QueueStore(args.queue),
            operation,
            current_time=args.now if args.now is not None else now_ms(),
            trigger_manager=trigger_manager,
            audit=audit,
        )
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Enqueued {item.id} ({item.type} {item.ride_url}), first retry at {to_iso(item.next_retry_at)}")


if __name__ == "__main__":
    main()
