"""Queue processor - replay due operations and reschedule the retry trigger.

Main flow for one invocation (timer firing or manual run):
1. Take the processing guard (skip the run if another one holds it)
2. Load the queue snapshot once
3. Drop items whose retries were already exhausted and report them
4. Execute each due item
   - success: remove it
   - failure: record the attempt and reschedule, or remove and report
     once the retry window is over
5. Save the snapshot once
6. Point the retry trigger at the next due item, or remove it
"""

import argparse
import sys
import warnings
from dataclasses import dataclass, field
from pathlib import Path

from .audit import AuditLogger
from .clock import now_ms, parse_time_arg, to_iso
from .errors import QueueBusyError, ValidationError
from .executors import MockExecutor, OperationExecutor
from .host import FileHost
from .models.queue import QueueItem
from .retry_policy import DEFAULT_SCHEDULE, RetrySchedule
from .retry_queue import (
    get_due_items,
    partition_terminal,
    remove_item,
    update_after_failure,
    update_item,
)
from .store import QueueStore
from .trigger_manager import TriggerManager, sync_after_change


@dataclass
class ProcessSummary:
    """Counts from one processing run."""

    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    abandoned: int = 0
    remaining: int = 0
    skipped: bool = False
    trigger: str | None = None
    abandoned_items: list[QueueItem] = field(default_factory=list)


def get_executor(executor_name: str, **options) -> OperationExecutor:
    """Get an operation executor by name.

    Raises:
        ValueError: If the executor is not supported.
    """
    if executor_name == "mock":
        return MockExecutor(**options)
    raise ValueError(f"Unknown executor: {executor_name}. Supported: mock")


def _abandon(item: QueueItem, summary: ProcessSummary, audit: AuditLogger | None) -> None:
    summary.abandoned += 1
    summary.abandoned_items.append(item)
    if audit:
        audit.log(
            "RETRY_ABANDONED",
            item=item.id,
            type=item.type,
            ride=item.ride_url,
            title=item.ride_title or None,
            row=item.row_num,
            requested_by=item.user_email or None,
            attempts=item.attempt_count,
            error=item.last_error,
        )


def process_queue(
    store: QueueStore,
    executor: OperationExecutor,
    current_time: int,
    audit: AuditLogger | None = None,
    trigger_manager: TriggerManager | None = None,
    schedule: RetrySchedule = DEFAULT_SCHEDULE,
) -> ProcessSummary:
    """Process every due item once.

    Args:
        store: Queue persistence.
        executor: Performs the queued operations.
        current_time: Epoch ms used for every decision in this run.
        audit: Optional activity log.
        trigger_manager: Optional; when given, the retry trigger is
            rescheduled for the next due item afterwards. A refused update
            warns and leaves ``trigger`` as None.
        schedule: Retry timing constants.

    Returns:
        ProcessSummary; ``abandoned_items`` lists the items whose retries were
        exhausted so the caller can notify whoever requested them.

    Raises:
        ValidationError: If the stored queue cannot be read.
    """
    summary = ProcessSummary()

    try:
        with store.processing_guard():
            with store.transaction() as txn:
                live, terminal = partition_terminal(txn.items)
                txn.items = live
                for item in terminal:
                    _abandon(item, summary, audit)

                for item in get_due_items(txn.items, current_time):
                    summary.processed += 1
                    try:
                        result = executor.execute(item)
                    except Exception as e:
                        if audit:
                            audit.log("RETRY_ERROR", item=item.id, error=str(e))
                        result = None
                        error = f"{type(e).__name__}: {e}"
                    else:
                        error = result.error or "Unknown error"

                    if result is not None and result.success:
                        txn.items = remove_item(txn.items, item.id)
                        summary.succeeded += 1
                        if audit:
                            audit.log(
                                "RETRY_SUCCEEDED",
                                item=item.id,
                                type=item.type,
                                ride=item.ride_url,
                                attempts=item.attempt_count + 1,
                                event_id=result.event_id,
                            )
                        continue

                    update = update_after_failure(item, error, current_time, schedule)
                    if update.should_retry:
                        txn.items = update_item(txn.items, update.updated_item)
                        summary.retried += 1
                        if audit:
                            audit.log(
                                "RETRY_FAILED",
                                item=item.id,
                                attempts=update.updated_item.attempt_count,
                                next_retry=to_iso(update.updated_item.next_retry_at),
                                error=error,
                            )
                    else:
                        txn.items = remove_item(txn.items, item.id)
                        _abandon(update.updated_item, summary, audit)

                remaining = list(txn.items)
    except QueueBusyError as e:
        warnings.warn(f"{e}; skipping this run", stacklevel=2)
        summary.skipped = True
        return summary

    summary.remaining = len(remaining)

    if audit:
        audit.log(
            "PROCESS_QUEUE",
            processed=summary.processed,
            succeeded=summary.succeeded,
            retried=summary.retried,
            abandoned=summary.abandoned,
            remaining=summary.remaining,
        )

    summary.trigger = sync_after_change(trigger_manager, remaining)

    return summary


def main() -> None:
    """CLI entry point for the queue processor."""
    parser = argparse.ArgumentParser(
        description="Replay due ride operations from the retry queue"
    )
    parser.add_argument("--queue", required=True, type=Path, help="Path to the queue JSON file")
    parser.add_argument(
        "--executor",
        default="mock",
        choices=["mock"],
        help="Operation executor to use (default: mock)",
    )
    parser.add_argument(
        "--now",
        type=parse_time_arg,
        default=None,
        help="Evaluation time as epoch ms or ISO 8601 (default: current time)",
    )
    parser.add_argument("--audit-log", type=Path, help="Path to activity log file (optional)")
    parser.add_argument(
        "--host-state",
        type=Path,
        help="Path to the host trigger state file; enables retry trigger rescheduling",
    )
    parser.add_argument("--owner", help="Email of the trigger owner")
    parser.add_argument("--user", help="Email of the user running this command")
    parser.add_argument(
        "--fail-all",
        action="store_true",
        help="Force every attempt to fail (mock executor)",
    )
    parser.add_argument(
        "--failing-ride-url",
        action="append",
        default=[],
        help="Ride URL whose attempts always fail (mock executor, repeatable)",
    )

    args = parser.parse_args()

    current_time = args.now if args.now is not None else now_ms()
    audit = AuditLogger(args.audit_log, user=args.user) if args.audit_log else None
    executor = get_executor(
        args.executor, fail_all=args.fail_all, failing_ride_urls=args.failing_ride_url
    )

    trigger_manager = None
    if args.host_state:
        host = FileHost(args.host_state)
        trigger_manager = TriggerManager(
            host, host, owner_email=args.owner, current_user_email=args.user, audit=audit
        )

    try:
        summary = process_queue(
            store=QueueStore(args.queue),
            executor=executor,
            current_time=current_time,
            audit=audit,
            trigger_manager=trigger_manager,
        )
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if summary.skipped:
        print("Queue is busy; run skipped")
        return

    print("Retry queue processed:")
    print(f"  Processed: {summary.processed}")
    print(f"  Succeeded: {summary.succeeded}")
    print(f"  Retrying:  {summary.retried}")
    print(f"  Abandoned: {summary.abandoned}")
    print(f"  Remaining: {summary.remaining}")
    if summary.trigger:
        print(f"  Trigger:   {summary.trigger}")
    for item in summary.abandoned_items:
        print(
            f"  ! {item.ride_title or 'Unknown'} (row {item.row_num or 'Unknown'}) "
            f"{item.ride_url} gave up after {item.attempt_count} attempts: {item.last_error}"
        )

    if summary.abandoned > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
