"""Queue report - statistics and item listing for operators."""

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .clock import now_ms, parse_time_arg, to_iso
from .errors import ValidationError
from .models.queue import QueueItem
from .records import export_csv, import_csv, items_to_rows, summarize_rows
from .retry_queue import format_items, get_next_due_time, get_statistics
from .store import QueueStore


def build_report(items: Sequence[QueueItem], current_time: int) -> dict[str, Any]:
    """Statistics, status counts and display rows for a queue snapshot."""
    stats = get_statistics(items, current_time)
    return {
        "generatedAt": to_iso(current_time),
        "statistics": stats.model_dump(by_alias=True),
        "summary": summarize_rows(items_to_rows(items)),
        "nextDueAt": to_iso(get_next_due_time(items)),
        "items": [d.model_dump(by_alias=True) for d in format_items(items, current_time)],
    }


def print_report(report: dict[str, Any]) -> None:
    stats = report["statistics"]
    by_age = stats["byAge"]
    print(f"Retry queue at {report['generatedAt']}:")
    print(f"  Total:      {stats['totalItems']}")
    print(f"  Due now:    {stats['dueNow']}")
    print(f"  < 1 hour:   {by_age['lessThan1Hour']}")
    print(f"  < 24 hours: {by_age['lessThan24Hours']}")
    print(f"  >= 24 hours: {by_age['moreThan24Hours']}")
    print(f"  Next due:   {report['nextDueAt'] or '-'}")
    for item in report["items"]:
        print(
            f"  [{item['status']}] {item['type']} {item['rideTitle']} (row {item['rowNum']}) "
            f"age={item['ageMinutes']}m attempts={item['attemptCount']} "
            f"next={item['nextRetryAt'] or '-'}"
        )


def main() -> None:
    """CLI entry point for the queue report."""
    parser = argparse.ArgumentParser(description="Show retry queue statistics and items")
    parser.add_argument("--queue", required=True, type=Path, help="Path to the queue JSON file")
    parser.add_argument("--now", type=parse_time_arg, default=None, help="Evaluation time (epoch ms or ISO 8601)")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--export-csv", type=Path, help="Write the queue as an operator sheet")
    parser.add_argument(
        "--import-csv",
        type=Path,
        help="Replace the queue with the items from an operator sheet",
    )

    args = parser.parse_args()
    store = QueueStore(args.queue)

    if args.import_csv:
        try:
            items = import_csv(args.import_csv)
        except ValidationError as e:
            print(f"Error: {e}")
            sys.exit(1)
        store.save(items)
        print(f"Imported {len(items)} items from {args.import_csv}")

    try:
        items = store.load()
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)
    report = build_report(items, args.now if args.now is not None else now_ms())

    if args.export_csv:
        count = export_csv(items, args.export_csv)
        print(f"Exported {count} items to {args.export_csv}")

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)


if __name__ == "__main__":
    main()
