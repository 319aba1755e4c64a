"""Operator-facing tabular records for the retry queue.

Each queue item maps to one row keyed by human-readable column titles, so
the queue can be exported to a sheet, inspected or corrected by an operator,
and imported back.
"""

import csv
import json
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import jsonschema
from pydantic import ValidationError as PydanticValidationError

from .clock import from_iso, to_iso
from .errors import ValidationError
from .models.queue import OPERATION_TYPES, QueueItem

SCHEMA_PATH = Path(__file__).parent / "contracts" / "queue_record_schema.json"

COLUMN_NAMES: tuple[str, ...] = (
    "ID",
    "Type",
    "Calendar ID",
    "Ride URL",
    "Ride Title",
    "Row Num",
    "User Email",
    "Enqueued At",
    "Next Retry At",
    "Attempt Count",
    "Last Error",
    "Status",
    "Params",
)

Row = dict[str, Any]


def _load_schema() -> dict:
    """Load the record JSON schema."""
    with open(SCHEMA_PATH) as f:
        return json.load(f)


def item_to_row(item: QueueItem) -> Row:
    """Convert a queue item to a row keyed by column title."""
    return {
        "ID": item.id,
        "Type": item.type,
        "Calendar ID": item.calendar_id,
        "Ride URL": item.ride_url,
        "Ride Title": item.ride_title,
        "Row Num": item.row_num if item.row_num is not None else "",
        "User Email": item.user_email,
        "Enqueued At": to_iso(item.enqueued_at),
        "Next Retry At": to_iso(item.next_retry_at) or "",
        "Attempt Count": item.attempt_count,
        "Last Error": item.last_error or "",
        "Status": item.status,
        "Params": json.dumps(item.params) if item.params else "",
    }


def _parse_params(raw: Any) -> dict:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        params = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    return params if isinstance(params, dict) else {}


def _parse_int(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def row_to_item(row: Mapping[str, Any]) -> QueueItem:
    """Convert a row back into a queue item.

    Unparseable Params become an empty dict and a non-numeric Attempt Count
    becomes 0. The Status column is ignored; status is always derived.

    Raises:
        ValidationError: If the row cannot form a valid queue item.
    """
    try:
        next_retry = row.get("Next Retry At") or None
        return QueueItem(
            id=row.get("ID") or "",
            type=row.get("Type") or "",
            calendar_id=row.get("Calendar ID") or "",
            ride_url=row.get("Ride URL") or "",
            ride_title=row.get("Ride Title") or "",
            row_num=_parse_int(row.get("Row Num")),
            user_email=row.get("User Email") or "",
            params=_parse_params(row.get("Params")),
            enqueued_at=from_iso(row.get("Enqueued At") or ""),
            attempt_count=_parse_int(row.get("Attempt Count")) or 0,
            next_retry_at=from_iso(next_retry) if next_retry else None,
            last_error=row.get("Last Error") or None,
        )
    except (PydanticValidationError, ValueError) as e:
        raise ValidationError(f"Invalid record {row.get('ID')!r}: {e}") from e


def items_to_rows(items: Iterable[QueueItem]) -> list[Row]:
    return [item_to_row(item) for item in items]


def rows_to_items(rows: Iterable[Mapping[str, Any]]) -> list[QueueItem]:
    return [row_to_item(row) for row in rows]


def validate_row(row: Mapping[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate a row against the record schema.

    Args:
        row: The row to validate.

    Returns:
        A tuple of (is_valid, list_of_errors).
        If valid, errors list is empty.
    """
    errors: list[str] = []

    try:
        validator = jsonschema.Draft7Validator(_load_schema())
        for error in sorted(validator.iter_errors(dict(row)), key=lambda e: list(e.path)):
            location = ".".join(str(p) for p in error.path)
            errors.append(f"{location}: {error.message}" if location else error.message)
    except FileNotFoundError:
        errors.append(f"Schema file not found: {SCHEMA_PATH}")
    except json.JSONDecodeError as e:
        errors.append(f"Schema JSON decode error: {e}")

    if row.get("Type") and row.get("Type") not in OPERATION_TYPES:
        errors.append("Type must be create, update, or delete")

    for column in ("Enqueued At", "Next Retry At"):
        value = row.get(column)
        if value:
            try:
                from_iso(str(value))
            except ValueError:
                errors.append(f"{column} is not an ISO 8601 timestamp: {value!r}")

    return (len(errors) == 0, errors)


def sort_by_next_retry(rows: Sequence[Row]) -> list[Row]:
    """Soonest retry first; rows without a next retry go last."""

    def key(row: Row) -> tuple[int, int]:
        value = row.get("Next Retry At")
        if not value:
            return (1, 0)
        return (0, from_iso(value))

    return sorted(rows, key=key)


def filter_by_status(rows: Iterable[Row], status: str) -> list[Row]:
    return [row for row in rows if row.get("Status") == status]


def summarize_rows(rows: Sequence[Row]) -> dict[str, Any]:
    """Counts per status and per operation type."""
    return {
        "total": len(rows),
        "pending": len(filter_by_status(rows, "pending")),
        "retrying": len(filter_by_status(rows, "retrying")),
        "failed": len(filter_by_status(rows, "failed")),
        "byType": {
            op_type: sum(1 for row in rows if row.get("Type") == op_type)
            for op_type in OPERATION_TYPES
        },
    }


def export_csv(items: Iterable[QueueItem], csv_path: Path) -> int:
    """Write items as an operator sheet. Returns the number of rows written."""
    rows = items_to_rows(items)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(COLUMN_NAMES))
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def import_csv(csv_path: Path) -> list[QueueItem]:
    """Read an operator sheet back into queue items.

    Raises:
        ValidationError: If any row fails validation; the message names every
            failing row.
    """
    with open(csv_path, newline="") as f:
        rows = list(csv.DictReader(f))

    problems: list[str] = []
    for index, row in enumerate(rows, start=2):
        valid, errors = validate_row(row)
        if not valid:
            problems.append(f"line {index}: {'; '.join(errors)}")
    if problems:
        raise ValidationError("Invalid queue sheet: " + " | ".join(problems))

    return rows_to_items(rows)
