"""Tests for operator records and CSV sheets."""

import csv
from pathlib import Path

import pytest

from ride_retry.errors import ValidationError
from ride_retry.records import (
    COLUMN_NAMES,
    export_csv,
    filter_by_status,
    import_csv,
    item_to_row,
    items_to_rows,
    row_to_item,
    sort_by_next_retry,
    summarize_rows,
    validate_row,
)


@pytest.fixture
def valid_row() -> dict:
    """A record as an operator would type it."""
    return {
        "ID": "abc",
        "Type": "update",
        "Calendar ID": "rides@club.example",
        "Ride URL": "https://ridewithgps.com/events/99",
        "Ride Title": "Tue Social",
        "Row Num": "14",
        "User Email": "leader@club.example",
        "Enqueued At": "2026-01-10T10:00:00.000Z",
        "Next Retry At": "2026-01-10T10:05:00.000Z",
        "Attempt Count": "0",
        "Last Error": "",
        "Status": "pending",
        "Params": '{"eventId": "ev-1"}',
    }


class TestItemToRow:
    """Item to record conversion."""

    def test_columns(self, make_item) -> None:
        row = item_to_row(make_item("a", attempt_count=1, last_error="boom"))

        assert tuple(row) == COLUMN_NAMES
        assert row["ID"] == "a"
        assert row["Enqueued At"] == "2026-01-10T10:00:00.000Z"
        assert row["Next Retry At"] == "2026-01-10T10:05:00.000Z"
        assert row["Status"] == "retrying"
        assert row["Last Error"] == "boom"
        assert '"startTime"' in row["Params"]

    def test_terminal_and_sparse_item(self, make_item) -> None:
        row = item_to_row(make_item(attempt_count=2, next_retry_at=None, row_num=None, params={}))

        assert row["Next Retry At"] == ""
        assert row["Row Num"] == ""
        assert row["Params"] == ""
        assert row["Status"] == "failed"

    def test_generated_rows_validate(self, make_item) -> None:
        for item in [make_item(), make_item(attempt_count=3, next_retry_at=None)]:
            valid, errors = validate_row(item_to_row(item))
            assert valid, errors


class TestRowToItem:
    """Record to item conversion."""

    def test_parses_strings(self, valid_row: dict) -> None:
        item = row_to_item(valid_row)

        assert item.type == "update"
        assert item.row_num == 14
        assert item.enqueued_at == 1_768_039_200_000
        assert item.next_retry_at == 1_768_039_500_000
        assert item.params == {"eventId": "ev-1"}
        assert item.last_error is None

    def test_invalid_params_become_empty(self, valid_row: dict) -> None:
        valid_row["Params"] = "{not json"
        assert row_to_item(valid_row).params == {}

    def test_non_object_params_become_empty(self, valid_row: dict) -> None:
        valid_row["Params"] = "[1, 2]"
        assert row_to_item(valid_row).params == {}

    def test_bad_attempt_count_becomes_zero(self, valid_row: dict) -> None:
        valid_row["Attempt Count"] = "many"
        assert row_to_item(valid_row).attempt_count == 0

    def test_empty_next_retry_is_terminal(self, valid_row: dict) -> None:
        valid_row["Next Retry At"] = ""
        valid_row["Attempt Count"] = "4"
        item = row_to_item(valid_row)
        assert item.next_retry_at is None
        assert item.status == "failed"

    def test_status_column_ignored(self, valid_row: dict) -> None:
        valid_row["Status"] = "failed"
        assert row_to_item(valid_row).status == "pending"

    def test_missing_ride_url(self, valid_row: dict) -> None:
        valid_row["Ride URL"] = ""
        with pytest.raises(ValidationError, match="Invalid record 'abc'"):
            row_to_item(valid_row)

    def test_bad_timestamp(self, valid_row: dict) -> None:
        valid_row["Enqueued At"] = "yesterday"
        with pytest.raises(ValidationError):
            row_to_item(valid_row)


class TestValidateRow:
    """Schema validation of records."""

    def test_valid(self, valid_row: dict) -> None:
        assert validate_row(valid_row) == (True, [])

    def test_missing_required(self, valid_row: dict) -> None:
        del valid_row["Ride URL"]
        valid, errors = validate_row(valid_row)
        assert not valid
        assert any("Ride URL" in e for e in errors)

    def test_bad_type(self, valid_row: dict) -> None:
        valid_row["Type"] = "move"
        valid, errors = validate_row(valid_row)
        assert not valid
        assert "Type must be create, update, or delete" in errors

    def test_bad_timestamp(self, valid_row: dict) -> None:
        valid_row["Next Retry At"] = "soon"
        valid, errors = validate_row(valid_row)
        assert not valid
        assert any(e.startswith("Next Retry At is not an ISO 8601 timestamp") for e in errors)

    def test_calendar_id_optional(self, valid_row: dict) -> None:
        del valid_row["Calendar ID"]
        assert validate_row(valid_row)[0]


class TestRowHelpers:
    """Sorting, filtering and summaries."""

    def test_sort_by_next_retry(self, make_item) -> None:
        rows = items_to_rows([
            make_item("late", next_retry_at=1_768_039_900_000),
            make_item("done", attempt_count=1, next_retry_at=None),
            make_item("soon", next_retry_at=1_768_039_300_000),
        ])
        assert [r["ID"] for r in sort_by_next_retry(rows)] == ["soon", "late", "done"]

    def test_filter_and_summary(self, make_item) -> None:
        rows = items_to_rows([
            make_item("a"),
            make_item("b", attempt_count=2),
            make_item("c", attempt_count=2, next_retry_at=None, type="delete"),
        ])

        assert [r["ID"] for r in filter_by_status(rows, "retrying")] == ["b"]
        assert summarize_rows(rows) == {
            "total": 3,
            "pending": 1,
            "retrying": 1,
            "failed": 1,
            "byType": {"create": 2, "update": 0, "delete": 1},
        }


class TestCsv:
    """Operator sheet export and import."""

    def test_round_trip(self, tmp_path: Path, make_item) -> None:
        items = [
            make_item("a"),
            make_item("b", attempt_count=3, last_error="Calendar not found"),
            make_item("c", attempt_count=9, next_retry_at=None, row_num=None, params={}),
        ]
        path = tmp_path / "queue.csv"

        assert export_csv(items, path) == 3
        assert import_csv(path) == items

    def test_header(self, tmp_path: Path) -> None:
        path = tmp_path / "queue.csv"
        export_csv([], path)
        with open(path, newline="") as f:
            assert next(csv.reader(f)) == list(COLUMN_NAMES)

    def test_import_reports_bad_lines(self, tmp_path: Path, valid_row: dict) -> None:
        bad = dict(valid_row, ID="", Type="move")
        path = tmp_path / "queue.csv"
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(COLUMN_NAMES))
            writer.writeheader()
            writer.writerow(valid_row)
            writer.writerow(bad)

        with pytest.raises(ValidationError, match="line 3"):
            import_csv(path)
