"""Epoch-millisecond helpers.

Only adapters and CLIs read the wall clock. The queue core receives time as
an explicit argument.
"""

from datetime import datetime, timezone

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_iso(timestamp_ms: int | None) -> str | None:
    """Format epoch milliseconds as an ISO 8601 UTC string (``...Z``)."""
    if timestamp_ms is None:
        return None
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> int:
    """Parse an ISO 8601 string into epoch milliseconds.

    Naive values are treated as UTC.

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_time_arg(value: str) -> int:
    """Parse a CLI time argument given as epoch milliseconds or ISO 8601."""
    text = value.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return from_iso(text)
