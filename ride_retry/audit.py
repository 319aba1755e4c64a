"""Activity log for retry queue and trigger operations."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

LINE_PATTERN = re.compile(
    r"^(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z) \[(?P<action>[A-Z_]+)\](?: (?P<fields>.*))?$"
)
FIELD_PATTERN = re.compile(r'(\w+)=(?:"([^"]*)"|(\S*))')


@dataclass
class AuditEntry:
    """One parsed activity log line."""

    timestamp: str
    action: str
    fields: dict[str, str] = field(default_factory=dict)


class AuditLogger:
    """Appends queue lifecycle events to an activity log file.

    Log format: ISO8601_TIMESTAMP [ACTION] key1=value1 key2=value2
    Example: 2026-02-01T10:00:00Z [RETRY_ABANDONED] item=ab12 ride=https://... attempts=60

    Actions: ENQUEUE, RETRY_SUCCEEDED, RETRY_FAILED, RETRY_ABANDONED, RETRY_ERROR,
    PROCESS_QUEUE, INSTALL_TRIGGERS, REMOVE_TRIGGERS, SCHEDULE_TRIGGER, REMOVE_TRIGGER,
    CANCEL, CLEAR_QUEUE
    """

    def __init__(self, log_path: Path, user: str | None = None) -> None:
        """Initialize with the log file path and the acting user, if known."""
        self.log_path = log_path
        self.user = user

    def log(self, action: str, **kwargs: str | int | float | bool | None) -> None:
        """Append an entry.

        Args:
            action: Upper-case action name (e.g., ENQUEUE, RETRY_ABANDONED).
            **kwargs: Key-value pairs for the entry. None values are dropped and
                values containing spaces are quoted.
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        fields: dict[str, str | int | float | bool | None] = {}
        if self.user and "user" not in kwargs:
            fields["user"] = self.user
        fields.update(kwargs)

        pairs = []
        for key, value in fields.items():
            if value is None:
                continue
            str_value = str(value).replace("\n", " ")
            if " " in str_value:
                str_value = '"' + str_value.replace('"', "'") + '"'
            pairs.append(f"{key}={str_value}")

        line = f"{timestamp} [{action}]"
        if pairs:
            line += " " + " ".join(pairs)

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            f.write(line + "\n")

    def read_entries(self, action: str | None = None) -> list[AuditEntry]:
        """Parse the log back into entries, optionally filtered by action.

        Lines that do not match the log format are skipped.
        """
        if not self.log_path.exists():
            return []

        entries: list[AuditEntry] = []
        with open(self.log_path) as f:
            for line in f:
                match = LINE_PATTERN.match(line.rstrip("\n"))
                if not match:
                    continue
                if action and match.group("action") != action:
                    continue
                fields = {
                    key: quoted if quoted else plain
                    for key, quoted, plain in FIELD_PATTERN.findall(match.group("fields") or "")
                }
                entries.append(
                    AuditEntry(
                        timestamp=match.group("timestamp"),
                        action=match.group("action"),
                        fields=fields,
                    )
                )
        return entries
