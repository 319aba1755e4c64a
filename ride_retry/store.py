"""JSON file persistence for the retry queue."""

import json
import os
import time
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .errors import QueueBusyError, ValidationError
from .models.queue import QueueFile, QueueItem

# A processing run never takes this long; an older lock was left by a killed run.
STALE_LOCK_SECONDS = 15 * 60


@dataclass
class QueueTransaction:
    """Working snapshot inside QueueStore.transaction().

    Replace ``items`` with the results of the pure queue functions; the final
    value is written once when the block exits cleanly.
    """

    items: list[QueueItem] = field(default_factory=list)


class QueueStore:
    """Loads and saves queue snapshots from a JSON file.

    The store keeps no state between calls: each load reads the file and each
    save rewrites it completely.
    """

    def __init__(self, queue_path: Path, stale_lock_seconds: float = STALE_LOCK_SECONDS) -> None:
        """Initialize with the path to the queue JSON file.

        Args:
            queue_path: Queue JSON file.
            stale_lock_seconds: Age after which a leftover processing lock is
                considered abandoned and taken over.
        """
        self.queue_path = queue_path
        self.stale_lock_seconds = stale_lock_seconds

    @property
    def lock_path(self) -> Path:
        return self.queue_path.with_name(self.queue_path.name + ".lock")

    def load(self) -> list[QueueItem]:
        """Load all items. Returns an empty list if the file is missing.

        Raises:
            ValidationError: If the file is not valid JSON or holds invalid items.
        """
        if not self.queue_path.exists():
            return []
        try:
            with open(self.queue_path) as f:
                data = json.load(f)
            return QueueFile.model_validate(data).items
        except json.JSONDecodeError as e:
            raise ValidationError(f"Queue file is not valid JSON: {self.queue_path}: {e}") from e
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid queue file {self.queue_path}: {e}") from e

    def save(self, items: list[QueueItem]) -> None:
        """Write all items, replacing the previous snapshot."""
        queue_file = QueueFile(items=list(items), updated_at=datetime.now(timezone.utc))
        self.queue_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.queue_path.with_name(self.queue_path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(queue_file.model_dump(mode="json", by_alias=True), f, indent=2)
        os.replace(tmp_path, self.queue_path)

    @contextmanager
    def transaction(self) -> Iterator[QueueTransaction]:
        """Load once, let the caller transform the snapshot, save once.

        Nothing is written if the block raises.
        """
        txn = QueueTransaction(items=self.load())
        yield txn
        self.save(txn.items)

    def _open_lock(self) -> int:
        return os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)

    def _lock_is_stale(self) -> bool:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > self.stale_lock_seconds

    @contextmanager
    def processing_guard(self) -> Iterator[None]:
        """Hold an exclusive lock file while processing the queue.

        A lock older than ``stale_lock_seconds`` was left by a run that died
        without cleaning up; it is removed with a warning and taken over.

        Raises:
            QueueBusyError: If another run already holds the guard.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = self._open_lock()
        except FileExistsError:
            if not self._lock_is_stale():
                raise QueueBusyError(
                    f"Queue is already being processed: {self.lock_path}"
                ) from None
            warnings.warn(f"Removing stale processing lock: {self.lock_path}", stacklevel=3)
            self.lock_path.unlink(missing_ok=True)
            try:
                fd = self._open_lock()
            except FileExistsError:
                raise QueueBusyError(
                    f"Queue is already being processed: {self.lock_path}"
                ) from None
        try:
            os.write(fd, str(os.getpid()).encode())
            os.close(fd)
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)
