"""Host timer and property store interfaces, with a JSON file implementation."""

import json
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

TriggerKind = Literal["event", "daily", "at"]


class InstalledTrigger(BaseModel):
    """A timer or event trigger registered with the host."""

    trigger_id: str
    handler_function: str
    kind: TriggerKind
    event: str | None = None
    hour: int | None = None
    at: int | None = None


class TimerHost(ABC):
    """Registers and deletes the host's time-driven and event callbacks."""

    @abstractmethod
    def list_triggers(self) -> list[InstalledTrigger]:
        """All triggers currently installed."""

    @abstractmethod
    def create_event_trigger(self, handler_function: str, event: str) -> str:
        """Install a trigger for a document event (open, edit). Returns its id."""

    @abstractmethod
    def create_daily_trigger(self, handler_function: str, hour: int) -> str:
        """Install a trigger that fires every day at ``hour``. Returns its id."""

    @abstractmethod
    def create_time_trigger(self, handler_function: str, at: int) -> str:
        """Install a one-shot trigger at epoch ms ``at``. Returns its id."""

    @abstractmethod
    def delete_trigger(self, trigger_id: str) -> bool:
        """Delete a trigger. Returns False if it did not exist."""

    def find_by_handler(self, handler_function: str) -> InstalledTrigger | None:
        for trigger in self.list_triggers():
            if trigger.handler_function == handler_function:
                return trigger
        return None

    def find_by_id(self, trigger_id: str) -> InstalledTrigger | None:
        for trigger in self.list_triggers():
            if trigger.trigger_id == trigger_id:
                return trigger
        return None


class PropertyStore(ABC):
    """String key/value properties that survive between invocations."""

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class HostState(BaseModel):
    """On-disk state of a FileHost."""

    triggers: list[InstalledTrigger] = Field(default_factory=list)
    properties: dict[str, str] = Field(default_factory=dict)


class FileHost(TimerHost, PropertyStore):
    """Timer host and property store persisted in one JSON file.

    An external scheduler (cron, systemd timers) reads the file to decide
    which handler to run when.
    """

    def __init__(self, state_path: Path) -> None:
        """Initialize with the path to the host state JSON file."""
        self.state_path = state_path

    def _load(self) -> HostState:
        if not self.state_path.exists():
            return HostState()
        with open(self.state_path) as f:
            return HostState.model_validate(json.load(f))

    def _save(self, state: HostState) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_path, "w") as f:
            json.dump(state.model_dump(mode="json"), f, indent=2)

    def _add(self, trigger: InstalledTrigger) -> str:
        state = self._load()
        state.triggers.append(trigger)
        self._save(state)
        return trigger.trigger_id

    def list_triggers(self) -> list[InstalledTrigger]:
        return self._load().triggers

    def create_event_trigger(self, handler_function: str, event: str) -> str:
        return self._add(
            InstalledTrigger(
                trigger_id=str(uuid.uuid4()),
                handler_function=handler_function,
                kind="event",
                event=event,
            )
        )

    def create_daily_trigger(self, handler_function: str, hour: int) -> str:
        return self._add(
            InstalledTrigger(
                trigger_id=str(uuid.uuid4()),
                handler_function=handler_function,
                kind="daily",
                hour=hour,
            )
        )

    def create_time_trigger(self, handler_function: str, at: int) -> str:
        return self._add(
            InstalledTrigger(
                trigger_id=str(uuid.uuid4()),
                handler_function=handler_function,
                kind="at",
                at=at,
            )
        )

    def delete_trigger(self, trigger_id: str) -> bool:
        state = self._load()
        remaining = [t for t in state.triggers if t.trigger_id != trigger_id]
        if len(remaining) == len(state.triggers):
            return False
        state.triggers = remaining
        self._save(state)
        return True

    def get(self, key: str) -> str | None:
        return self._load().properties.get(key)

    def set(self, key: str, value: str) -> None:
        state = self._load()
        state.properties[key] = value
        self._save(state)

    def delete(self, key: str) -> None:
        state = self._load()
        if state.properties.pop(key, None) is not None:
            self._save(state)
