"""Trigger catalog and installation data models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TriggerSchedule(BaseModel):
    """When a time-driven trigger fires.

    ``daily`` triggers fire every day at ``hour``; ``at`` triggers fire once at
    an instant chosen at runtime.
    """

    model_config = ConfigDict(frozen=True)
    kind: Literal["daily", "at"]
    hour: int | None = Field(default=None, ge=0, le=23)


class TriggerConfig(BaseModel):
    """Static metadata for one trigger type."""

    model_config = ConfigDict(frozen=True)
    trigger_type: str
    handler_function: str
    is_installable: bool = True
    property_key: str
    time_property_key: str | None = None
    schedule: TriggerSchedule | None = None

    @property
    def is_scheduled(self) -> bool:
        """True for triggers that fire at a runtime-computed instant."""
        return self.schedule is not None and self.schedule.kind == "at"

    @property
    def is_backstop(self) -> bool:
        """True for permanent fixed daily triggers."""
        return self.schedule is not None and self.schedule.kind == "daily"


class InstallationResult(BaseModel):
    """Outcome of installing one trigger type."""

    success: bool
    installed: bool = False
    existed: bool = False
    trigger_id: str | None = None
    error: str | None = None


class InstallationSummary(BaseModel):
    """Counts over a batch of installation results."""

    installed: int = 0
    existed: int = 0
    failed: int = 0
    details: dict[str, InstallationResult] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.failed == 0
