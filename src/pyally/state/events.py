"""Messages and records exchanged between the state layer and its callers."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyally.models.codes import FieldRole, FieldType


class Decision(StrEnum):
    """Outcome of reconciling one polled value."""

    CHANGED = "changed"
    SKIPPED = "skipped"
    HELD = "held"
    SUPPRESSED = "suppressed"


class ObjectMetadata(BaseModel):
    """Host object definition for a device or a device state."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["device", "state"] = "state"
    name: str = ""
    type: FieldType | None = None
    role: FieldRole = FieldRole.GENERIC
    unit: str = ""
    read: bool = True
    write: bool = False
    native: dict[str, Any] = Field(default_factory=dict)


class StateValue(BaseModel):
    """A stored value and whether it is acknowledged (confirmed)."""

    model_config = ConfigDict(frozen=True)

    value: Any = None
    ack: bool = False
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))


class WriteIntent(BaseModel):
    """A user-initiated (unacknowledged) write of a single device code."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    code: str
    value: Any = None

    @field_validator("device_id", "code")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("device_id and code must be non-empty")
        return text


class SnapshotResult(BaseModel):
    """Per-code decision counts for one device snapshot."""

    device_id: str
    changed: int = 0
    skipped: int = 0
    held: int = 0
    suppressed: int = 0
    invalid: int = 0

    def record(self, decision: Decision) -> None:
        setattr(self, decision.value, getattr(self, decision.value) + 1)


class CycleReport(BaseModel):
    """Summary of one poll cycle."""

    gated: bool = False
    devices: list[SnapshotResult] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    def total(self, decision: Decision) -> int:
        return sum(getattr(result, decision.value) for result in self.devices)
