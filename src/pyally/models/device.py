"""Device model and state key helpers."""

from __future__ import annotations

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from pyally._constants import DEVICE_KEY_PREFIX

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_id(value: Any) -> str:
    """Reduce a vendor identifier to characters that are safe in state keys."""
    return _UNSAFE_KEY_CHARS.sub("_", str(value).strip())


def device_key(device_id: str) -> str:
    return f"{DEVICE_KEY_PREFIX}.{device_id}"


def state_key(device_id: str, code: str) -> str:
    return f"{DEVICE_KEY_PREFIX}.{device_id}.{code}"


def parse_state_key(key: str) -> tuple[str, str] | None:
    """Split ``devices.<id>.<code>`` into ``(id, code)``.

    Keys may carry a host namespace prefix (``ally.0.devices.x.temp_set``);
    everything before the ``devices`` segment is ignored. Returns ``None``
    for keys that do not address a device state.
    """
    parts = key.split(".")
    try:
        idx = len(parts) - 1 - parts[::-1].index(DEVICE_KEY_PREFIX)
    except ValueError:
        return None
    rest = parts[idx + 1 :]
    if len(rest) != 2 or not rest[0] or not rest[1]:
        return None
    return rest[0], rest[1]


class Device(BaseModel):
    """A thermostat or sensor associated with the account.

    ``id`` is the vendor identifier used in API paths; :attr:`key_id` is
    its sanitized form used in state keys.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    id: str = Field(
        default="",
        validation_alias=AliasChoices("id", "deviceId", "device_id", "unique_id", "uid", "uuid"),
    )
    name: str = Field(
        default="Device",
        validation_alias=AliasChoices("name", "displayName", "roomName", "deviceName"),
    )
    type: str = Field(
        default="unknown",
        validation_alias=AliasChoices("type", "deviceType", "device_type", "category"),
    )
    online: bool = Field(default=True, validation_alias=AliasChoices("online", "isOnline", "connected"))
    status: dict[str, Any] = Field(default_factory=dict)
    """Canonical code → raw wire value."""
    raw: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("name", "type", mode="before")
    @classmethod
    def _default_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return "Device" if info.field_name == "name" else "unknown"
        return str(value)

    @field_validator("online", mode="before")
    @classmethod
    def _default_online(cls, value: Any) -> Any:
        return True if value is None else value

    @property
    def key_id(self) -> str:
        return sanitize_id(self.id)
