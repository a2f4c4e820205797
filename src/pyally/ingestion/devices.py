"""Device list and status map normalization.

The Ally API and its proxies return device lists and status payloads in
several shapes. These helpers flatten them into :class:`Device` records
and canonical ``code -> raw value`` maps.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pyally.ingestion.normalize import normalize_code
from pyally.models.codes import FIELD_REGISTRY
from pyally.models.device import Device

_logger = logging.getLogger(__name__)

_ID_KEYS = ("id", "deviceId", "device_id", "unique_id", "uid", "uuid")


def _unwrap_result(payload: Any) -> Any:
    """Strip the ``{"result": ...}`` envelope used by the Ally cloud."""
    if isinstance(payload, Mapping) and "result" in payload:
        return payload["result"]
    return payload


def extract_device_items(payload: Any) -> list[dict[str, Any]]:
    """Return the raw device dicts contained in a list response."""
    data = _unwrap_result(payload)
    if isinstance(data, Mapping):
        data = data.get("devices")
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def flatten_status(payload: Any) -> dict[str, Any]:
    """Flatten a status payload into canonical codes and raw values.

    Accepted shapes:

    * ``{"status": [{"code": ..., "value": ...}, ...]}`` (or the bare list)
    * ``{"status": {"code": value, ...}}``
    * a flat object whose scalar fields include registered codes or aliases
    """
    data = _unwrap_result(payload)
    status: Any = data.get("status") if isinstance(data, Mapping) and "status" in data else data

    flattened: dict[str, Any] = {}
    if isinstance(status, list):
        for entry in status:
            if not isinstance(entry, Mapping):
                continue
            code = normalize_code(entry.get("code"))
            if code:
                flattened[code] = entry.get("value")
        return flattened

    if isinstance(status, Mapping):
        nested = status is not data
        for key, value in status.items():
            if isinstance(value, (Mapping, list)):
                continue
            code = normalize_code(key)
            # Flat device objects also carry id/name/etc; keep only known codes.
            if code and (nested or code in FIELD_REGISTRY):
                flattened[code] = value
    return flattened


def parse_device(item: dict[str, Any]) -> Device | None:
    data = dict(item)
    data["status"] = flatten_status(item)
    data["raw"] = item
    # First non-empty identifier wins; the name is the last resort.
    data["id"] = next((item[key] for key in _ID_KEYS if item.get(key)), item.get("name"))
    try:
        device = Device.model_validate(data)
    except ValidationError:
        _logger.debug("Ignoring unparseable device entry", exc_info=True)
        return None
    return device if device.id else None


def parse_device_list(payload: Any) -> list[Device]:
    """Normalize a device list response into :class:`Device` records."""
    devices = [device for item in extract_device_items(payload) if (device := parse_device(item)) is not None]
    if not devices:
        _logger.warning("Device list response contained no devices")
    return devices
