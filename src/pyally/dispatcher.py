"""Command dispatcher for local write intents.

Validates a user write, converts it to wire units, submits it, reflects
the acknowledged value into local state and registers it with the
reconciliation engine so the next polls do not fight it.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from pyally.client import AllyClient
from pyally.exceptions import AllyApiError, AllyAuthenticationError, AllyValidationError
from pyally.ingestion.normalize import (
    is_truthy,
    normalize_change_source,
    normalize_code,
    normalize_mode,
    safe_float,
    to_number,
    to_string,
    to_wire,
)
from pyally.models.codes import (
    ALLOWED_CHANGE_SOURCES,
    ALLOWED_MODES,
    DEFAULT_CHANGE_SOURCE,
    DEFAULT_MODE,
    FIELD_REGISTRY,
    LIVE_TEMPERATURE_CODE,
    LOWER_LIMIT_CODE,
    UPPER_LIMIT_CODE,
    FieldSpec,
    FieldType,
)
from pyally.models.device import Device, state_key
from pyally.state.reconcile import Reconciler

_logger = logging.getLogger(__name__)

SoftRefresh = Callable[[str, Sequence[str]], None]


class WriteResult(BaseModel):
    """Outcome of a successful local write."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    code: str
    value: Any
    """Real-unit value now stored locally."""
    wire_value: Any
    """Value actually accepted by the API."""
    response: Any = None


class CommandDispatcher:
    """Turns write intents into API commands."""

    def __init__(
        self,
        client: AllyClient,
        reconciler: Reconciler,
        *,
        resolve_device: Callable[[str], Device | None],
        soft_refresh: SoftRefresh | None = None,
    ) -> None:
        self._client = client
        self._reconciler = reconciler
        self._resolve_device = resolve_device
        self._soft_refresh = soft_refresh

    async def write(self, device_id: str, code: str, value: Any) -> WriteResult | None:
        """Submit a local write for ``devices.<device_id>.<code>``.

        Returns ``None`` when the code is not writable.

        Raises
        ------
        AllyValidationError
            Invalid input (unknown device, non-finite temperature). Raised
            before any network call; local state is untouched.
        AllyApiError
            The API rejected the command.
        """
        code = normalize_code(code)
        spec = FIELD_REGISTRY.get(code)
        if spec is None or not spec.writable:
            _logger.warning("Ignoring write to read-only code %s.%s", device_id, code)
            return None

        device = self._resolve_device(device_id)
        if device is None:
            raise AllyValidationError(f"Unknown device {device_id}", code=code, value=value)

        real_value, encodings = await self._prepare(device_id, code, spec, value)
        response, wire_value = await self._submit(device.id, code, encodings)

        # Registered before the optimistic state write so no poll can see
        # the new value without its hold.
        self._reconciler.register_write(device_id, code, real_value)
        await self._reconciler.backend.set_state(state_key(device_id, code), real_value, ack=True)
        _logger.info("Set %s.%s=%r (sent %r)", device_id, code, real_value, wire_value)

        if self._soft_refresh is not None:
            codes = [code] if code == LIVE_TEMPERATURE_CODE else [code, LIVE_TEMPERATURE_CODE]
            self._soft_refresh(device_id, codes)

        return WriteResult(
            device_id=device_id,
            code=code,
            value=real_value,
            wire_value=wire_value,
            response=response,
        )

    async def _prepare(self, device_id: str, code: str, spec: FieldSpec, value: Any) -> tuple[Any, list[Any]]:
        """Return the real-unit value and the wire encodings to try, in order."""
        if spec.temperature:
            number = await self._clamp(device_id, self._finite(code, value))
            wire = to_wire(code, number)
            return wire / 10, [wire]

        if spec.type == FieldType.BOOLEAN:
            flag = is_truthy(value)
            return flag, [flag, 1 if flag else 0]

        if code == "mode":
            mode = self._pick(code, normalize_mode(value), ALLOWED_MODES, DEFAULT_MODE)
            return mode, [mode]
        if code == "SetpointChangeSource":
            source = self._pick(code, normalize_change_source(value), ALLOWED_CHANGE_SOURCES, DEFAULT_CHANGE_SOURCE)
            return source, [source]

        if spec.type == FieldType.NUMBER:
            number = self._finite(code, value)
            return number, [to_wire(code, number)]
        text = to_string(value)
        return text, [text]

    @staticmethod
    def _finite(code: str, value: Any) -> float:
        number = to_number(value)
        # Tenths scaling must stay finite too.
        if not math.isfinite(number * 10):
            raise AllyValidationError(f"{code} must be a finite number, got {value!r}", code=code, value=value)
        return number

    @staticmethod
    def _pick(code: str, value: str, allowed: frozenset[str], default: str) -> str:
        if value in allowed:
            return value
        _logger.warning("Unknown %s value %r, using %r", code, value, default)
        return default

    async def _clamp(self, device_id: str, value: float) -> float:
        backend = self._reconciler.backend
        lower_state = await backend.get_state(state_key(device_id, LOWER_LIMIT_CODE))
        upper_state = await backend.get_state(state_key(device_id, UPPER_LIMIT_CODE))
        lower = safe_float(lower_state.value) if lower_state is not None else None
        upper = safe_float(upper_state.value) if upper_state is not None else None
        clamped = value
        if lower is not None and clamped < lower:
            clamped = lower
        if upper is not None and clamped > upper:
            clamped = upper
        if clamped != value:
            _logger.info("Clamped %s set point %s to %s", device_id, value, clamped)
        return clamped

    async def _submit(self, vendor_id: str, code: str, encodings: list[Any]) -> tuple[Any, Any]:
        last_exc: AllyApiError | None = None
        for wire in encodings:
            try:
                response = await self._client.send_command(vendor_id, [{"code": code, "value": wire}])
            except AllyAuthenticationError:
                raise
            except AllyApiError as exc:
                _logger.info("Command %s=%r rejected for %s: %s", code, wire, vendor_id, exc)
                last_exc = exc
                continue
            return response, wire
        if last_exc is None:
            raise AllyApiError(f"No encoding to submit for {code}")
        raise last_exc
