"""Normalization helpers.

Centralizes code aliasing, type coercion and unit scaling so that polled
values can be compared against stored state and written values can be
converted back to wire units.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pyally._constants import TEMPERATURE_TOLERANCE
from pyally.models.codes import (
    CHANGE_SOURCE_ALIASES,
    CODE_ALIASES,
    FIELD_REGISTRY,
    MODE_ALIASES,
    FieldRole,
    FieldSpec,
    FieldType,
)

# Absorbs binary representation error at the tolerance boundary.
_EPSILON = 1e-9

_TRUTHY_STRINGS = frozenset({"1", "true", "on", "yes"})


def _lookup(aliases: Mapping[str, str], raw: Any) -> str:
    if raw is None:
        return ""
    text = str(raw).strip()
    if not text:
        return ""
    return aliases.get(text.lower(), text)


def normalize_code(raw: Any) -> str:
    """Map a vendor field code to its canonical spelling."""
    return _lookup(CODE_ALIASES, raw)


def normalize_mode(raw: Any) -> str:
    """Map a vendor or user mode value to its canonical spelling."""
    return _lookup(MODE_ALIASES, raw)


def normalize_change_source(raw: Any) -> str:
    return _lookup(CHANGE_SOURCE_ALIASES, raw)


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(result):
        return None
    return result


def infer_type(value: Any) -> FieldType:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, str):
        return FieldType.STRING
    return FieldType.MIXED


def field_spec(code: str, value: Any = None) -> FieldSpec:
    """Return registry metadata for *code*.

    Unknown codes are read-only with a generic role; their type is
    inferred from *value*.
    """
    spec = FIELD_REGISTRY.get(code)
    if spec is not None:
        return spec
    return FieldSpec(type=infer_type(value), role=FieldRole.GENERIC)


def is_temperature(code: str) -> bool:
    spec = FIELD_REGISTRY.get(code)
    return spec is not None and spec.temperature


def to_number(value: Any) -> float:
    """Numeric parse; returns ``nan`` when *value* is not numeric."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return math.nan


def to_boolean(value: Any) -> bool:
    if value is True:
        return True
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return isinstance(value, (int, float)) and value == 1


def to_string(value: Any) -> str:
    return "" if value is None else str(value)


def is_truthy(value: Any) -> bool:
    """Boolean detection for user writes, more lenient than :func:`to_boolean`."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return False


def scale_from_wire(code: str, raw: Any) -> Any:
    """Divide numeric tenths-class values by 10; other values pass through."""
    spec = FIELD_REGISTRY.get(code)
    if spec is None or not spec.tenths:
        return raw
    number = safe_float(raw)
    if number is None:
        return raw
    return number / 10


def to_wire(code: str, value: Any) -> Any:
    """Convert a real-unit value to the integer tenths sent to the API."""
    spec = FIELD_REGISTRY.get(code)
    if spec is None or not spec.tenths:
        return value
    return math.floor(float(value) * 10 + 0.5)


def coerce(code: str, raw: Any) -> Any:
    """Scale and convert a polled raw value to the code's exposed type.

    Number results may be ``nan``; callers must check :func:`math.isfinite`.
    """
    spec = FIELD_REGISTRY.get(code)
    if spec is None:
        return raw
    value = scale_from_wire(code, raw)
    if spec.type == FieldType.NUMBER:
        return to_number(value)
    if spec.type == FieldType.BOOLEAN:
        return to_boolean(value)
    if spec.type == FieldType.STRING:
        return to_string(value)
    return value


def values_match(code: str, a: Any, b: Any) -> bool:
    """Tolerance equality.

    Temperature-like codes compare numerically within
    ``TEMPERATURE_TOLERANCE``; everything else compares exactly.
    """
    if is_temperature(code):
        left = safe_float(a)
        right = safe_float(b)
        if left is not None and right is not None:
            return abs(left - right) <= TEMPERATURE_TOLERANCE + _EPSILON
    return bool(a == b)
