"""Static field registry for Ally thermostat status codes.

Every canonical code the library understands is listed in
:data:`FIELD_REGISTRY` together with its exposed type, unit, role and
whether it may be written. Vendor payloads use a handful of alternate
spellings for the same fields; :data:`CODE_ALIASES` maps them (lowercased)
onto canonical codes.

Codes in the *tenths* class are transmitted as integers in tenths of a
unit (``215`` means ``21.5``).
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from types import MappingProxyType
from typing import Final


class FieldType(StrEnum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING = "string"
    MIXED = "mixed"


class FieldRole(StrEnum):
    TEMPERATURE = "value.temperature"
    SETPOINT = "level.temperature"
    HUMIDITY = "value.humidity"
    BATTERY = "value.battery"
    VALVE = "value.valve"
    SWITCH = "switch"
    WINDOW = "sensor.window"
    MODE = "level.mode"
    TEXT = "text"
    JSON = "json"
    INDICATOR = "indicator"
    GENERIC = "state"


@dataclasses.dataclass(frozen=True)
class FieldSpec:
    """Metadata for a single canonical code."""

    type: FieldType
    role: FieldRole = FieldRole.GENERIC
    unit: str = ""
    writable: bool = False
    tenths: bool = False
    temperature: bool = False


def _setpoint(writable: bool = True) -> FieldSpec:
    return FieldSpec(
        type=FieldType.NUMBER,
        role=FieldRole.SETPOINT if writable else FieldRole.TEMPERATURE,
        unit="°C",
        writable=writable,
        tenths=True,
        temperature=True,
    )


FIELD_REGISTRY: Final = MappingProxyType(
    {
        # Temperatures (tenths of a degree on the wire)
        "temp_set": _setpoint(),
        "temp_current": _setpoint(writable=False),
        "sensor_avg_temp": _setpoint(writable=False),
        "upper_temp": _setpoint(writable=False),
        "lower_temp": _setpoint(writable=False),
        "at_home_setting": _setpoint(),
        "leaving_home_setting": _setpoint(),
        "pause_setting": _setpoint(),
        "holiday_setting": _setpoint(),
        "manual_mode_fast": _setpoint(),
        # Humidity is scaled like temperatures but compared exactly
        "humidity_value": FieldSpec(type=FieldType.NUMBER, role=FieldRole.HUMIDITY, unit="%", tenths=True),
        "battery_percentage": FieldSpec(type=FieldType.NUMBER, role=FieldRole.BATTERY, unit="%"),
        "valve_opening": FieldSpec(type=FieldType.NUMBER, role=FieldRole.VALVE, unit="%"),
        # Switches
        "child_lock": FieldSpec(type=FieldType.BOOLEAN, role=FieldRole.SWITCH, writable=True),
        "switch": FieldSpec(type=FieldType.BOOLEAN, role=FieldRole.SWITCH, writable=True),
        "window_state": FieldSpec(type=FieldType.STRING, role=FieldRole.WINDOW),
        "fault": FieldSpec(type=FieldType.NUMBER, role=FieldRole.INDICATOR),
        # Enums
        "mode": FieldSpec(type=FieldType.STRING, role=FieldRole.MODE, writable=True),
        "SetpointChangeSource": FieldSpec(type=FieldType.STRING, role=FieldRole.MODE, writable=True),
        "work_state": FieldSpec(type=FieldType.STRING, role=FieldRole.TEXT),
        "output_status": FieldSpec(type=FieldType.BOOLEAN, role=FieldRole.INDICATOR),
    }
)

CODE_ALIASES: Final = MappingProxyType(
    {
        **{code.lower(): code for code in FIELD_REGISTRY},
        "temperature": "temp_current",
        "current_temperature": "temp_current",
        "temp": "temp_current",
        "measuredtemperature": "temp_current",
        "setpoint": "temp_set",
        "target_temperature": "temp_set",
        "humidity": "humidity_value",
        "current_humidity": "humidity_value",
        "measuredhumidity": "humidity_value",
        "valve": "valve_opening",
        "valve_position": "valve_opening",
        "openingpercent": "valve_opening",
        "opening_percentage": "valve_opening",
        "battery": "battery_percentage",
        "battery_percent": "battery_percentage",
        "batterylevel": "battery_percentage",
        "lock": "child_lock",
        "childlock": "child_lock",
        "setpoint_change_source": "SetpointChangeSource",
        "change_source": "SetpointChangeSource",
    }
)

MODE_ALIASES: Final = MappingProxyType(
    {
        "auto": "auto",
        "automatic": "auto",
        "schedule": "auto",
        "at_home": "auto",
        "manual": "manual",
        "hand": "manual",
        "leave_home": "leave_home",
        "leaving_home": "leave_home",
        "away": "leave_home",
        "holiday": "holiday",
        "vacation": "holiday",
        "pause": "pause",
        "off": "pause",
    }
)

ALLOWED_MODES: Final = frozenset({"auto", "manual", "leave_home", "holiday", "pause"})
DEFAULT_MODE: Final = "manual"

CHANGE_SOURCE_ALIASES: Final = MappingProxyType(
    {
        "manual": "manual",
        "user": "manual",
        "schedule": "schedule",
        "scheduled": "schedule",
        "externally": "externally",
        "external": "externally",
    }
)

ALLOWED_CHANGE_SOURCES: Final = frozenset({"manual", "schedule", "externally"})
DEFAULT_CHANGE_SOURCE: Final = "manual"

# Always re-fetched alongside the written code after a local write.
LIVE_TEMPERATURE_CODE: Final = "temp_current"
LOWER_LIMIT_CODE: Final = "lower_temp"
UPPER_LIMIT_CODE: Final = "upper_temp"

# Per-device bookkeeping states written by the scheduler, never by polls.
RESERVED_CODES: Final = frozenset({"name", "online", "raw"})
