"""Data models for pyally."""

from pyally.models.codes import FieldRole, FieldSpec, FieldType
from pyally.models.device import Device
from pyally.models.token import TokenResponse

__all__ = [
    "Device",
    "FieldRole",
    "FieldSpec",
    "FieldType",
    "TokenResponse",
]
