"""pyally - Async Python client and state sync for Ally cloud thermostats."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyally")
except PackageNotFoundError:
    __version__ = "0+local"
from pyally.client import AllyClient
from pyally.config import AllyConfig
from pyally.dispatcher import CommandDispatcher, WriteResult
from pyally.exceptions import (
    AllyApiError,
    AllyAuthenticationError,
    AllyConfigError,
    AllyError,
    AllySessionExpiredError,
    AllyTransportError,
    AllyValidationError,
)
from pyally.models import Device, FieldRole, FieldSpec, FieldType, TokenResponse
from pyally.scheduler import PollScheduler
from pyally.state.events import CycleReport, Decision, ObjectMetadata, SnapshotResult, StateValue, WriteIntent
from pyally.state.reconcile import PendingWrite, ReconciliationState, Reconciler
from pyally.state.store import MemoryStateBackend, StateBackend

__all__ = [
    "__version__",
    "AllyApiError",
    "AllyAuthenticationError",
    "AllyClient",
    "AllyConfig",
    "AllyConfigError",
    "AllyError",
    "AllySessionExpiredError",
    "AllyTransportError",
    "AllyValidationError",
    "CommandDispatcher",
    "CycleReport",
    "Decision",
    "Device",
    "FieldRole",
    "FieldSpec",
    "FieldType",
    "MemoryStateBackend",
    "ObjectMetadata",
    "PendingWrite",
    "PollScheduler",
    "ReconciliationState",
    "Reconciler",
    "SnapshotResult",
    "StateBackend",
    "StateValue",
    "TokenResponse",
    "WriteIntent",
    "WriteResult",
]
