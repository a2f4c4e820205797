"""Host persistence interface.

The reconciliation engine only talks to local state through
:class:`StateBackend`. :class:`MemoryStateBackend` is a complete
in-memory implementation used for tests and embedding; it also mirrors the
host event layer by notifying subscribers of every state write.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from pyally.state.events import ObjectMetadata, StateValue

_logger = logging.getLogger(__name__)

StateListener = Callable[[str, Any, bool], None]


class StateBackend(Protocol):
    """Key/value store with per-key object metadata."""

    async def get_state(self, key: str) -> StateValue | None: ...

    async def set_state(self, key: str, value: Any, *, ack: bool) -> None: ...

    async def object_exists(self, key: str) -> bool: ...

    async def get_object(self, key: str) -> ObjectMetadata | None: ...

    async def create_object_if_absent(self, key: str, metadata: ObjectMetadata) -> bool: ...

    async def update_object_metadata(self, key: str, metadata: ObjectMetadata) -> None: ...


class MemoryStateBackend:
    """In-memory :class:`StateBackend`."""

    def __init__(self, *, clock: Callable[[], datetime] = lambda: datetime.now(UTC)) -> None:
        self._clock = clock
        self._states: dict[str, StateValue] = {}
        self._objects: dict[str, ObjectMetadata] = {}
        self._listeners: list[tuple[str, StateListener]] = []
        self.writes: list[tuple[str, Any, bool]] = []

    async def get_state(self, key: str) -> StateValue | None:
        return self._states.get(key)

    async def set_state(self, key: str, value: Any, *, ack: bool) -> None:
        self._states[key] = StateValue(value=value, ack=ack, ts=self._clock())
        self.writes.append((key, value, ack))
        for pattern, listener in list(self._listeners):
            if fnmatch.fnmatchcase(key, pattern):
                try:
                    listener(key, value, ack)
                except Exception:
                    _logger.exception("State listener for %s failed", pattern)

    async def object_exists(self, key: str) -> bool:
        return key in self._objects

    async def get_object(self, key: str) -> ObjectMetadata | None:
        return self._objects.get(key)

    async def create_object_if_absent(self, key: str, metadata: ObjectMetadata) -> bool:
        if key in self._objects:
            return False
        self._objects[key] = metadata
        return True

    async def update_object_metadata(self, key: str, metadata: ObjectMetadata) -> None:
        self._objects[key] = metadata

    def subscribe(self, pattern: str, listener: StateListener) -> None:
        """Call *listener(key, value, ack)* for writes to keys matching *pattern*."""
        self._listeners.append((pattern, listener))

    def value(self, key: str) -> Any:
        """Synchronous accessor for the stored value (``None`` if unset)."""
        state = self._states.get(key)
        return state.value if state is not None else None
