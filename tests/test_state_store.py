from __future__ import annotations

from typing import Any

import pytest

from pyally.state.events import ObjectMetadata
from pyally.state.store import MemoryStateBackend


@pytest.mark.asyncio
async def test_create_object_if_absent_keeps_existing_definition() -> None:
    backend = MemoryStateBackend()

    assert await backend.create_object_if_absent("devices.a", ObjectMetadata(kind="device", name="Kitchen")) is True
    assert await backend.create_object_if_absent("devices.a", ObjectMetadata(kind="device", name="Other")) is False

    existing = await backend.get_object("devices.a")
    assert existing is not None
    assert existing.name == "Kitchen"
    assert await backend.object_exists("devices.a") is True
    assert await backend.object_exists("devices.b") is False


@pytest.mark.asyncio
async def test_set_state_notifies_matching_subscribers() -> None:
    backend = MemoryStateBackend()
    seen: list[tuple[str, Any, bool]] = []
    backend.subscribe("devices.*.temp_set", lambda key, value, ack: seen.append((key, value, ack)))

    await backend.set_state("devices.a.temp_set", 21.5, ack=False)
    await backend.set_state("devices.a.mode", "auto", ack=False)

    assert seen == [("devices.a.temp_set", 21.5, False)]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_writes() -> None:
    backend = MemoryStateBackend()

    def _boom(_key: str, _value: Any, _ack: bool) -> None:
        raise RuntimeError("listener failed")

    backend.subscribe("*", _boom)
    await backend.set_state("devices.a.mode", "auto", ack=True)

    state = await backend.get_state("devices.a.mode")
    assert state is not None
    assert state.value == "auto"
    assert state.ack is True
