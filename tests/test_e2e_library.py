"""End-to-end library flow against an in-memory Ally cloud.

Simulated time drives the scheduler through a local write, a lagging
cloud, convergence and a later change made on the device itself.
"""

from __future__ import annotations

from typing import Any

import pytest

from pyally import AllyClient, MemoryStateBackend, PollScheduler
from pyally.config import AllyConfig
from pyally.state.events import Decision, WriteIntent


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_write_survives_lagging_cloud_until_convergence(config: AllyConfig, cloud: Any, clock: Any) -> None:
    cloud.add_device("rt1", {"temp_set": 210, "temp_current": 200, "mode": "manual"})
    backend = MemoryStateBackend(clock=clock)

    async with AllyClient(config, transport=cloud, clock=clock.monotonic) as client:
        scheduler = PollScheduler(client, backend, clock=clock)
        await scheduler.initialize()
        await scheduler.poll_cycle()
        assert backend.value("devices.rt1.temp_set") == pytest.approx(21.0)

        await scheduler.handle_write(WriteIntent(device_id="rt1", code="temp_set", value=23))
        await scheduler.join()
        assert cloud.commands == [("rt1", [{"code": "temp_set", "value": 230}])]
        assert backend.value("devices.rt1.temp_set") == pytest.approx(23.0)

        clock.advance(3)
        assert (await scheduler.poll_cycle()).gated is True

        clock.advance(17)
        lagging = await scheduler.poll_cycle()
        assert lagging.total(Decision.HELD) == 1
        assert backend.value("devices.rt1.temp_set") == pytest.approx(23.0)

        cloud.set_status("rt1", "temp_set", 230)
        cloud.expire_tokens()
        clock.advance(10)
        converged = await scheduler.poll_cycle()
        assert converged.failed == []
        assert scheduler.reconciler.state.pending_for("rt1", "temp_set") is None
        assert cloud.token_requests == 2

        cloud.set_status("rt1", "temp_set", 190)
        clock.advance(10)
        external = await scheduler.poll_cycle()
        assert external.total(Decision.CHANGED) == 1
        assert backend.value("devices.rt1.temp_set") == pytest.approx(19.0)


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_cloud_value_wins_after_hold_expires(config: AllyConfig, cloud: Any, clock: Any) -> None:
    cloud.add_device("rt1", {"temp_set": 210})
    backend = MemoryStateBackend(clock=clock)

    async with AllyClient(config, transport=cloud, clock=clock.monotonic) as client:
        scheduler = PollScheduler(client, backend, clock=clock)
        await scheduler.initialize()
        await scheduler.poll_cycle()

        await scheduler.handle_write(WriteIntent(device_id="rt1", code="temp_set", value=24))
        await scheduler.join()

        clock.advance(59)
        held = await scheduler.poll_cycle()
        clock.advance(2)
        expired = await scheduler.poll_cycle()

    assert held.total(Decision.HELD) == 1
    assert expired.total(Decision.CHANGED) == 1
    assert backend.value("devices.rt1.temp_set") == pytest.approx(21.0)
    assert scheduler.reconciler.state.pending == {}
