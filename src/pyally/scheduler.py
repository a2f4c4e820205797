"""Poll scheduler and local write channel.

:class:`PollScheduler` owns one :class:`ReconciliationState` and shares
it between periodic polling and the :class:`CommandDispatcher`. Local
writes from the host arrive through :meth:`PollScheduler.on_local_write`,
are queued on a bounded channel and handled one at a time by a single
consumer task.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from pyally.client import AllyClient
from pyally.config import AllyConfig, clamp_polling_interval
from pyally.dispatcher import CommandDispatcher, WriteResult
from pyally.exceptions import AllyError, AllyValidationError
from pyally.models.codes import RESERVED_CODES, FieldRole, FieldType
from pyally.models.device import Device, device_key, parse_state_key, state_key
from pyally.state.events import CycleReport, ObjectMetadata, WriteIntent
from pyally.state.reconcile import ReconciliationState, Reconciler
from pyally.state.store import StateBackend

_logger = logging.getLogger(__name__)

_DEVICE_STATES: dict[str, ObjectMetadata] = {
    "name": ObjectMetadata(name="name", type=FieldType.STRING, role=FieldRole.TEXT),
    "online": ObjectMetadata(name="online", type=FieldType.BOOLEAN, role=FieldRole.INDICATOR),
    "raw": ObjectMetadata(name="raw", type=FieldType.STRING, role=FieldRole.JSON),
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PollScheduler:
    """Periodic and on-demand reconciliation of all known devices.

    Usage::

        async with AllyClient(config) as client:
            scheduler = PollScheduler(client, backend)
            await scheduler.initialize()
            scheduler.start_polling()
            ...
            await scheduler.stop_polling()
    """

    def __init__(
        self,
        client: AllyClient,
        backend: StateBackend,
        *,
        config: AllyConfig | None = None,
        state: ReconciliationState | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._backend = backend
        self._config = config if config is not None else client.config
        self._reconciler = Reconciler.from_config(backend, self._config, state=state, clock=clock)
        self._devices: dict[str, Device] = {}
        self._dispatcher = CommandDispatcher(
            client,
            self._reconciler,
            resolve_device=self._devices.get,
            soft_refresh=self.request_soft_refresh,
        )
        self._writes: asyncio.Queue[WriteIntent] = asyncio.Queue(maxsize=self._config.write_queue_size)
        self._poll_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._interval: int | None = None

    @property
    def devices(self) -> dict[str, Device]:
        return dict(self._devices)

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def interval(self) -> int | None:
        """Active polling interval in seconds, ``None`` when stopped."""
        return self._interval

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ------------------------------------------------------------------
    # Startup / discovery
    # ------------------------------------------------------------------

    async def initialize(self) -> list[Device]:
        """Validate configuration, authenticate up front, discover devices.

        Raises
        ------
        AllyConfigError
            Missing credentials or URLs; no polling should begin.
        """
        self._config.validate()
        await self._client.ensure_token()
        return await self.discover_devices()

    async def discover_devices(self) -> list[Device]:
        """List devices and create their objects. Known devices are updated in place."""
        _logger.info("Discovering devices")
        devices = await self._client.get_devices()
        _logger.info("Found %d devices", len(devices))

        for device in devices:
            key_id = device.key_id
            self._devices[key_id] = device
            await self._backend.create_object_if_absent(
                device_key(key_id),
                ObjectMetadata(kind="device", name=device.name, native=device.raw),
            )
            for code, metadata in _DEVICE_STATES.items():
                await self._backend.create_object_if_absent(state_key(key_id, code), metadata)
            await self._set_if_changed(state_key(key_id, "name"), device.name)
            await self._set_if_changed(state_key(key_id, "online"), device.online)
        return devices

    async def _set_if_changed(self, key: str, value: Any) -> None:
        current = await self._backend.get_state(key)
        if current is None or current.value != value:
            await self._backend.set_state(key, value, ack=True)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_cycle(self) -> CycleReport:
        """Poll every known device once and reconcile the results.

        Skipped entirely while the anti-race gate is closed. A failure for
        one device is logged and does not stop the others.
        """
        report = CycleReport()
        if self._reconciler.should_skip_cycle():
            _logger.debug("Skipping poll cycle right after a local write")
            report.gated = True
            return report

        if not self._devices:
            try:
                await self.discover_devices()
            except AllyError as exc:
                _logger.error("Device discovery failed: %s", exc)
                return report
            if not self._devices:
                return report

        for key_id, device in list(self._devices.items()):
            try:
                status = await self._client.get_device_status(device.id)
                result = await self._reconciler.apply_snapshot(key_id, status)
                await self._set_if_changed(
                    state_key(key_id, "raw"),
                    json.dumps(status, sort_keys=True, separators=(",", ":"), default=str),
                )
            except AllyError as exc:
                _logger.warning("Update failed for %s: %s", device.id, exc)
                report.failed.append(key_id)
                continue
            except Exception:
                _logger.exception("Reconciling %s failed", device.id)
                report.failed.append(key_id)
                continue
            report.devices.append(result)

        _logger.debug(
            "Poll cycle done: %d devices, %d failed",
            len(report.devices),
            len(report.failed),
        )
        return report

    def start_polling(self, interval_seconds: float | None = None) -> int:
        """Start periodic polling and the write consumer.

        The interval is clamped to the supported range; the first cycle runs
        immediately. Returns the effective interval in seconds.
        """
        if self._poll_task is not None:
            self._poll_task.cancel()
        if interval_seconds is None:
            interval = self._config.polling_interval_clamped
        else:
            interval = clamp_polling_interval(interval_seconds)
        self._interval = interval
        self._poll_task = asyncio.create_task(self._poll_loop(interval))
        if self._writer_task is None or self._writer_task.done():
            self._writer_task = asyncio.create_task(self._consume_writes())
        _logger.info("Polling started (every %ss)", interval)
        return interval

    async def stop_polling(self) -> None:
        """Stop polling, the write consumer and pending soft refreshes."""
        tasks = [t for t in (self._poll_task, self._writer_task, *self._background) if t is not None]
        self._poll_task = None
        self._writer_task = None
        self._interval = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._background.clear()
        _logger.info("Polling stopped")

    async def _poll_loop(self, interval: int) -> None:
        while True:
            try:
                await self.poll_cycle()
            except Exception:
                _logger.exception("Poll cycle failed")
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Local writes
    # ------------------------------------------------------------------

    def on_local_write(self, key: str, value: Any, ack: bool = False) -> bool:
        """Host event handler for state writes.

        Acknowledged writes are this library's own echoes and are ignored,
        as are keys that do not address a device code. Returns whether the
        write was queued.
        """
        if ack:
            return False
        parsed = parse_state_key(key)
        if parsed is None or parsed[1] in RESERVED_CODES:
            return False
        device_id, code = parsed
        try:
            self._writes.put_nowait(WriteIntent(device_id=device_id, code=code, value=value))
        except asyncio.QueueFull:
            _logger.warning("Write queue full, dropping %s=%r", key, value)
            return False
        return True

    async def handle_write(self, intent: WriteIntent) -> WriteResult | None:
        """Dispatch one write intent; failures are logged, never raised."""
        try:
            return await self._dispatcher.write(intent.device_id, intent.code, intent.value)
        except AllyValidationError as exc:
            _logger.warning("Rejected write %s.%s=%r: %s", intent.device_id, intent.code, intent.value, exc)
        except AllyError as exc:
            _logger.error("Write %s.%s=%r failed: %s", intent.device_id, intent.code, intent.value, exc)
        return None

    async def _consume_writes(self) -> None:
        while True:
            intent = await self._writes.get()
            try:
                await self.handle_write(intent)
            except Exception:
                _logger.exception("Write %s.%s=%r crashed", intent.device_id, intent.code, intent.value)
            finally:
                self._writes.task_done()

    async def join(self) -> None:
        """Wait until queued writes and scheduled soft refreshes are done."""
        await self._writes.join()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Soft refresh
    # ------------------------------------------------------------------

    def request_soft_refresh(self, device_id: str, codes: Sequence[str]) -> None:
        """Schedule a delayed targeted re-fetch of *codes* (fire and forget)."""
        task = asyncio.create_task(self.soft_refresh(device_id, tuple(codes)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def soft_refresh(self, device_id: str, codes: Sequence[str]) -> None:
        """Re-fetch one device and reconcile only *codes*.

        Bypasses the anti-race gate but not holds or lag suppression.
        Errors are logged and swallowed.
        """
        await asyncio.sleep(self._config.soft_refresh_delay)
        device = self._devices.get(device_id)
        if device is None:
            return
        try:
            status = await self._client.get_device_status(device.id)
            await self._reconciler.apply_snapshot(device_id, status, only_codes=frozenset(codes))
        except Exception as exc:
            _logger.warning("Soft refresh of %s failed: %s", device_id, exc)
