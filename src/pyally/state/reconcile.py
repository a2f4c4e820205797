"""Reconciliation engine.

Merges polled device snapshots into local state without clobbering
recent local writes. Three guards, each for a different timescale of
cloud staleness:

* **anti-race gate**: a whole poll cycle is skipped shortly after any
  local write;
* **hold**: a pending local write blocks non-matching polled values for
  its code until the cloud converges or the hold expires;
* **lag suppression**: for a short window after a local write, polled
  values that differ from the stored value are treated as stale echoes.

This is the only component allowed to write polled values into the state
backend.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Collection, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict

from pyally.config import AllyConfig
from pyally.ingestion.normalize import coerce, field_spec, normalize_code
from pyally.models.codes import RESERVED_CODES
from pyally.models.device import state_key
from pyally.state.events import Decision, ObjectMetadata, SnapshotResult
from pyally.state.policy import decide, within_window
from pyally.state.store import StateBackend

_logger = logging.getLogger(__name__)

_WriteKey = tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PendingWrite(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any
    registered_at: datetime
    expires_at: datetime


class ReconciliationState:
    """Write bookkeeping shared by the scheduler and the command dispatcher.

    Process-lifetime only; a restart clears every hold.
    """

    def __init__(self) -> None:
        self._pending: dict[_WriteKey, PendingWrite] = {}
        self._recent: dict[_WriteKey, datetime] = {}
        self.last_write_at: datetime | None = None

    def register(self, device_id: str, code: str, value: Any, *, now: datetime, hold: timedelta) -> PendingWrite:
        """Record a successful local write. A newer write replaces the older one."""
        pending = PendingWrite(value=value, registered_at=now, expires_at=now + hold)
        self._pending[(device_id, code)] = pending
        self._recent[(device_id, code)] = now
        self.last_write_at = now
        return pending

    def pending_for(self, device_id: str, code: str) -> PendingWrite | None:
        return self._pending.get((device_id, code))

    def clear_pending(self, device_id: str, code: str) -> None:
        self._pending.pop((device_id, code), None)

    def recent_write_at(self, device_id: str, code: str) -> datetime | None:
        return self._recent.get((device_id, code))

    @property
    def pending(self) -> dict[_WriteKey, PendingWrite]:
        return dict(self._pending)


class Reconciler:
    """Applies polled snapshots to a :class:`StateBackend`."""

    def __init__(
        self,
        backend: StateBackend,
        *,
        state: ReconciliationState | None = None,
        clock: Callable[[], datetime] = _utcnow,
        hold_window: timedelta = timedelta(seconds=60),
        lag_window: timedelta = timedelta(seconds=15),
        anti_race_pause: timedelta = timedelta(seconds=5),
    ) -> None:
        self._backend = backend
        self._state = state if state is not None else ReconciliationState()
        self._clock = clock
        self._hold_window = hold_window
        self._lag_window = lag_window
        self._anti_race_pause = anti_race_pause

    @classmethod
    def from_config(
        cls,
        backend: StateBackend,
        config: AllyConfig,
        *,
        state: ReconciliationState | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> Reconciler:
        return cls(
            backend,
            state=state,
            clock=clock,
            hold_window=timedelta(seconds=config.hold_window),
            lag_window=timedelta(seconds=config.lag_window),
            anti_race_pause=timedelta(seconds=config.anti_race_pause),
        )

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def backend(self) -> StateBackend:
        return self._backend

    def now(self) -> datetime:
        return self._clock()

    def register_write(self, device_id: str, code: str, value: Any) -> PendingWrite:
        """Protect a just-acknowledged local write from subsequent polls."""
        pending = self._state.register(device_id, code, value, now=self._clock(), hold=self._hold_window)
        _logger.debug("Holding %s.%s=%r until %s", device_id, code, value, pending.expires_at.isoformat())
        return pending

    def should_skip_cycle(self) -> bool:
        """Anti-race gate: True while the last local write is too recent."""
        last = self._state.last_write_at
        return last is not None and within_window(self._clock(), last, self._anti_race_pause)

    async def sync_metadata(self, key: str, code: str, value: Any) -> None:
        """Create the state object, or update it when its metadata drifted."""
        spec = field_spec(code, value)
        metadata = ObjectMetadata(
            name=code,
            type=spec.type,
            role=spec.role,
            unit=spec.unit,
            read=True,
            write=spec.writable,
        )
        existing = await self._backend.get_object(key)
        if existing is None:
            await self._backend.create_object_if_absent(key, metadata)
        elif existing != metadata:
            await self._backend.update_object_metadata(key, metadata)

    async def apply_snapshot(
        self,
        device_id: str,
        status: Mapping[str, Any],
        *,
        only_codes: Collection[str] | None = None,
    ) -> SnapshotResult:
        """Reconcile one device's polled ``code -> raw value`` map.

        Parameters
        ----------
        device_id
            Sanitized device id used in state keys.
        status
            Raw polled values; codes are normalized and values coerced here.
        only_codes
            Restrict reconciliation to these canonical codes (soft refresh).
        """
        result = SnapshotResult(device_id=device_id)
        now = self._clock()

        for raw_code, raw_value in status.items():
            code = normalize_code(raw_code)
            if not code or code in RESERVED_CODES:
                continue
            if only_codes is not None and code not in only_codes:
                continue

            value = coerce(code, raw_value)
            if isinstance(value, float) and not math.isfinite(value):
                _logger.debug("Dropping non-numeric %s.%s=%r", device_id, code, raw_value)
                result.invalid += 1
                continue
            if isinstance(value, (dict, list)):
                value = json.dumps(value, separators=(",", ":"))

            key = state_key(device_id, code)
            await self.sync_metadata(key, code, value)

            stored_state = await self._backend.get_state(key)
            pending = self._state.pending_for(device_id, code)
            verdict = decide(
                code=code,
                incoming=value,
                stored=stored_state.value if stored_state is not None else None,
                now=now,
                has_stored=stored_state is not None,
                pending_value=pending.value if pending is not None else None,
                pending_expires_at=pending.expires_at if pending is not None else None,
                recent_write_at=self._state.recent_write_at(device_id, code),
                lag_window=self._lag_window,
            )

            if verdict.clear_pending:
                self._state.clear_pending(device_id, code)
                if verdict.converged:
                    _logger.debug("Cloud converged on %s.%s=%r", device_id, code, value)
                else:
                    _logger.debug("Hold expired for %s.%s", device_id, code)

            result.record(verdict.decision)
            if verdict.decision == Decision.CHANGED:
                await self._backend.set_state(key, value, ack=True)
            elif verdict.decision == Decision.HELD:
                _logger.debug(
                    "Holding %s.%s: cloud=%r pending=%r",
                    device_id,
                    code,
                    value,
                    pending.value if pending is not None else None,
                )
            elif verdict.decision == Decision.SUPPRESSED:
                _logger.debug("Suppressing lagging %s.%s=%r", device_id, code, value)

        return result
