"""Deterministic reconciliation policy.

This module intentionally contains *no* I/O. Given the incoming polled
value, the stored value and the write bookkeeping for one code, it decides
whether the value is applied, skipped, held for a pending local write, or
suppressed as a lagging cloud echo.

Precedence: an active hold always wins. Lag suppression is only consulted
once no hold is active (none registered, converged, or expired).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pyally.ingestion.normalize import values_match
from pyally.state.events import Decision


@dataclass(frozen=True, slots=True)
class Verdict:
    decision: Decision
    clear_pending: bool = False
    """The pending write for this code should be removed."""
    converged: bool = False
    """The pending write was removed because the cloud caught up."""


def is_expired(now: datetime, expires_at: datetime) -> bool:
    return now >= expires_at


def within_window(now: datetime, since: datetime, window: timedelta) -> bool:
    return now - since < window


def decide(
    *,
    code: str,
    incoming: Any,
    stored: Any,
    now: datetime,
    has_stored: bool = True,
    pending_value: Any = None,
    pending_expires_at: datetime | None = None,
    recent_write_at: datetime | None = None,
    lag_window: timedelta,
) -> Verdict:
    """Classify one polled value.

    Parameters
    ----------
    incoming
        Coerced cloud value.
    stored
        Value currently in local state.
    has_stored
        Whether local state exists for this code at all; a stored
        ``None`` is still a value.
    pending_value, pending_expires_at
        The pending local write for this code, if any.
    recent_write_at
        Time of the last successful local write for this code, if any.
    lag_window
        How long after a local write differing cloud values are ignored.
    """
    clear_pending = False
    converged = False

    if pending_expires_at is not None:
        if is_expired(now, pending_expires_at):
            clear_pending = True
        elif values_match(code, incoming, pending_value):
            clear_pending = True
            converged = True
        else:
            return Verdict(Decision.HELD)

    if (
        recent_write_at is not None
        and within_window(now, recent_write_at, lag_window)
        and not values_match(code, incoming, stored)
    ):
        return Verdict(Decision.SUPPRESSED, clear_pending=clear_pending, converged=converged)

    if has_stored and values_match(code, incoming, stored):
        return Verdict(Decision.SKIPPED, clear_pending=clear_pending, converged=converged)
    return Verdict(Decision.CHANGED, clear_pending=clear_pending, converged=converged)
