"""Client configuration for pyally."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyally._constants import (
    ANTI_RACE_PAUSE_S,
    BASE_URL,
    HOLD_WINDOW_S,
    LAG_WINDOW_S,
    POLL_INTERVAL_DEFAULT_S,
    POLL_INTERVAL_MAX_S,
    POLL_INTERVAL_MIN_S,
    REQUEST_TIMEOUT_S,
    SOFT_REFRESH_DELAY_S,
    TOKEN_URL,
    WRITE_QUEUE_SIZE,
)
from pyally.exceptions import AllyConfigError


def clamp_polling_interval(value: Any) -> int:
    """Clamp a polling interval (seconds) to the supported range.

    Non-numeric input falls back to the default interval.
    """
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        seconds = POLL_INTERVAL_DEFAULT_S
    return max(POLL_INTERVAL_MIN_S, min(POLL_INTERVAL_MAX_S, seconds))


@dataclasses.dataclass(frozen=True)
class AllyConfig:
    """Client configuration.

    Parameters
    ----------
    api_key : str
        OAuth2 client id issued for the Ally API.
    api_secret : str
        OAuth2 client secret.
    token_url : str
        Client-credentials token endpoint.
    base_url : str
        API base URL (no trailing slash required).
    scope : str
        Optional OAuth2 scope sent with the token request.
    polling_interval : int
        Seconds between poll cycles. Clamped by the scheduler, see
        :attr:`polling_interval_clamped`.
    anti_race_pause : float
        Seconds after any local write during which a whole poll cycle
        is skipped.
    hold_window : float
        Seconds a pending local write is protected from non-matching polls.
    lag_window : float
        Seconds after a local write during which cloud values that differ
        from the stored value are treated as stale echoes.
    soft_refresh_delay : float
        Delay before the targeted re-fetch that follows a local write.
    request_timeout : float
        Total timeout for a single HTTP request.
    write_queue_size : int
        Capacity of the local write-intent channel.
    """

    api_key: str
    api_secret: str
    token_url: str = TOKEN_URL
    base_url: str = BASE_URL
    scope: str = ""
    polling_interval: int = POLL_INTERVAL_DEFAULT_S
    anti_race_pause: float = ANTI_RACE_PAUSE_S
    hold_window: float = HOLD_WINDOW_S
    lag_window: float = LAG_WINDOW_S
    soft_refresh_delay: float = SOFT_REFRESH_DELAY_S
    request_timeout: float = REQUEST_TIMEOUT_S
    write_queue_size: int = WRITE_QUEUE_SIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", (self.base_url or "").rstrip("/"))
        # Lag suppression must end no later than the hold it shadows.
        if self.lag_window > self.hold_window:
            object.__setattr__(self, "lag_window", self.hold_window)

    @property
    def polling_interval_clamped(self) -> int:
        return clamp_polling_interval(self.polling_interval)

    def validate(self) -> None:
        """Raise :class:`AllyConfigError` when required settings are missing."""
        missing = [
            name
            for name in ("api_key", "api_secret", "token_url", "base_url")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise AllyConfigError(f"Missing required configuration: {', '.join(missing)}")

    @classmethod
    def from_env(cls, **overrides: Any) -> AllyConfig:
        """Create configuration from environment variables.

        Reads ``ALLY_API_KEY``, ``ALLY_API_SECRET`` and optional ``ALLY_*``
        variables. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        AllyConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "ALLY_API_KEY": "api_key",
            "ALLY_API_SECRET": "api_secret",
            "ALLY_TOKEN_URL": "token_url",
            "ALLY_BASE_URL": "base_url",
            "ALLY_SCOPE": "scope",
        }
        config_kwargs: dict[str, Any] = {"api_key": "", "api_secret": ""}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric settings, handled separately
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "ALLY_POLLING_INTERVAL": ("polling_interval", int),
            "ALLY_ANTI_RACE_PAUSE": ("anti_race_pause", float),
            "ALLY_HOLD_WINDOW": ("hold_window", float),
            "ALLY_LAG_WINDOW": ("lag_window", float),
            "ALLY_REQUEST_TIMEOUT": ("request_timeout", float),
        }
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = caster(float(val)) if caster is int else caster(val)
                except ValueError as exc:
                    raise AllyConfigError(f"{env_key} must be numeric, got {val!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
