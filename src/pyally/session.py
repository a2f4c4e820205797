"""Cached OAuth2 access token."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

from pyally._constants import DEFAULT_TOKEN_LIFETIME_S, TOKEN_SAFETY_MARGIN_S


class Session(BaseModel):
    """Access token state after a successful client-credentials exchange.

    Parameters
    ----------
    access_token : str
        Bearer token attached to API requests.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the token was
        obtained. Defaults to *now* if not provided.
    ttl : float
        Lifetime reported by the token endpoint, in seconds.
    safety_margin : float
        The token is treated as expired this many seconds before its
        real expiry so that in-flight requests never carry a stale token.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    access_token: str
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_TOKEN_LIFETIME_S
    safety_margin: float = TOKEN_SAFETY_MARGIN_S

    @property
    def expires_at(self) -> float:
        """Absolute monotonic expiry time."""
        return self.created_at + self.ttl

    def is_expired(self, now: float | None = None) -> bool:
        """Whether the token is within its safety margin of expiry."""
        if now is None:
            now = time.monotonic()
        return now >= self.expires_at - self.safety_margin
