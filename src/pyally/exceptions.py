"""Custom exception hierarchy for pyally."""

from __future__ import annotations

from typing import Any


class AllyError(Exception):
    """Base exception for all pyally errors."""


class AllyConfigError(AllyError):
    """Invalid or missing configuration (credentials, URLs)."""


class AllyValidationError(AllyError):
    """A local write was rejected before reaching the API."""

    def __init__(self, message: str, *, code: str = "", value: Any = None) -> None:
        self.code = code
        self.value = value
        super().__init__(message)


class AllyApiError(AllyError):
    """API returned a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.endpoint = endpoint
        super().__init__(message)


class AllyAuthenticationError(AllyApiError):
    """Token endpoint is unconfigured, unreachable, or rejected the credentials."""


class AllyTransportError(AllyApiError):
    """Network-level failure (connection error, timeout, invalid JSON)."""


class AllySessionExpiredError(AllyApiError):
    """Bearer token rejected by the API (HTTP 401).

    The client catches this internally to re-authenticate and retry the
    request once; a second rejection propagates to the caller.
    """
