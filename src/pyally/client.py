"""High-level async client for the Ally cloud API."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from pyally._constants import USER_AGENT
from pyally._redact import redact_for_log
from pyally._transport import HttpTransport, Transport
from pyally.config import AllyConfig
from pyally.exceptions import (
    AllyApiError,
    AllyAuthenticationError,
    AllyError,
    AllySessionExpiredError,
)
from pyally.ingestion.devices import flatten_status, parse_device_list
from pyally.models.device import Device, sanitize_id
from pyally.models.token import TokenResponse
from pyally.session import Session

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_HEADERS: dict[str, str] = {
    "accept": "application/json",
    "user-agent": USER_AGENT,
}


class AllyClient:
    """Async client for the Ally REST API.

    Usage::

        async with AllyClient(config) as client:
            devices = await client.get_devices()
            status = await client.get_device_status(devices[0].id)
    """

    def __init__(
        self,
        config: AllyConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._injected_transport = transport is not None
        self._clock = clock
        self._session: Session | None = None

    @property
    def config(self) -> AllyConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AllyClient:
        if not self._injected_transport:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._http_session, timeout=self._config.request_timeout)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._injected_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def ensure_token(self) -> str:
        """Return a valid access token, requesting a new one if needed.

        Concurrent callers may each trigger a refresh; the last response
        wins.
        """
        if self._session is not None and not self._session.is_expired(self._clock()):
            return self._session.access_token

        token_url = self._config.token_url
        if not token_url:
            raise AllyAuthenticationError("token_url not configured")

        transport = self._require_transport()
        form = {"grant_type": "client_credentials"}
        if self._config.scope:
            form["scope"] = self._config.scope

        _logger.info("Refreshing OAuth2 token")
        try:
            response = await transport.request(
                "POST",
                token_url,
                headers={**_DEFAULT_HEADERS, "content-type": "application/x-www-form-urlencoded"},
                form=form,
                basic_auth=(self._config.api_key, self._config.api_secret),
            )
        except AllyApiError as exc:
            raise AllyAuthenticationError(
                f"Token request failed: {exc}",
                status_code=exc.status_code,
                endpoint=token_url,
            ) from exc

        if not response.ok:
            raise AllyAuthenticationError(
                f"Token request failed: HTTP {response.status} {redact_for_log(response.body)}",
                status_code=response.status,
                body=response.body,
                endpoint=token_url,
            )

        try:
            token = TokenResponse.model_validate(response.body)
        except ValidationError as exc:
            raise AllyAuthenticationError(
                "Token response missing access_token",
                status_code=response.status,
                body=redact_for_log(response.body),
                endpoint=token_url,
            ) from exc

        self._session = Session(
            access_token=token.access_token,
            created_at=self._clock(),
            ttl=token.expires_in,
        )
        _logger.info("Token acquired, expires in ~%ss", int(token.expires_in))
        return token.access_token

    def invalidate_token(self) -> None:
        """Force token invalidation (next call will re-authenticate)."""
        self._session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise AllyError("Client not initialized. Use 'async with AllyClient(...) as client:'")
        return self._transport

    async def _call_with_reauth(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run an API call, retrying once on an authorization failure."""
        try:
            return await fn()
        except AllySessionExpiredError:
            _logger.info("Access token rejected, re-authenticating")
            self.invalidate_token()
            await self.ensure_token()
            return await fn()

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded body.

        Raises
        ------
        AllyApiError
            On any non-2xx response, including a 401 that persists after
            one re-authentication.
        """
        url = f"{self._config.base_url}{path}"

        async def _call() -> Any:
            token = await self.ensure_token()
            transport = self._require_transport()
            merged = {**_DEFAULT_HEADERS, **(headers or {}), "authorization": f"Bearer {token}"}
            if body is not None:
                merged.setdefault("content-type", "application/json")
            response = await transport.request(method, url, headers=merged, json_body=body)
            if response.status == 401:
                raise AllySessionExpiredError(
                    f"HTTP 401 from {method} {path}",
                    status_code=401,
                    body=response.body,
                    endpoint=path,
                )
            if not response.ok:
                raise AllyApiError(
                    f"HTTP {response.status} from {method} {path}: {str(response.body)[:200]}",
                    status_code=response.status,
                    body=response.body,
                    endpoint=path,
                )
            _logger.debug("%s %s -> %s", method, path, redact_for_log(response.body))
            return response.body

        try:
            return await self._call_with_reauth(_call)
        except AllySessionExpiredError as exc:
            raise AllyApiError(
                f"HTTP 401 from {method} {path} after re-authentication",
                status_code=401,
                body=exc.body,
                endpoint=path,
            ) from exc

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def get_devices(self) -> list[Device]:
        """Fetch all devices associated with the account."""
        payload = await self.request("GET", "/devices")
        return parse_device_list(payload)

    async def get_device_status(self, device_id: str) -> dict[str, Any]:
        """Fetch the status map (canonical code -> raw value) of one device.

        Tries the dedicated status endpoint, then the device endpoint, then
        re-lists all devices. Each step only runs when the previous one
        failed.
        """
        quoted = quote(device_id, safe="")
        try:
            return flatten_status(await self.request("GET", f"/devices/{quoted}/status"))
        except AllyAuthenticationError:
            raise
        except AllyApiError as exc:
            _logger.debug("Status endpoint failed for %s: %s", device_id, exc)

        try:
            return flatten_status(await self.request("GET", f"/devices/{quoted}"))
        except AllyAuthenticationError:
            raise
        except AllyApiError as exc:
            _logger.debug("Device endpoint failed for %s: %s", device_id, exc)

        for device in await self.get_devices():
            if device.id == device_id or device.key_id == sanitize_id(device_id):
                return dict(device.status)
        return {}

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(self, device_id: str, commands: Sequence[Mapping[str, Any]]) -> Any:
        """Submit ``{"commands": [{"code": ..., "value": ...}, ...]}`` to a device."""
        payload = {"commands": [{"code": c["code"], "value": c["value"]} for c in commands]}
        _logger.debug("Sending commands to %s: %s", device_id, payload)
        return await self.request("POST", f"/devices/{quote(device_id, safe='')}/commands", payload)
