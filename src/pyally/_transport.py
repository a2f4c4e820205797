"""HTTP transport for the Ally REST API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from pyally.exceptions import AllyTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Status and decoded body of an HTTP response.

    ``body`` is the parsed JSON document, or the raw text when the
    response is not JSON.
    """

    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Structural transport interface used by :class:`pyally.client.AllyClient`.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        basic_auth: tuple[str, str] | None = None,
    ) -> TransportResponse: ...


class HttpTransport:
    """aiohttp-backed transport. Non-2xx statuses are returned, not raised."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        basic_auth: tuple[str, str] | None = None,
    ) -> TransportResponse:
        kwargs: dict[str, Any] = {"headers": dict(headers or {}), "timeout": self._timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if form is not None:
            kwargs["data"] = dict(form)
        if basic_auth is not None:
            kwargs["auth"] = aiohttp.BasicAuth(*basic_auth)

        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, **kwargs) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise AllyTransportError(f"{method} {url} failed: {exc}", endpoint=url) from exc

        if not text.strip():
            return TransportResponse(status=status, body=None)
        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError:
            if 200 <= status < 300:
                raise AllyTransportError(
                    f"Invalid JSON from {url}: {text[:200]}",
                    status_code=status,
                    endpoint=url,
                ) from None
            body = text[:500]
        return TransportResponse(status=status, body=body)
