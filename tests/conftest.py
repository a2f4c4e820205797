from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import unquote

import pytest

from pyally._transport import TransportResponse
from pyally.config import AllyConfig

TOKEN_URL = "https://auth.example.com/oauth2/token"
BASE_URL = "https://api.example.com/ally"


@dataclass
class Call:
    method: str
    path: str
    headers: dict[str, str]
    json_body: Any = None
    form: dict[str, str] | None = None
    basic_auth: tuple[str, str] | None = None


@dataclass
class FakeAllyCloud:
    """In-memory Ally cloud implementing the ``Transport`` protocol."""

    devices: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)
    expires_in: float | None = 3600
    token_status: int = 200
    reject_all_tokens: bool = False
    fail_paths: dict[str, int] = field(default_factory=dict)
    rejected_command_values: list[Any] = field(default_factory=list)
    commands: list[tuple[str, list[dict[str, Any]]]] = field(default_factory=list)
    _issued: int = 0
    _valid_tokens: set[str] = field(default_factory=set)

    def add_device(self, device_id: str, status: Mapping[str, Any], *, name: str = "Room", online: bool = True) -> None:
        self.devices[device_id] = {
            "id": device_id,
            "name": name,
            "device_type": "Danfoss Ally Radiator Thermostat",
            "online": online,
            "status": [{"code": code, "value": value} for code, value in status.items()],
        }

    def set_status(self, device_id: str, code: str, value: Any) -> None:
        entries = self.devices[device_id]["status"]
        for entry in entries:
            if entry["code"] == code:
                entry["value"] = value
                return
        entries.append({"code": code, "value": value})

    def expire_tokens(self) -> None:
        self._valid_tokens.clear()

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call.method == method and call.path == path)

    @property
    def token_requests(self) -> int:
        return sum(1 for call in self.calls if call.path == TOKEN_URL)

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
        path = url[len(BASE_URL) :] if url.startswith(BASE_URL) else url
        self.calls.append(
            Call(
                method=method,
                path=path,
                headers=dict(headers or {}),
                json_body=json_body,
                form=dict(form) if form is not None else None,
                basic_auth=basic_auth,
            )
        )

        if url == TOKEN_URL:
            return self._issue_token()

        auth = (headers or {}).get("authorization", "")
        token = auth.removeprefix("Bearer ")
        if self.reject_all_tokens or token not in self._valid_tokens:
            return TransportResponse(status=401, body={"error": "invalid_token"})

        if path in self.fail_paths:
            return TransportResponse(status=self.fail_paths[path], body={"error": "boom"})

        return self._route(method, path, json_body)

    def _issue_token(self) -> TransportResponse:
        if self.token_status != 200:
            return TransportResponse(status=self.token_status, body={"error": "invalid_client"})
        self._issued += 1
        token = f"token-{self._issued}"
        self._valid_tokens.add(token)
        body: dict[str, Any] = {"access_token": token, "token_type": "Bearer"}
        if self.expires_in is not None:
            body["expires_in"] = self.expires_in
        return TransportResponse(status=200, body=body)

    def _route(self, method: str, path: str, json_body: Any) -> TransportResponse:
        parts = [unquote(part) for part in path.strip("/").split("/")]
        if method == "GET" and parts == ["devices"]:
            return TransportResponse(status=200, body={"result": list(self.devices.values())})
        if len(parts) >= 2 and parts[0] == "devices":
            device = self.devices.get(parts[1])
            if device is None:
                return TransportResponse(status=404, body={"error": "not found"})
            if method == "GET" and len(parts) == 2:
                return TransportResponse(status=200, body={"result": device})
            if method == "GET" and parts[2:] == ["status"]:
                return TransportResponse(status=200, body={"result": device["status"]})
            if method == "POST" and parts[2:] == ["commands"]:
                commands = list(json_body["commands"])
                for command in commands:
                    value = command["value"]
                    if any(value is rejected for rejected in self.rejected_command_values):
                        return TransportResponse(status=400, body={"error": "invalid value"})
                self.commands.append((parts[1], commands))
                return TransportResponse(status=200, body={"result": True, "success": True})
        return TransportResponse(status=404, body={"error": "unknown route"})


class FakeClock:
    """Manually advanced UTC clock, also usable as a monotonic clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def monotonic(self) -> float:
        return self.now.timestamp()


@pytest.fixture
def config() -> AllyConfig:
    return AllyConfig(
        api_key="key",
        api_secret="secret",
        token_url=TOKEN_URL,
        base_url=BASE_URL,
        soft_refresh_delay=0.0,
    )


@pytest.fixture
def cloud() -> FakeAllyCloud:
    return FakeAllyCloud()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
