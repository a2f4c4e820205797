"""Tests for device parsing, token responses and state key helpers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pyally.ingestion.devices import extract_device_items, flatten_status, parse_device, parse_device_list
from pyally.models.device import Device, parse_state_key, sanitize_id, state_key
from pyally.models.token import TokenResponse

# ------------------------------------------------------------------
# State keys
# ------------------------------------------------------------------


class TestStateKeys:
    def test_sanitize_replaces_unsafe_characters(self) -> None:
        assert sanitize_id(" a.b/c d ") == "a_b_c_d"
        assert sanitize_id(12345) == "12345"
        assert sanitize_id("ok-id_1") == "ok-id_1"

    def test_state_key_round_trip(self) -> None:
        assert state_key("rt1", "temp_set") == "devices.rt1.temp_set"
        assert parse_state_key("devices.rt1.temp_set") == ("rt1", "temp_set")

    def test_namespace_prefix_ignored(self) -> None:
        assert parse_state_key("ally.0.devices.rt1.mode") == ("rt1", "mode")

    @pytest.mark.parametrize(
        "key",
        ["devices.rt1", "info.connection", "devices.rt1.temp_set.extra", "devices..temp_set", ""],
    )
    def test_non_state_keys(self, key: str) -> None:
        assert parse_state_key(key) is None


# ------------------------------------------------------------------
# Device model
# ------------------------------------------------------------------


class TestDevice:
    def test_aliases_and_defaults(self) -> None:
        device = Device.model_validate({"deviceId": 42, "deviceName": "", "online": None})
        assert device.id == "42"
        assert device.name == "Device"
        assert device.type == "unknown"
        assert device.online is True

    def test_key_id_is_sanitized(self) -> None:
        assert Device(id="a:b").key_id == "a_b"

    def test_frozen(self) -> None:
        device = Device(id="rt1")
        with pytest.raises(ValidationError):
            device.name = "x"  # type: ignore[misc]


# ------------------------------------------------------------------
# Device lists and status maps
# ------------------------------------------------------------------


class TestDeviceParsing:
    def test_list_shapes(self) -> None:
        item = {"id": "rt1"}
        assert extract_device_items([item]) == [item]
        assert extract_device_items({"devices": [item]}) == [item]
        assert extract_device_items({"result": [item]}) == [item]
        assert extract_device_items({"result": {"devices": [item, "junk"]}}) == [item]
        assert extract_device_items({"result": None}) == []

    def test_status_list_shape(self) -> None:
        payload = {"result": {"status": [{"code": "Temperature", "value": 201}, {"value": 1}, "junk"]}}
        assert flatten_status(payload) == {"temp_current": 201}

    def test_status_mapping_shape_keeps_unknown_codes(self) -> None:
        payload = {"status": {"temp_set": 210, "vendor_extra": "x", "nested": {"a": 1}}}
        assert flatten_status(payload) == {"temp_set": 210, "vendor_extra": "x"}

    def test_flat_object_keeps_only_registered_codes(self) -> None:
        payload = {"id": "rt1", "name": "Room", "humidity": 455, "temp_set": 210}
        assert flatten_status(payload) == {"humidity_value": 455, "temp_set": 210}

    def test_id_falls_back_through_keys_then_name(self) -> None:
        by_uuid = parse_device({"id": "", "uuid": "u-1", "name": "Hall"})
        by_name = parse_device({"name": "Hall"})
        assert by_uuid is not None and by_uuid.id == "u-1"
        assert by_name is not None and by_name.id == "Hall"
        assert parse_device({"online": True}) is None

    def test_raw_payload_preserved(self) -> None:
        item = {"id": "rt1", "status": [{"code": "temp_set", "value": 210}]}
        device = parse_device(item)
        assert device is not None
        assert device.raw == item
        assert device.status == {"temp_set": 210}

    def test_empty_list_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        assert parse_device_list({"result": []}) == []
        assert "no devices" in caplog.text


# ------------------------------------------------------------------
# Token response
# ------------------------------------------------------------------


class TestTokenResponse:
    @pytest.mark.parametrize("expires_in", [None, "", 0])
    def test_missing_lifetime_defaults(self, expires_in: object) -> None:
        token = TokenResponse.model_validate({"access_token": "t", "expires_in": expires_in})
        assert token.expires_in == 1800

    def test_lifetime_parsed(self) -> None:
        assert TokenResponse.model_validate({"access_token": "t", "expires_in": "3600"}).expires_in == 3600

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TokenResponse.model_validate({"access_token": ""})
