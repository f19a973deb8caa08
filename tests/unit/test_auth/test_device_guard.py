"""Tests for the device shared-secret guard."""

from __future__ import annotations

import pytest

from sensorrelay.auth.device import DeviceGuard
from sensorrelay.errors import Unauthorized


class TestDeviceGuard:
    def test_accepts_exact_key(self) -> None:
        DeviceGuard("123456789").check("123456789")

    @pytest.mark.parametrize("credential", [None, "", "12345678", "1234567890", " 123456789"])
    def test_rejects_anything_else(self, credential: str | None) -> None:
        with pytest.raises(Unauthorized, match="Invalid device API key"):
            DeviceGuard("123456789").check(credential)

    def test_empty_key_is_a_config_error(self) -> None:
        with pytest.raises(ValueError):
            DeviceGuard("")

    def test_error_maps_to_401(self) -> None:
        with pytest.raises(Unauthorized) as info:
            DeviceGuard("k").check("x")
        assert info.value.status_code == 401
        assert info.value.to_dict() == {"error": "unauthorized", "message": "Invalid device API key"}
