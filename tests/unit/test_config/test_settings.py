"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from sensorrelay.config.settings import (
    AuthConfig,
    DeviceConfig,
    HistoryConfig,
    Settings,
    load_settings,
)

_DEPLOYMENT_VARS = ("PORT", "DEVICE_API_KEY", "JWT_SECRET", "ESP_IP")
SHIPPED_CONFIG = Path(__file__).resolve().parents[3] / "config" / "sensorrelay.yaml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate from the developer's environment and any .env in the repo."""
    for name in _DEPLOYMENT_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    def test_default_settings(self) -> None:
        settings = Settings()
        assert settings.server.port == 3000
        assert settings.device.api_key.get_secret_value() == "123456789"
        assert settings.device.silence_timeout == 120.0
        assert settings.device.sweep_interval == 30.0
        assert settings.history.max_points == 1000
        assert settings.relay.mode == "push"
        assert settings.auth.mode == "device"

    def test_secrets_are_masked(self) -> None:
        assert "123456789" not in repr(DeviceConfig())
        assert "change-me" not in repr(AuthConfig())

    def test_invalid_modes_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Settings(relay={"mode": "mqtt"})
        with pytest.raises(pydantic.ValidationError):
            Settings(auth={"mode": "oauth"})

    def test_history_must_hold_something(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            HistoryConfig(max_points=0)

    def test_prefixed_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SENSORRELAY_HISTORY__MAX_POINTS", "50")
        assert Settings().history.max_points == 50


class TestLoadSettings:
    def test_missing_file_falls_back_to_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.server.port == 3000

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "relay.yaml"
        path.write_text(
            "server:\n"
            "  port: 8081\n"
            "relay:\n"
            "  mode: proxy\n"
            "device:\n"
            "  base_url: http://10.0.0.7\n"
            "history:\n"
            "  max_points: 200\n"
        )
        settings = load_settings(path)
        assert settings.server.port == 8081
        assert settings.relay.mode == "proxy"
        assert settings.device.base_url == "http://10.0.0.7"
        assert settings.history.max_points == 200

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path).auth.mode == "device"

    def test_deployment_vars_win_over_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "relay.yaml"
        path.write_text("server:\n  port: 8081\ndevice:\n  api_key: from-yaml\n")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("DEVICE_API_KEY", "from-env")
        monkeypatch.setenv("JWT_SECRET", "signing-key")
        settings = load_settings(path)
        assert settings.server.port == 9000
        assert settings.device.api_key.get_secret_value() == "from-env"
        assert settings.auth.jwt_secret.get_secret_value() == "signing-key"

    def test_esp_ip_sets_device_url(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ESP_IP", "192.168.4.20")
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.device.base_url == "http://192.168.4.20"

    def test_esp_ip_overrides_yaml_url(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "relay.yaml"
        path.write_text("device:\n  base_url: http://esp.local\n")
        monkeypatch.setenv("ESP_IP", "192.168.4.20")
        assert load_settings(path).device.base_url == "http://192.168.4.20"

    def test_esp_ip_overrides_shipped_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ESP_IP", "10.0.0.42")
        settings = load_settings(SHIPPED_CONFIG)
        assert settings.device.base_url == "http://10.0.0.42"
        assert settings.server.port == 3000

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        # empty counts as unset, and monkeypatch removes the loaded value afterwards
        monkeypatch.setenv("DEVICE_API_KEY", "")
        (tmp_path / ".env").write_text("# deployment\nDEVICE_API_KEY=from-dotenv\n")
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.device.api_key.get_secret_value() == "from-dotenv"
