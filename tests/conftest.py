"""Shared test fixtures for the sensorrelay test suite.

Provides a controllable clock, relay state wired to a broadcast hub,
sample readings, settings for each auth mode and ready-made test clients.
"""

from __future__ import annotations

import random
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from sensorrelay.auth.device import DeviceGuard
from sensorrelay.broadcast.hub import BroadcastHub
from sensorrelay.config.settings import Settings
from sensorrelay.domain.models import ReadingPayload
from sensorrelay.relay.state import RelayState
from sensorrelay.server.app import create_app

_DEVICE_KEY = "test-device-key"
_ADMIN_PASSWORD = "s3cret-admin"

# 2025-01-01T12:00:00Z
_START = 1_735_732_800.0


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = _START) -> None:
        self.start = start
        self.now = start

    def __call__(self) -> float:
        return self.now

    @property
    def start_ms(self) -> int:
        return int(self.start * 1000)

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_settings(**sections: dict[str, Any]) -> Settings:
    """Settings with a known device key and admin password, plus overrides."""
    data: dict[str, Any] = {
        "device": {"api_key": _DEVICE_KEY},
        "auth": {"mode": "device", "jwt_secret": "test-signing-secret", "admin_password": _ADMIN_PASSWORD},
        "history": {"max_points": 5, "seed_simulated": False},
    }
    for name, values in sections.items():
        data.setdefault(name, {}).update(values)
    return Settings(**data)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def device_key() -> str:
    return _DEVICE_KEY


@pytest.fixture
def admin_password() -> str:
    return _ADMIN_PASSWORD


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub(queue_size=10)


@pytest.fixture
def relay(hub: BroadcastHub, clock: FakeClock, device_key: str) -> RelayState:
    """Relay state with device auth, capacity 5 and no seeded reading."""
    return RelayState(
        hub=hub,
        history_capacity=5,
        silence_timeout=120.0,
        device_guard=DeviceGuard(device_key),
        seed_simulated=False,
        clock=clock,
        rng=random.Random(42),
    )


@pytest.fixture
def sample_payload() -> ReadingPayload:
    return ReadingPayload(temperature=23.4, humidity=51.0)


# ---------------------------------------------------------------------------
# Settings / app fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Build test settings with per-section overrides, e.g. ``relay={"mode": "proxy"}``."""
    return _make_settings


@pytest.fixture
def settings() -> Settings:
    return _make_settings()


@pytest.fixture
def client(settings: Settings, clock: FakeClock) -> TestClient:
    """A test client in device-auth push mode with a fake clock."""
    app = create_app(settings, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def operator_client() -> TestClient:
    """A test client with operator accounts enabled, on the real clock so tokens verify."""
    app = create_app(_make_settings(auth={"mode": "operator"}))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def device_headers(device_key: str) -> dict[str, str]:
    return {"X-API-Key": device_key}
