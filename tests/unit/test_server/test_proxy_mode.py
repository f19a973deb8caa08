"""Tests for proxy mode, where reads and LED control go to the device's own server."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from sensorrelay.config.settings import Settings
from sensorrelay.device.upstream import UpstreamDevice
from sensorrelay.server.app import create_app

DEVICE_URL = "http://esp.test"


class FakeDevice:
    """Stands in for the firmware's web server behind an httpx MockTransport."""

    def __init__(self) -> None:
        self.reading = {"temperature": 21.5, "humidity": 55.0}
        self.led = {"r": 0, "g": 150, "b": 0, "brightness": 128, "effect": "solid"}
        self.requests: list[tuple[str, str]] = []
        self.down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.down:
            raise httpx.ConnectError("connect ECONNREFUSED 192.168.232.67:80")
        if request.url.path == "/sensor-data":
            return httpx.Response(200, json=self.reading)
        if request.url.path == "/led-status":
            return httpx.Response(200, json=self.led)
        if request.url.path == "/led" and request.method == "POST":
            self.led.update(json.loads(request.content))
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(404)


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def proxy_client(device: FakeDevice, settings_factory: Callable[..., Settings]) -> TestClient:
    upstream = UpstreamDevice(DEVICE_URL, timeout=1.0, transport=httpx.MockTransport(device))
    app = create_app(settings_factory(relay={"mode": "proxy"}), upstream=upstream)
    with TestClient(app) as c:
        yield c


class TestProxyReads:
    def test_sensor_data_is_fetched_and_recorded(self, proxy_client: TestClient, device: FakeDevice) -> None:
        resp = proxy_client.get("/api/sensor-data")
        assert resp.status_code == 200
        data = resp.json()
        assert data["temperature"] == 21.5
        assert data["connected"] is True
        assert ("GET", "/sensor-data") in device.requests
        assert len(proxy_client.get("/api/history").json()) == 1

    def test_led_status_comes_from_device(self, proxy_client: TestClient, device: FakeDevice) -> None:
        device.led["effect"] = "rainbow"
        assert proxy_client.get("/led-status").json()["effect"] == "rainbow"

    def test_health_reports_proxy(self, proxy_client: TestClient) -> None:
        assert proxy_client.get("/health").json()["mode"] == "proxy"


class TestProxyLed:
    def test_led_is_forwarded_not_queued(self, proxy_client: TestClient, device: FakeDevice) -> None:
        resp = proxy_client.post("/api/led", json={"b": 200})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "LED command sent to device"
        assert body["device"] == {"status": "ok"}
        assert body["ledState"]["b"] == 200
        assert device.led["b"] == 200
        assert proxy_client.get("/api/status").json()["queueDepth"] == 0


class TestProxyFailures:
    def test_unreachable_device_is_502(self, proxy_client: TestClient, device: FakeDevice) -> None:
        device.down = True
        resp = proxy_client.get("/api/sensor-data")
        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "upstream_unavailable"
        assert "ECONNREFUSED" in body["message"]

    def test_failed_led_forward_changes_nothing(self, proxy_client: TestClient, device: FakeDevice) -> None:
        device.down = True
        assert proxy_client.post("/api/led", json={"r": 1}).status_code == 502
        device.down = False
        assert proxy_client.app.state.relay.led_status().r == 0

    def test_malformed_reading_is_502(self, proxy_client: TestClient, device: FakeDevice) -> None:
        device.reading = {"temperature": "hot"}
        resp = proxy_client.get("/api/sensor-data")
        assert resp.status_code == 502
        assert "Invalid reading" in resp.json()["message"]
