"""HTTP client for the device's own embedded web server.

Used in proxy mode: instead of waiting for the device to push, the relay
asks it directly for readings and forwards LED changes to it. Every call
has an explicit timeout and is never retried; failures surface as
UpstreamUnavailable carrying the upstream error message.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sensorrelay.domain.models import LedUpdate
from sensorrelay.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class UpstreamDevice:
    """Talks to the device at ``base_url`` (e.g. ``http://192.168.232.67``)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def connect(self) -> None:
        """Create the HTTP client. Does not contact the device."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.info("Proxying to device at %s", self._base_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_sensor_data(self) -> dict[str, Any]:
        """Current reading as reported by the device."""
        return await self._request("GET", "/sensor-data")

    async def set_led(self, update: LedUpdate) -> dict[str, Any]:
        """Forward a partial LED state to the device; returns its answer."""
        return await self._request("POST", "/led", update.model_dump(exclude_none=True))

    async def get_led_status(self) -> dict[str, Any]:
        return await self._request("GET", "/led-status")

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict[str, Any]:
        if self._client is None:
            raise UpstreamUnavailable("Not connected to device", upstream=self._base_url)
        try:
            resp = await self._client.request(method, path, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            logger.error("Device request %s %s failed: %s", method, path, e)
            raise UpstreamUnavailable(str(e) or type(e).__name__, upstream=self._base_url) from e
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid JSON from device: {e}", upstream=self._base_url) from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Unexpected response from device", upstream=self._base_url)
        return data

    async def __aenter__(self) -> UpstreamDevice:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()
