"""A software stand-in for the sensor/LED device.

Behaves like the device firmware: pushes a reading (with its current LED
state) to the relay on one interval, polls for commands on another, and
applies every ``led`` command it receives. Useful for exercising a relay
deployment without hardware.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any

import httpx

from sensorrelay.auth.device import DEVICE_KEY_HEADER
from sensorrelay.domain.models import LedState

logger = logging.getLogger(__name__)


class SimulatorError(Exception):
    """Raised when the simulator cannot reach the relay."""


class SimulatedDevice:
    """Pushes readings to and polls commands from a relay at ``base_url``."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        api_key: str = "",
        timeout: float = 10.0,
        push_interval: float = 10.0,
        poll_interval: float = 5.0,
        rng: random.Random | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._push_interval = push_interval
        self._poll_interval = poll_interval
        self._rng = rng or random.Random()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._started = time.monotonic()
        self._running = False
        self.led = LedState()
        self.commands_applied = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={DEVICE_KEY_HEADER: self._api_key},
            transport=self._transport,
        )

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def make_reading(self) -> dict[str, Any]:
        """A reading in the shape the firmware sends."""
        return {
            "temperature": round(20 + self._rng.random() * 10, 2),
            "humidity": round(40 + self._rng.random() * 20, 2),
            # the firmware sends its uptime in ms, not wall-clock time
            "timestamp": int((time.monotonic() - self._started) * 1000),
            "status": "ok",
            "led": self.led.model_dump(),
        }

    async def push_reading(self) -> list[dict[str, Any]]:
        """Send one reading; apply and return the commands in the answer."""
        data = await self._call("POST", "/api/device/data", self.make_reading())
        commands = data.get("pendingCommands", [])
        self.apply_commands(commands)
        return commands

    async def check_commands(self) -> list[dict[str, Any]]:
        data = await self._call("GET", "/api/device/commands")
        commands = data.get("pendingCommands", [])
        self.apply_commands(commands)
        return commands

    def apply_commands(self, commands: list[dict[str, Any]]) -> None:
        """Apply ``led`` commands the way the firmware does.

        Color is only taken when r, g and b are all present; brightness and
        effect are applied individually. Unknown command types are ignored.
        """
        for command in commands:
            if command.get("type") != "led":
                logger.debug("Ignoring command of type %r", command.get("type"))
                continue
            data = command.get("data") or {}
            changes: dict[str, Any] = {}
            if all(k in data for k in ("r", "g", "b")):
                changes.update(r=data["r"], g=data["g"], b=data["b"])
            if "brightness" in data:
                changes["brightness"] = data["brightness"]
            if "effect" in data:
                changes["effect"] = str(data["effect"])
            self.led = LedState(**{**self.led.model_dump(), **changes})
            self.commands_applied += 1
            logger.info("Applied LED command from server: %s", self.led.model_dump())

    async def run(self, max_cycles: int | None = None) -> None:
        """Push and poll until stopped (or ``max_cycles`` pushes have run)."""
        self._running = True
        cycles = 0
        next_push = 0.0
        next_poll = self._poll_interval
        elapsed = 0.0
        tick = min(self._push_interval, self._poll_interval)
        try:
            while self._running:
                if elapsed >= next_push:
                    await self._safe(self.push_reading)
                    next_push += self._push_interval
                    cycles += 1
                    if max_cycles is not None and cycles >= max_cycles:
                        break
                if elapsed >= next_poll:
                    await self._safe(self.check_commands)
                    next_poll += self._poll_interval
                await asyncio.sleep(tick)
                elapsed += tick
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False

    async def _safe(self, action) -> None:  # type: ignore[no-untyped-def]
        try:
            await action()
        except SimulatorError as e:
            logger.warning("%s", e)

    async def _call(self, method: str, path: str, payload: dict | None = None) -> dict[str, Any]:
        if self._client is None:
            raise SimulatorError("Simulator not connected")
        try:
            resp = await self._client.request(method, path, json=payload)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise SimulatorError(f"HTTP request to {path} failed: {e}") from e
        except ValueError as e:
            raise SimulatorError(f"Invalid JSON from relay at {path}: {e}") from e

    async def __aenter__(self) -> SimulatedDevice:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()
