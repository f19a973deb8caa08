"""Core domain models for the sensorrelay system.

These models represent the data flowing through the relay: sensor
readings pushed by the device, the LED state singleton and partial
updates to it, commands queued for the device, liveness, and the
envelopes exchanged with HTTP and WebSocket clients.

JSON field names are camelCase on the wire (``lastContact``,
``pendingCommands``) to match what the device firmware and the web
console already speak.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# LED state
# ---------------------------------------------------------------------------


class LedState(BaseModel):
    """Full state of the device's RGB LED."""

    model_config = ConfigDict(frozen=True)

    r: int = Field(default=0, ge=0, le=255)
    g: int = Field(default=150, ge=0, le=255)
    b: int = Field(default=0, ge=0, le=255)
    brightness: int = Field(default=128, ge=0, le=255)
    effect: str = Field(default="solid")


class LedUpdate(BaseModel):
    """A partial LED state. Fields left as None are not touched."""

    model_config = ConfigDict(extra="ignore")

    r: int | None = Field(default=None, ge=0, le=255)
    g: int | None = Field(default=None, ge=0, le=255)
    b: int | None = Field(default=None, ge=0, le=255)
    brightness: int | None = Field(default=None, ge=0, le=255)
    effect: str | None = Field(default=None)


def merge_led_state(current: LedState, update: LedUpdate) -> LedState:
    """Shallow-merge ``update`` into ``current``.

    Each field present (not None) in the update overrides the current
    value; every other field keeps its current value. The result is a
    new LedState, ``current`` is never mutated.
    """
    changes = update.model_dump(exclude_none=True)
    return current.model_copy(update=changes)


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


class ReadingPayload(BaseModel):
    """A reading as posted by the device. Timestamp and status may be missing."""

    model_config = ConfigDict(extra="ignore")

    temperature: float
    humidity: float
    timestamp: int | None = Field(default=None, description="Epoch milliseconds")
    status: str = Field(default="ok")
    led: LedState | None = Field(default=None, description="LED state the device reports")


class Reading(BaseModel):
    """One stored, timestamped sensor sample."""

    model_config = ConfigDict(frozen=True)

    temperature: float
    humidity: float
    timestamp: int = Field(description="Epoch milliseconds")
    status: str = Field(default="ok")
    led: LedState | None = Field(default=None)

    @classmethod
    def from_payload(cls, payload: ReadingPayload, now_ms: int) -> Reading:
        """Stamp a device payload, using ``now_ms`` when it has no timestamp."""
        return cls(
            temperature=payload.temperature,
            humidity=payload.humidity,
            timestamp=payload.timestamp if payload.timestamp else now_ms,
            status=payload.status,
            led=payload.led,
        )


class LatestReading(Reading):
    """The latest reading merged with the current liveness fields."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    last_contact: int
    connected: bool


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class Command(BaseModel):
    """An instruction waiting to be picked up by the device."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Command tag, currently only 'led'")
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# HTTP envelopes
# ---------------------------------------------------------------------------


class DeviceResponse(BaseModel):
    """Answer to every device contact: all commands queued since the last one."""

    model_config = _WIRE

    status: str = "ok"
    pending_commands: list[Command] = Field(default_factory=list)


class LedControlResponse(BaseModel):
    model_config = _WIRE

    status: str = "ok"
    message: str = "LED command queued for device"
    led_state: LedState
    device: dict[str, Any] | None = Field(default=None, description="Device answer in proxy mode")


class SimulateResponse(BaseModel):
    status: str = "ok"
    message: str = "Simulated data generated"
    data: Reading


class SystemStatus(BaseModel):
    model_config = _WIRE

    connected: bool
    last_contact: int
    subscriber_count: int
    uptime: float = Field(description="Seconds since the relay started")
    queue_depth: int


class HealthResponse(BaseModel):
    model_config = _WIRE

    status: str = "ok"
    mode: str = "push"
    auth_mode: str = "device"


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    username: str
    role: str


class UserInfo(BaseModel):
    """Public view of an operator account. Never carries the password hash."""

    username: str
    role: str


# ---------------------------------------------------------------------------
# Push channel
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """One frame on the push channel: ``{"event": name, "data": payload}``."""

    model_config = ConfigDict(frozen=True)

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


SENSOR_UPDATE = "sensor-update"
LED_UPDATE = "led-update"
ESP_STATUS = "esp-status"
ERROR = "error"
SET_LED = "set-led"
