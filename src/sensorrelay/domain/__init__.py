"""Domain models for sensorrelay.

This package contains the data structures shared by the relay core, the
HTTP/WebSocket server and the device clients. All models use Pydantic v2
for validation and serialization.
"""

from sensorrelay.domain.models import (
    Command,
    DeviceResponse,
    Event,
    LatestReading,
    LedState,
    LedUpdate,
    Reading,
    ReadingPayload,
    SystemStatus,
    merge_led_state,
)

__all__ = [
    "Command",
    "DeviceResponse",
    "Event",
    "LatestReading",
    "LedState",
    "LedUpdate",
    "Reading",
    "ReadingPayload",
    "SystemStatus",
    "merge_led_state",
]
