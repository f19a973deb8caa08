"""Device liveness: last contact, connected flag and the periodic sweep."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sensorrelay.relay.state import RelayState

logger = logging.getLogger(__name__)


class LivenessTracker:
    """Tracks whether the device is presumed connected.

    Every device contact calls ``touch()``. ``expire()`` flips the flag to
    disconnected once the device has been silent for longer than
    ``silence_timeout_ms``; it fires at most once per disconnection
    because it checks the flag before flipping it.
    """

    def __init__(self, silence_timeout_ms: int, now_ms: int, connected: bool = False) -> None:
        self._silence_timeout_ms = silence_timeout_ms
        self._last_contact = now_ms
        self._connected = connected

    @property
    def last_contact(self) -> int:
        return self._last_contact

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def silence_timeout_ms(self) -> int:
        return self._silence_timeout_ms

    def touch(self, now_ms: int) -> bool:
        """Record a contact. Returns True if the device was disconnected before."""
        was_connected = self._connected
        self._last_contact = now_ms
        self._connected = True
        return not was_connected

    def expire(self, now_ms: int) -> bool:
        """Mark the device disconnected if it went silent. Returns True on a flip."""
        if self._connected and now_ms - self._last_contact > self._silence_timeout_ms:
            self._connected = False
            return True
        return False


async def run_liveness_sweep(state: RelayState, interval: float) -> None:
    """Call ``state.sweep()`` every ``interval`` seconds until cancelled."""
    logger.debug("Liveness sweep running every %.1fs", interval)
    while True:
        try:
            await asyncio.sleep(interval)
            state.sweep()
        except asyncio.CancelledError:
            logger.debug("Liveness sweep stopped")
            raise
        except Exception as e:
            logger.error("Liveness sweep error: %s", e)
