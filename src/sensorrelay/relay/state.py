"""The relay's shared state and every operation on it.

``RelayState`` owns the reading history, the latest reading, the LED
singleton, the pending-command queue and the liveness tracker. One
instance is created by the application factory and shared by the HTTP
handlers, the WebSocket handler and the liveness sweep. All mutations go
through a single lock, so a drain can never lose or duplicate a command
enqueued concurrently. Events are published to the broadcast hub after
the lock is released; publishing never blocks.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from typing import Callable

from sensorrelay.auth.device import DeviceGuard
from sensorrelay.broadcast.hub import BroadcastHub
from sensorrelay.domain.models import (
    ESP_STATUS,
    LED_UPDATE,
    SENSOR_UPDATE,
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
from sensorrelay.errors import NotFound, ValidationError
from sensorrelay.relay.commands import CommandQueue
from sensorrelay.relay.history import HistoryBuffer
from sensorrelay.relay.liveness import LivenessTracker

logger = logging.getLogger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


class RelayState:
    """In-memory state of the relay between one device and its web clients.

    Args:
        hub: Where sensor, LED and liveness events are published.
        history_capacity: Maximum number of readings kept.
        silence_timeout: Seconds of silence after which the device is
                         considered disconnected.
        device_guard: Credential check for device-facing operations.
                      None disables the check.
        seed_simulated: Store a synthetic reading at construction so the
                        latest-reading query has something to return.
        clock: Returns the current time in seconds since the epoch.
        rng: Random source for simulated readings.
    """

    def __init__(
        self,
        hub: BroadcastHub,
        history_capacity: int = 1000,
        silence_timeout: float = 120.0,
        device_guard: DeviceGuard | None = None,
        seed_simulated: bool = True,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._hub = hub
        self._guard = device_guard
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._started_at = clock()

        self._history = HistoryBuffer(history_capacity)
        self._commands = CommandQueue()
        self._liveness = LivenessTracker(int(silence_timeout * 1000), self.now_ms())
        self._led = LedState()
        self._latest: Reading | None = None

        if seed_simulated:
            seed = Reading(
                temperature=22.5,
                humidity=45.0,
                timestamp=self.now_ms(),
                status="simulated",
            )
            self._latest = seed
            self._history.append(seed)
            logger.info("Initialized with simulated sensor data")

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def hub(self) -> BroadcastHub:
        return self._hub

    # -------------------------------------------------------------------
    # Device-facing operations
    # -------------------------------------------------------------------

    def submit_reading(self, payload: ReadingPayload, credential: str | None = None) -> DeviceResponse:
        """Ingest a device reading and hand back every pending command.

        Raises:
            Unauthorized: If the credential does not match. No state changes.
        """
        self._check_device(credential)
        reading = Reading.from_payload(payload, self.now_ms())
        with self._lock:
            reconnected = self._record(reading)
            commands = self._commands.drain()
        self._announce_reading(reading, reconnected)
        if commands:
            logger.info("Delivered %d pending command(s) with data push", len(commands))
        return DeviceResponse(pending_commands=commands)

    def poll_commands(self, credential: str | None = None) -> DeviceResponse:
        """Device check-in without a reading. Drains the command queue.

        Raises:
            Unauthorized: If the credential does not match. No state changes.
        """
        self._check_device(credential)
        with self._lock:
            reconnected = self._liveness.touch(self.now_ms())
            commands = self._commands.drain()
        if reconnected:
            self._announce_liveness(True)
        if commands:
            logger.info("Delivered %d pending command(s) on poll", len(commands))
        return DeviceResponse(pending_commands=commands)

    def record_reading(self, reading: Reading) -> None:
        """Store a reading obtained some other way (proxy fetch) as a device contact."""
        with self._lock:
            reconnected = self._record(reading)
        self._announce_reading(reading, reconnected)

    def simulate(self) -> Reading:
        """Generate a random reading and ingest it like a device push.

        Pending commands stay queued for the real device.
        """
        reading = Reading(
            temperature=20 + self._rng.random() * 10,
            humidity=40 + self._rng.random() * 20,
            timestamp=self.now_ms(),
            status="simulated",
        )
        self.record_reading(reading)
        return reading

    def sweep(self) -> bool:
        """Flag the device disconnected if it has been silent too long.

        Returns True (and publishes one liveness event) only on the sweep
        that performs the flip.
        """
        with self._lock:
            flipped = self._liveness.expire(self.now_ms())
        if flipped:
            logger.warning("Device connection timed out")
            self._announce_liveness(False)
        return flipped

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def latest(self) -> LatestReading:
        """Latest reading plus liveness.

        Raises:
            NotFound: If no reading has ever been recorded.
        """
        with self._lock:
            reading = self._latest
            last_contact = self._liveness.last_contact
            connected = self._liveness.connected
        if reading is None:
            raise NotFound("No sensor data available yet")
        return LatestReading(
            **reading.model_dump(),
            last_contact=last_contact,
            connected=connected,
        )

    def history(self, hours: float | None = None) -> list[Reading]:
        """All stored readings, or those from the last ``hours`` hours.

        Raises:
            ValidationError: If ``hours`` is not a positive finite number.
        """
        if hours is not None and not (math.isfinite(hours) and hours > 0):
            raise ValidationError(f"hours must be a positive number, got {hours!r}")
        with self._lock:
            if hours is None:
                return self._history.all()
            # windows reaching before the epoch return everything
            cutoff = int(max(0.0, self.now_ms() - hours * MS_PER_HOUR))
            return self._history.since(cutoff)

    def led_status(self) -> LedState:
        with self._lock:
            return self._led

    def status(self) -> SystemStatus:
        with self._lock:
            return SystemStatus(
                connected=self._liveness.connected,
                last_contact=self._liveness.last_contact,
                subscriber_count=self._hub.subscriber_count,
                uptime=round(self._clock() - self._started_at, 3),
                queue_depth=len(self._commands),
            )

    def snapshot_events(self) -> list[Event]:
        """Events that bring a newly connected client up to date."""
        with self._lock:
            reading = self._latest
            led = self._led
            connected = self._liveness.connected
        events = []
        if reading is not None:
            events.append(Event(event=SENSOR_UPDATE, data=reading.model_dump(mode="json")))
        events.append(Event(event=LED_UPDATE, data=led.model_dump(mode="json")))
        events.append(Event(event=ESP_STATUS, data={"connected": connected}))
        return events

    # -------------------------------------------------------------------
    # LED control
    # -------------------------------------------------------------------

    def set_led(self, update: LedUpdate) -> LedState:
        """Merge a partial LED state, queue it for the device and publish it."""
        with self._lock:
            self._led = merge_led_state(self._led, update)
            led = self._led
            self._commands.enqueue(Command(type="led", data=led.model_dump(mode="json")))
            depth = len(self._commands)
        logger.info("LED command queued (%d pending): %s", depth, led.model_dump())
        self._hub.publish(Event(event=LED_UPDATE, data=led.model_dump(mode="json")))
        return led

    def apply_led(self, update: LedUpdate) -> LedState:
        """Merge and publish a LED change the device already applied. Queues nothing."""
        with self._lock:
            self._led = merge_led_state(self._led, update)
            led = self._led
        self._hub.publish(Event(event=LED_UPDATE, data=led.model_dump(mode="json")))
        return led

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    def _check_device(self, credential: str | None) -> None:
        if self._guard is not None:
            self._guard.check(credential)

    def _record(self, reading: Reading) -> bool:
        # caller holds the lock
        self._latest = reading
        self._history.append(reading)
        return self._liveness.touch(self.now_ms())

    def _announce_reading(self, reading: Reading, reconnected: bool) -> None:
        logger.debug(
            "Reading: %.1fC %.1f%% (%s)", reading.temperature, reading.humidity, reading.status
        )
        self._hub.publish(Event(event=SENSOR_UPDATE, data=reading.model_dump(mode="json")))
        if reconnected:
            self._announce_liveness(True)

    def _announce_liveness(self, connected: bool) -> None:
        # connected is the flip just made under the lock
        logger.info("Device %s", "connected" if connected else "disconnected")
        self._hub.publish(Event(event=ESP_STATUS, data={"connected": connected}))
