"""Publish/subscribe hub for the live push channel.

Every subscriber owns a bounded queue. ``publish()`` never awaits: it
puts the event on each queue with ``put_nowait``. A subscriber whose
queue is full is dropped from the hub and its queue is closed, so a slow
browser gets disconnected instead of stalling device ingestion.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from sensorrelay.domain.models import Event

logger = logging.getLogger(__name__)


class Subscription:
    """One connected push-channel client."""

    def __init__(self, subscriber_id: int, queue_size: int) -> None:
        self.subscriber_id = subscriber_id
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, event: Event) -> bool:
        """Queue an event without waiting. Returns False if the queue is full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Discard queued events and wake the reader with an end marker."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def get(self) -> Event | None:
        """Next event, or None once the subscription has been closed."""
        return await self._queue.get()


class BroadcastHub:
    """Fans events out to every current subscriber."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(next(self._ids), self._queue_size)
        self._subscribers[sub.subscriber_id] = sub
        logger.info("Client connected: %d (%d total)", sub.subscriber_id, self.subscriber_count)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if self._subscribers.pop(sub.subscriber_id, None) is not None:
            logger.info("Client disconnected: %d (%d total)", sub.subscriber_id, self.subscriber_count)
        sub.close()

    def publish(self, event: Event) -> int:
        """Deliver ``event`` to every subscriber. Returns how many received it."""
        delivered = 0
        for sub in list(self._subscribers.values()):
            if sub.offer(event):
                delivered += 1
                continue
            logger.warning(
                "Dropping slow client %d (queue full at %d events)",
                sub.subscriber_id, self._queue_size,
            )
            self.unsubscribe(sub)
        return delivered

    def close_all(self) -> None:
        for sub in list(self._subscribers.values()):
            self.unsubscribe(sub)
