"""Bounded, ordered buffer of stored readings."""

from __future__ import annotations

from collections import deque

from sensorrelay.domain.models import Reading


class HistoryBuffer:
    """FIFO of readings holding at most ``capacity`` entries.

    Appending past capacity evicts the oldest reading.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._readings: deque[Reading] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._readings.maxlen or 0

    def __len__(self) -> int:
        return len(self._readings)

    def append(self, reading: Reading) -> None:
        self._readings.append(reading)

    def all(self) -> list[Reading]:
        return list(self._readings)

    def since(self, cutoff_ms: int) -> list[Reading]:
        """Readings with ``timestamp >= cutoff_ms``, oldest first."""
        return [r for r in self._readings if r.timestamp >= cutoff_ms]
