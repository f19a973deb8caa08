"""Pending commands waiting for the device's next contact."""

from __future__ import annotations

from sensorrelay.domain.models import Command


class CommandQueue:
    """Ordered queue drained in full on every device contact.

    Not synchronized on its own; ``RelayState`` calls it under its lock so
    that ``drain()`` is atomic relative to ``enqueue()``.
    """

    def __init__(self) -> None:
        self._commands: list[Command] = []

    def __len__(self) -> int:
        return len(self._commands)

    def enqueue(self, command: Command) -> None:
        self._commands.append(command)

    def drain(self) -> list[Command]:
        """Return every pending command in enqueue order and clear the queue."""
        drained, self._commands = self._commands, []
        return drained
