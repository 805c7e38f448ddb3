"""Protocol definitions for the dispatch client and operator-facing callbacks."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

from .models import Command, CommandResult, ConnectionState, DeviceStatus


StatusCallback = Callable[[DeviceStatus], Awaitable[None] | None]


class CommandSender(Protocol):
    """Minimal contract the control and status layers need from a client."""

    @property
    def connection_state(self) -> ConnectionState:
        """State left behind by the most recent completed dispatch."""
        ...

    @property
    def last_error(self) -> Optional[str]:
        """Message of the most recent failure, cleared by the next success."""
        ...

    async def send(self, command: Command) -> CommandResult:
        """Dispatch one command. Remote failures are returned, never raised."""
        ...


class Notifier(Protocol):
    """Sink for transient operator notifications."""

    def success(self, text: str) -> None:
        ...

    def error(self, text: str) -> None:
        ...
