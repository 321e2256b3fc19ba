"""Connection tracking and message routing for the reload server.

The server talks to one extension at a time. Every new websocket replaces
the tracked connection outright; the throttle counters live elsewhere and
survive the replacement, which is what lets an extension that restarts
after each reload still be rate limited.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError

from extreload.domain import (
    ClientMessage,
    InboundKind,
    ReloaderOptions,
    ThrottleDecision,
    utc_now,
)
from extreload.events import Event, EventBus, EventType
from extreload.reload.throttle import ReloadThrottle

logger = logging.getLogger(__name__)

UNKNOWN_PEER = "extension"


class Channel(Protocol):
    """Transport for a single websocket connection."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, text: str) -> None: ...


@dataclass
class Connection:
    """The single tracked channel instance."""

    channel: Channel
    peer_name: str | None = None
    opened_at: datetime = field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.channel.is_open

    @property
    def display_name(self) -> str:
        return self.peer_name or UNKNOWN_PEER

    async def send(self, text: str) -> None:
        await self.channel.send(text)


class ConnectionManager:
    """Owns the tracked connection and classifies inbound messages.

    The first RELOADED message ever received announces the extension;
    every later one, on any connection, acknowledges a completed reload.
    """

    def __init__(
        self,
        options: ReloaderOptions | None = None,
        throttle: ReloadThrottle | None = None,
        event_bus: EventBus | None = None,
    ):
        self.options = options or ReloaderOptions()
        self.throttle = throttle or ReloadThrottle()
        self.event_bus = event_bus or EventBus()

        self.connection: Connection | None = None
        self.extension_name: str | None = None
        self.has_seen_first_contact = False
        self._armed = False

    async def on_connection_opened(self, channel: Channel) -> Connection:
        """Track a freshly opened channel in place of the previous one."""
        connection = Connection(channel=channel)
        self.connection = connection

        # Bound once: later connections reuse the same trigger.
        if not self._armed:
            self._armed = True
            self.event_bus.add_callback(self._on_event)
            logger.debug("Build trigger bound to reload requests")

        await self.event_bus.emit(EventType.CONNECTION_OPENED)
        return connection

    async def on_connection_closed(self, connection: Connection) -> None:
        """Note a closed channel. The reference is kept so triggers report it as stale."""
        if connection is self.connection:
            logger.debug(f"Connection with {connection.display_name} closed")
        await self.event_bus.emit(
            EventType.CONNECTION_CLOSED, {"peer_name": connection.peer_name}
        )

    async def on_message(self, raw: str | bytes) -> InboundKind | None:
        """Route an inbound payload.

        Returns:
            How the message was classified, or None if it was ignored.
        """
        try:
            message = ClientMessage.model_validate_json(raw)
        except ValidationError:
            logger.debug(f"Ignoring malformed message: {raw!r}")
            return None

        name = message.payload
        if self.connection is not None:
            self.connection.peer_name = name

        if not self.has_seen_first_contact:
            self.has_seen_first_contact = True
            self.extension_name = name
            logger.info(f"{name} will reload on change")
            await self.event_bus.emit(EventType.CLIENT_CONNECTED, {"name": name})
            return InboundKind.ANNOUNCE

        self.throttle.record_reload()
        logger.info(f"{name} was reloaded")
        await self.event_bus.emit(
            EventType.CLIENT_RELOADED,
            {"name": name, "reload_count": self.throttle.state.reload_count},
        )
        return InboundKind.ACKNOWLEDGED

    async def request_reload(self) -> ThrottleDecision:
        """Ask the throttle to send the configured reload command."""
        command = self.options.command
        decision = await self.throttle.request(
            self.connection, command, retry=self.request_reload
        )

        if decision == ThrottleDecision.SENT:
            await self.event_bus.emit(EventType.RELOAD_SENT, {"command": command.value})
        elif decision == ThrottleDecision.BACKOFF:
            await self.event_bus.emit(
                EventType.BACKOFF_STARTED, {"seconds": self.throttle.backoff_seconds}
            )
        elif decision != ThrottleDecision.SUPPRESSED:
            await self.event_bus.emit(EventType.RELOAD_DROPPED, {"reason": decision.value})

        return decision

    async def _on_event(self, event: Event) -> None:
        if event.type == EventType.BUILD_COMPLETED:
            await self.request_reload()

    def snapshot(self) -> dict:
        """Current connection and throttle state."""
        connection = self.connection
        return {
            "extension_name": self.extension_name,
            "connected": connection is not None and connection.is_open,
            "peer_name": connection.peer_name if connection else None,
            "command": self.options.command.value,
            "throttle": self.throttle.snapshot(),
        }
