"""Event type definitions for the event bus."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from extreload.domain import utc_now


class EventType(str, Enum):
    """Types of events published during a dev session."""

    # Build events
    BUILD_COMPLETED = "build.completed"

    # Client events
    CONNECTION_OPENED = "connection.opened"
    CONNECTION_CLOSED = "connection.closed"
    CLIENT_CONNECTED = "client.connected"
    CLIENT_RELOADED = "client.reloaded"

    # Reload events
    RELOAD_SENT = "reload.sent"
    RELOAD_DROPPED = "reload.dropped"
    BACKOFF_STARTED = "backoff.started"


class Event(BaseModel):
    """A published event."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    type: EventType
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
