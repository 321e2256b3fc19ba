"""Event system linking build completion to reload requests."""

from extreload.events.bus import EventBus
from extreload.events.types import Event, EventType

__all__ = ["Event", "EventBus", "EventType"]
