"""Domain models for the reload protocol."""

from extreload.domain.enums import (
    AgentState,
    InboundKind,
    MessageType,
    PageMessageType,
    ReloadCommand,
    ThrottleDecision,
)
from extreload.domain.models import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ClientMessage,
    PageMessage,
    ReloaderOptions,
    utc_now,
)

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    # Enums
    "AgentState",
    "InboundKind",
    "MessageType",
    "PageMessageType",
    "ReloadCommand",
    "ThrottleDecision",
    # Models
    "ClientMessage",
    "PageMessage",
    "ReloaderOptions",
    "utc_now",
]
