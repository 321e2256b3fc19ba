"""Enumerations for the reload protocol."""

from enum import Enum


class ReloadCommand(str, Enum):
    """Commands sent from the build process to the extension.

    Sent on the wire as the bare value, not as JSON.
    """

    RELOAD_EXTENSION = "RELOAD_EXTENSION"  # Extension runtime only
    RELOAD_ALL = "RELOAD_ALL"  # Extension runtime and every open page


class MessageType(str, Enum):
    """Message types sent from the extension to the build process."""

    RELOADED = "RELOADED"


class PageMessageType(str, Enum):
    """Message types exchanged inside the extension (runtime -> pages)."""

    RELOAD = "RELOAD"


class InboundKind(Enum):
    """How the server interpreted a RELOADED message."""

    ANNOUNCE = "announce"  # First contact on this server lifetime
    ACKNOWLEDGED = "acknowledged"  # A reload cycle completed


class ThrottleDecision(str, Enum):
    """Outcome of a reload request."""

    SENT = "sent"
    BACKOFF = "backoff"
    SUPPRESSED = "suppressed"  # A backoff countdown is already running
    NO_CONNECTION = "no_connection"
    STALE_CONNECTION = "stale_connection"


class AgentState(str, Enum):
    """Connection states of the extension's long-lived agent."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
