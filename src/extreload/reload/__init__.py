"""Reload coordination on the build-process side.

- Connection tracking and message classification
- Rate limiting with backoff
- Build output watching
- Script injection into built bundles
"""

from extreload.reload.connection import Channel, Connection, ConnectionManager
from extreload.reload.injector import Chunk, ScriptInjector
from extreload.reload.throttle import ChannelClosedError, ReloadThrottle, ThrottleState
from extreload.reload.watcher import BuildWatcher, FileChange

__all__ = [
    "BuildWatcher",
    "Channel",
    "ChannelClosedError",
    "Chunk",
    "Connection",
    "ConnectionManager",
    "FileChange",
    "ReloadThrottle",
    "ScriptInjector",
    "ThrottleState",
]
