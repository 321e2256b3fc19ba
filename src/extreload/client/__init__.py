"""Extension-side reload agents.

- BackgroundAgent: long-lived, owns the server connection
- PageAgent: one per page, reloads it on instruction
"""

from extreload.client.agent import BackgroundAgent, open_websocket
from extreload.client.local import LocalExtensionRuntime, SimulatedPage
from extreload.client.page import PageAgent
from extreload.client.runtime import ExtensionRuntime, PageChannel

__all__ = [
    "BackgroundAgent",
    "ExtensionRuntime",
    "LocalExtensionRuntime",
    "PageAgent",
    "PageChannel",
    "SimulatedPage",
    "open_websocket",
]
