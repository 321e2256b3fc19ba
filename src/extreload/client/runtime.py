"""The extension runtime as seen by the reload agents.

The runtime owns the intra-extension messaging channel that page agents
listen on and is the thing that actually gets reloaded.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable
from typing import Any

from extreload.domain import PageMessage

logger = logging.getLogger(__name__)

PageListener = Callable[[PageMessage], Any]


class PageChannel:
    """In-process fan-out from the runtime to its page agents.

    Listeners are keyed (one per page), so subscribing the same page twice
    keeps a single listener.
    """

    def __init__(self) -> None:
        self._listeners: dict[Hashable, PageListener] = {}

    def subscribe(self, key: Hashable, listener: PageListener) -> bool:
        """Register a listener for a page.

        Returns:
            False if the page already had a listener.
        """
        if key in self._listeners:
            return False
        self._listeners[key] = listener
        return True

    def unsubscribe(self, key: Hashable) -> None:
        self._listeners.pop(key, None)

    def is_subscribed(self, key: Hashable) -> bool:
        return key in self._listeners

    async def broadcast(self, message: PageMessage) -> int:
        """Deliver a message to every listener.

        Returns:
            Number of listeners that handled the message without error.
        """
        delivered = 0
        for key, listener in list(self._listeners.items()):
            try:
                result = listener(message)
                if asyncio.iscoroutine(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Page listener {key} failed: {e}")
        return delivered

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class ExtensionRuntime(ABC):
    """The extension process hosting the background agent."""

    name: str

    @property
    @abstractmethod
    def messaging(self) -> PageChannel | None:
        """Channel to the pages, or None while the API is unavailable."""

    @abstractmethod
    async def reload(self) -> None:
        """Reload the extension runtime."""

    async def notify_pages(self, message: PageMessage) -> int:
        """Send a message to every active page agent."""
        messaging = self.messaging
        if messaging is None:
            return 0
        return await messaging.broadcast(message)
