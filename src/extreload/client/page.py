"""Page-scoped reload agent."""

import asyncio
import logging
from typing import Any, Protocol

from extreload.client.runtime import ExtensionRuntime
from extreload.domain import PageMessage, PageMessageType

logger = logging.getLogger(__name__)


class Page(Protocol):
    """A browser page (tab) the extension runs in."""

    tab_id: int

    def reload(self) -> Any: ...


class PageAgent:
    """Reloads its page when the runtime says so.

    ``install`` may be called any number of times and before the
    runtime's messaging channel exists; it subscribes at most once per page.
    """

    def __init__(self, page: Page, runtime: ExtensionRuntime):
        self.page = page
        self.runtime = runtime

    @property
    def installed(self) -> bool:
        messaging = self.runtime.messaging
        return messaging is not None and messaging.is_subscribed(self.page.tab_id)

    def install(self) -> bool:
        """Subscribe to reload instructions.

        Returns:
            True if the page is subscribed after the call.
        """
        messaging = self.runtime.messaging
        if messaging is None:
            logger.debug(f"Messaging unavailable, deferring page agent for tab {self.page.tab_id}")
            return False

        if messaging.subscribe(self.page.tab_id, self._on_message):
            logger.debug(f"Page agent installed for tab {self.page.tab_id}")
        return True

    async def _on_message(self, message: PageMessage) -> None:
        if message.type != PageMessageType.RELOAD:
            return

        result = self.page.reload()
        if asyncio.iscoroutine(result):
            await result
