"""In-process extension runtime.

Stands in for a browser when exercising a reload server from the command
line: pages are simulated and a reload restarts the background agent.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from extreload.client.agent import DEFAULT_URL, BackgroundAgent, Connector, open_websocket
from extreload.client.page import PageAgent
from extreload.client.runtime import ExtensionRuntime, PageChannel

logger = logging.getLogger(__name__)


@dataclass
class SimulatedPage:
    """A tab that only records reloads."""

    tab_id: int
    url: str
    reload_count: int = 0

    def reload(self) -> None:
        self.reload_count += 1
        logger.info(f"Tab {self.tab_id} reloaded ({self.url})")


class LocalExtensionRuntime(ExtensionRuntime):
    """Runs background agents back to back, one per runtime lifetime."""

    def __init__(
        self,
        name: str,
        url: str = DEFAULT_URL,
        connect: Connector = open_websocket,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.url = url
        self._connect = connect
        self._sleep = sleep
        self._messaging = PageChannel()

        self.pages: list[PageAgent] = []
        self.reload_count = 0
        self.agent: BackgroundAgent | None = None
        self._stopped = False

    @property
    def messaging(self) -> PageChannel:
        return self._messaging

    def open_page(self, page: SimulatedPage) -> PageAgent:
        """Open a page and install its agent."""
        agent = PageAgent(page, self)
        agent.install()
        self.pages.append(agent)
        return agent

    async def reload(self) -> None:
        self.reload_count += 1
        logger.info(f"{self.name} reloaded ({self.reload_count})")

    async def run(self, max_lifetimes: int | None = None) -> None:
        """Start a background agent, and a fresh one after every reload.

        Args:
            max_lifetimes: Stop after this many agents have finished (None = forever).
        """
        lifetimes = 0
        while not self._stopped:
            self.agent = BackgroundAgent(self, self.url, connect=self._connect, sleep=self._sleep)
            await self.agent.run()

            lifetimes += 1
            if max_lifetimes is not None and lifetimes >= max_lifetimes:
                break

    async def stop(self) -> None:
        self._stopped = True
        if self.agent is not None:
            await self.agent.stop()
