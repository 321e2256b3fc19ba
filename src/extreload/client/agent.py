"""Long-lived reload agent running in the extension runtime.

Flow:
1. Connect to the reload server and announce the extension by name
2. Execute reload commands as they arrive
3. If the server goes away, poll until it is back, then reload everything
   (the build restarted, so the extension is out of date)

Reloading the runtime ends the agent; the runtime starts a fresh one,
whose announcement the server counts as the reload acknowledgment.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from extreload.client.runtime import ExtensionRuntime
from extreload.domain import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    AgentState,
    ClientMessage,
    PageMessage,
    ReloadCommand,
)

logger = logging.getLogger(__name__)

DEFAULT_URL = f"ws://{DEFAULT_HOST}:{DEFAULT_PORT}"
RECONNECT_INTERVAL = 2.0
OPEN_TIMEOUT = 5.0

# Transient failures while the server is down or restarting
CONNECT_ERRORS = (OSError, TimeoutError, InvalidHandshake)


class ClientSocket(Protocol):
    """The parts of a websockets client connection the agent uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[ClientSocket]]


async def open_websocket(url: str) -> ClientSocket:
    """Open a websocket to the reload server."""
    return await websockets.connect(url, open_timeout=OPEN_TIMEOUT)


class BackgroundAgent:
    """Holds the connection to the reload server for one runtime lifetime.

    Usage:
        agent = BackgroundAgent(runtime)
        await agent.run()  # returns once the runtime has been reloaded
    """

    def __init__(
        self,
        runtime: ExtensionRuntime,
        url: str = DEFAULT_URL,
        connect: Connector = open_websocket,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        reconnect_interval: float = RECONNECT_INTERVAL,
    ):
        self.runtime = runtime
        self.url = url
        self.reconnect_interval = reconnect_interval
        self._connect = connect
        self._sleep = sleep

        self.state = AgentState.DISCONNECTED
        self.reconnect_attempts = 0
        self._socket: ClientSocket | None = None
        self._retry_task: asyncio.Task | None = None
        self._stopped = False

    async def run(self) -> None:
        """Run until the runtime is reloaded or the agent is stopped."""
        self.state = AgentState.CONNECTING
        socket = await self._try_connect()

        if socket is not None and await self._serve(socket):
            return

        if not self._stopped:
            await self._recover()

    async def stop(self) -> None:
        """Cancel reconnecting and close the connection."""
        self._stopped = True
        if self._retry_task is not None:
            self._retry_task.cancel()
        if self._socket is not None:
            await self._socket.close()

    async def _try_connect(self) -> ClientSocket | None:
        try:
            return await self._connect(self.url)
        except CONNECT_ERRORS as e:
            logger.debug(f"Could not connect to {self.url}: {e}")
            return None

    async def _serve(self, socket: ClientSocket) -> bool:
        """Announce the extension and handle commands.

        Returns:
            True if a command reloaded the runtime.
        """
        self._socket = socket
        self.state = AgentState.CONNECTED
        name = self.runtime.name

        try:
            logger.info(f"{name} will auto reload")
            await socket.send(ClientMessage.reloaded(name).model_dump_json())

            async for raw in socket:
                if await self.handle_command(raw):
                    return True

        except ConnectionClosed as e:
            logger.debug(f"Connection to {self.url} closed: {e}")

        finally:
            self._socket = None
            self.state = AgentState.DISCONNECTED
            await socket.close()

        return False

    async def handle_command(self, raw: str | bytes) -> bool:
        """Execute a server command.

        Returns:
            True if the runtime was reloaded.
        """
        try:
            command = ReloadCommand(raw)
        except ValueError:
            logger.debug(f"Ignoring unknown command: {raw!r}")
            return False

        if command == ReloadCommand.RELOAD_ALL:
            await self.reload_all()
        else:
            await self.runtime.reload()
        return True

    async def reload_all(self) -> None:
        """Reload every page, then the runtime.

        Pages go first; reloading the runtime tears down the channel to them.
        """
        notified = await self.runtime.notify_pages(PageMessage.reload())
        logger.debug(f"Asked {notified} pages to reload")
        await self.runtime.reload()

    async def _recover(self) -> None:
        self.state = AgentState.RECONNECTING
        self._retry_task = asyncio.create_task(self._reconnect_loop())

        try:
            socket = await self._retry_task
        except asyncio.CancelledError:
            if not self._stopped:
                raise
            return
        finally:
            self._retry_task = None

        self.state = AgentState.CONNECTED
        try:
            await self.reload_all()
        finally:
            await socket.close()
            self.state = AgentState.DISCONNECTED

    async def _reconnect_loop(self) -> ClientSocket:
        while True:
            await self._sleep(self.reconnect_interval)
            self.reconnect_attempts += 1
            socket = await self._try_connect()
            if socket is not None:
                logger.info(f"Reconnected to {self.url} after {self.reconnect_attempts} attempts")
                return socket
