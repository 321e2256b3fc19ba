"""End-to-end test over real sockets: uvicorn server and websockets client."""

import asyncio
import contextlib
import socket
from collections.abc import Callable

import pytest
import uvicorn

from extreload.api.app import create_app
from extreload.client import LocalExtensionRuntime, SimulatedPage
from extreload.domain import ReloaderOptions, ThrottleDecision
from extreload.events import EventType

pytestmark = pytest.mark.live


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.02)


async def test_build_reloads_extension_and_pages():
    port = free_port()
    options = ReloaderOptions(host="127.0.0.1", port=port)
    app = create_app(options)
    manager = app.state.manager
    server = uvicorn.Server(uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning"))
    server_task = asyncio.create_task(server.serve())

    runtime = LocalExtensionRuntime("Live Extension", url=options.url)
    page = SimulatedPage(tab_id=1, url="https://example.test")
    runtime.open_page(page)
    runtime_task: asyncio.Task | None = None

    try:
        await wait_until(lambda: server.started)
        runtime_task = asyncio.create_task(runtime.run())
        await wait_until(lambda: manager.has_seen_first_contact)

        await manager.event_bus.emit(EventType.BUILD_COMPLETED)

        await wait_until(lambda: manager.throttle.state.reload_count == 1)
        assert runtime.reload_count == 1
        assert page.reload_count == 1
        assert manager.extension_name == "Live Extension"
        assert await manager.request_reload() == ThrottleDecision.SENT

    finally:
        await runtime.stop()
        if runtime_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.wait_for(runtime_task, timeout=5.0)
        server.should_exit = True
        await server_task
