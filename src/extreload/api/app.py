"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from extreload import __version__
from extreload.api.routes import status, ws
from extreload.domain import ReloaderOptions
from extreload.reload import BuildWatcher, ConnectionManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    manager: ConnectionManager = app.state.manager
    watch_task: asyncio.Task | None = None

    if app.state.watch_dir is not None:
        watcher = BuildWatcher(app.state.watch_dir, manager.event_bus)
        watch_task = asyncio.create_task(watcher.watch_loop())

    options = manager.options
    logger.info(f"Reload server listening on {options.url} ({options.command.value})")

    yield

    if watch_task is not None:
        watch_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watch_task

    await manager.throttle.aclose()
    logger.info("Reload server stopped")


def create_app(
    options: ReloaderOptions | None = None,
    manager: ConnectionManager | None = None,
    watch_dir: Path | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        options: Server options; ignored when ``manager`` is given.
        manager: Pre-built connection manager (tests inject fakes here).
        watch_dir: Build output directory whose changes trigger reloads.
    """
    app = FastAPI(
        title="Extreload",
        description="Live reload for browser extensions in development",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.manager = manager or ConnectionManager(options)
    app.state.watch_dir = watch_dir

    app.include_router(ws.router, tags=["websocket"])
    app.include_router(status.router, prefix="/status", tags=["status"])

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app
