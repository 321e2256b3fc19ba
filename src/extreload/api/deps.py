"""FastAPI dependencies."""

from fastapi.requests import HTTPConnection

from extreload.reload import ConnectionManager


async def get_manager(connection: HTTPConnection) -> ConnectionManager:
    """Get the connection manager from app state (HTTP and websocket routes)."""
    return connection.app.state.manager
