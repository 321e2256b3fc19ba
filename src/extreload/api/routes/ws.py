"""WebSocket endpoint the extension connects to."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from extreload.api.deps import get_manager
from extreload.reload import ChannelClosedError, ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketChannel:
    """Adapts a Starlette WebSocket to the manager's Channel protocol."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        """Called when the endpoint stops serving this socket."""
        self._closed = True

    async def send(self, text: str) -> None:
        try:
            await self.websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ChannelClosedError(str(e)) from e


@router.websocket("/")
async def reload_socket(
    websocket: WebSocket,
    manager: Annotated[ConnectionManager, Depends(get_manager)],
) -> None:
    """Channel between the build process and the extension.

    Server -> client messages are bare command strings (RELOAD_ALL,
    RELOAD_EXTENSION). Client -> server messages are JSON:
    {"type": "RELOADED", "payload": "<extension name>"}
    """
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    connection = await manager.on_connection_opened(channel)
    logger.debug(f"WebSocket connected from {websocket.client}")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            data = message.get("text") or message.get("bytes")
            if data:
                await manager.on_message(data)

    except WebSocketDisconnect:
        pass

    finally:
        channel.mark_closed()
        await manager.on_connection_closed(connection)
