"""Status API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from extreload.api.deps import get_manager
from extreload.reload import ConnectionManager

router = APIRouter()


class ThrottleStatus(BaseModel):
    """Reload counters."""

    reload_count: int
    last_reload_at: float | None
    is_waiting: bool
    max_reloads: int


class StatusResponse(BaseModel):
    """Current connection and throttle state."""

    extension_name: str | None
    connected: bool
    peer_name: str | None
    command: str
    throttle: ThrottleStatus


@router.get("", response_model=StatusResponse)
async def get_status(
    manager: Annotated[ConnectionManager, Depends(get_manager)],
) -> StatusResponse:
    """Get connection and throttle state."""
    return StatusResponse.model_validate(manager.snapshot())
