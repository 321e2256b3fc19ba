"""API route modules."""

from extreload.api.routes import status, ws

__all__ = ["status", "ws"]
