"""Wire and configuration models.

- ClientMessage: extension -> build process (JSON)
- PageMessage: extension runtime -> page agents (in-process)
- ReloaderOptions: user-facing configuration
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from extreload.domain.enums import MessageType, PageMessageType, ReloadCommand

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1337


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class ClientMessage(BaseModel):
    """The one message shape an extension sends.

    The same shape announces the extension on first contact and acknowledges
    every completed reload after that; the server tells them apart.
    """

    type: MessageType
    payload: str

    @classmethod
    def reloaded(cls, name: str) -> "ClientMessage":
        return cls(type=MessageType.RELOADED, payload=name)


class PageMessage(BaseModel):
    """Instruction broadcast from the extension runtime to its pages."""

    type: PageMessageType

    @classmethod
    def reload(cls) -> "PageMessage":
        return cls(type=PageMessageType.RELOAD)


class ReloaderOptions(BaseModel):
    """Options for the reload server.

    Accepts both snake_case names and the camelCase names used by
    extension build configs (``contentScriptName`` etc.).
    """

    model_config = ConfigDict(populate_by_name=True)

    content_script_name: str = Field(default="content", alias="contentScriptName")
    background_script_name: str = Field(default="background", alias="backgroundScriptName")
    reload_full_page: bool = Field(default=True, alias="reloadFullPage")
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)

    @property
    def command(self) -> ReloadCommand:
        """The command every build trigger sends."""
        if self.reload_full_page:
            return ReloadCommand.RELOAD_ALL
        return ReloadCommand.RELOAD_EXTENSION

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"
