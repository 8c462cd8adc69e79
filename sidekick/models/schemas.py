from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Speaker of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ConnectionStatus(str, Enum):
    """Server availability as determined by the liveness probe."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    NOT_INSTALLED = "not_installed"


class Endpoint(str, Enum):
    """Streaming endpoints and the response line shape each one produces."""

    CHAT = "/api/chat"
    GENERATE = "/api/generate"


class Message(BaseModel):
    """A single message in the transcript.

    Attributes:
        role: Who wrote the message.
        content: The message text. Grows while an assistant reply streams in.
    """

    role: Role
    content: str = ""


class StreamDelta(BaseModel):
    """One decoded line of a streaming response.

    Attributes:
        content: Text fragment carried by this line (may be empty).
        done: True on the terminal line of a turn.
        total_duration: Server-side generation time, present on the final line.
        model: Model that produced the line, when reported.
        created_at: Server timestamp of the line, when reported.
        context: Continuation tokens returned by the generate endpoint.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    done: bool
    total_duration: timedelta | None = None
    model: str | None = None
    created_at: str | None = None
    context: list[int] | None = None


class ModelInfo(BaseModel):
    """An installed model as listed by the server.

    Attributes:
        name: Model tag, also used as its identifier.
        size_bytes: Size on disk.
        modified_at: Server-formatted modification timestamp.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    size_bytes: int = Field(..., alias="size", ge=0)
    modified_at: str

    @property
    def id(self) -> str:
        """Identifier used for selection; the model name."""
        return self.name


# Wire shapes


class WireChatMessage(BaseModel):
    """Chat message as sent to and received from the server."""

    content: str
    role: str | None = None


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    messages: list[WireChatMessage]
    model: str = Field(..., min_length=1)
    stream: bool = True


class GenerateRequest(BaseModel):
    """Body of POST /api/generate (legacy single-prompt mode)."""

    prompt: str
    model: str = Field(..., min_length=1)
    context: list[int] | None = None


class PullRequest(BaseModel):
    """Body of POST /api/pull."""

    name: str = Field(..., min_length=1)
    stream: bool = True


class _ResponseLine(BaseModel):
    model: str | None = None
    created_at: str | None = None
    done: bool
    total_duration: int | None = Field(None, ge=0)
    context: list[int] | None = None


class ChatResponseLine(_ResponseLine):
    """One line of the /api/chat stream."""

    message: WireChatMessage


class GenerateResponseLine(_ResponseLine):
    """One line of the /api/generate stream."""

    response: str


class ModelsResponse(BaseModel):
    """Body of GET /api/tags."""

    models: list[ModelInfo]
