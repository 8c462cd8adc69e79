"""Pydantic models for the client's internal types and the server's wire format.

Models:
    - Message, Role: transcript entries
    - StreamDelta: one decoded line of a streaming response
    - ModelInfo: an installed model from /api/tags
    - ConnectionStatus: result of a liveness probe
    - ChatRequest, GenerateRequest, PullRequest: outgoing request bodies
    - ChatResponseLine, GenerateResponseLine, ModelsResponse: incoming shapes
"""

from sidekick.models.schemas import (
    ChatRequest,
    ChatResponseLine,
    ConnectionStatus,
    Endpoint,
    GenerateRequest,
    GenerateResponseLine,
    Message,
    ModelInfo,
    ModelsResponse,
    PullRequest,
    Role,
    StreamDelta,
    WireChatMessage,
)

__all__ = [
    "ChatRequest",
    "ChatResponseLine",
    "ConnectionStatus",
    "Endpoint",
    "GenerateRequest",
    "GenerateResponseLine",
    "Message",
    "ModelInfo",
    "ModelsResponse",
    "PullRequest",
    "Role",
    "StreamDelta",
    "WireChatMessage",
]
