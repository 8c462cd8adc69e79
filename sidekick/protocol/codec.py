"""Wire codec for the Ollama HTTP API.

Builds request bodies from internal types and decodes response payloads
into them. A payload that is not JSON fails with UndecodableLine; JSON that
does not match the expected shape fails with MalformedPayload.
"""

import json
import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ValidationError

from sidekick.errors import MalformedPayload, UndecodableLine
from sidekick.models.schemas import (
    ChatRequest,
    ChatResponseLine,
    Endpoint,
    GenerateRequest,
    GenerateResponseLine,
    Message,
    ModelInfo,
    ModelsResponse,
    PullRequest,
    StreamDelta,
    WireChatMessage,
)

logger = logging.getLogger(__name__)

_LINE_SHAPES: dict[Endpoint, type[ChatResponseLine] | type[GenerateResponseLine]] = {
    Endpoint.CHAT: ChatResponseLine,
    Endpoint.GENERATE: GenerateResponseLine,
}


def _to_body(request: BaseModel) -> dict[str, Any]:
    return request.model_dump(mode="json", exclude_none=True)


def encode_chat_request(messages: Iterable[Message], model: str) -> dict[str, Any]:
    """Build the /api/chat body carrying the full transcript.

    Args:
        messages: Transcript in order, oldest first.
        model: Model tag to run.

    Returns:
        JSON-serializable request body.
    """
    request = ChatRequest(
        messages=[
            WireChatMessage(content=m.content, role=m.role.value) for m in messages
        ],
        model=model,
        stream=True,
    )
    return _to_body(request)


def encode_generate_request(
    prompt: str, model: str, context: list[int] | None = None
) -> dict[str, Any]:
    """Build the /api/generate body."""
    return _to_body(GenerateRequest(prompt=prompt, model=model, context=context))


def encode_pull_request(name: str) -> dict[str, Any]:
    """Build the /api/pull body with progress streaming enabled."""
    return _to_body(PullRequest(name=name, stream=True))


def _parse_json(data: bytes | str) -> Any:
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        return json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise UndecodableLine(f"Not valid JSON: {e}") from e
    except RecursionError as e:
        raise UndecodableLine("JSON nested too deeply") from e


def _describe_mismatch(payload: Any, e: ValidationError) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return f"Server reported error: {payload['error']}"
    return f"Unexpected payload shape ({e.error_count()} validation errors)"


def decode_line(line: bytes | str, endpoint: Endpoint = Endpoint.CHAT) -> StreamDelta:
    """Decode one line of a streaming response.

    Args:
        line: A single line without its trailing newline.
        endpoint: Endpoint that produced the line; selects the chat shape
            (``message.content``) or the generate shape (``response``).

    Returns:
        The decoded delta.

    Raises:
        UndecodableLine: If the line is not valid UTF-8 JSON.
        MalformedPayload: If the JSON does not match the endpoint's shape.
    """
    payload = _parse_json(line)
    shape = _LINE_SHAPES[endpoint]

    try:
        parsed = shape.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload(_describe_mismatch(payload, e)) from e

    if isinstance(parsed, ChatResponseLine):
        content = parsed.message.content
    else:
        content = parsed.response

    total_duration = None
    if parsed.total_duration is not None:
        # Server reports nanoseconds
        try:
            total_duration = timedelta(microseconds=parsed.total_duration / 1000)
        except OverflowError as e:
            raise MalformedPayload(f"total_duration out of range: {parsed.total_duration}") from e

    return StreamDelta(
        content=content,
        done=parsed.done,
        total_duration=total_duration,
        model=parsed.model,
        created_at=parsed.created_at,
        context=parsed.context,
    )


def decode_models(body: bytes | str) -> list[ModelInfo]:
    """Decode the /api/tags body, preserving server order.

    Duplicate names after the first occurrence are dropped.

    Raises:
        UndecodableLine: If the body is not valid JSON.
        MalformedPayload: If the body does not match the listing shape.
    """
    payload = _parse_json(body)

    try:
        listing = ModelsResponse.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload(_describe_mismatch(payload, e)) from e

    models: list[ModelInfo] = []
    seen: set[str] = set()
    for model in listing.models:
        if model.name in seen:
            logger.warning(f"Dropping duplicate model entry: {model.name}")
            continue
        seen.add(model.name)
        models.append(model)
    return models


def decode_pull_line(line: bytes | str) -> str | None:
    """Decode one line of the /api/pull progress stream.

    Returns:
        The server's error text if the line reports a failure, else None.

    Raises:
        UndecodableLine: If the line is not valid JSON.
        MalformedPayload: If the line is not a JSON object.
    """
    payload = _parse_json(line)
    if not isinstance(payload, dict):
        raise MalformedPayload("Pull progress line is not an object")
    error = payload.get("error")
    if error:
        return str(error)
    return None
