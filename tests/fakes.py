"""Test doubles for the Ollama server.

- create_fake_ollama: FastAPI app emulating the Ollama endpoints, driven
  through httpx.ASGITransport.
- ScriptedChat: httpx.MockTransport whose chat stream is fed chunk by chunk
  from the test, for exercising cancellation and mid-stream failures.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from sidekick.models.schemas import ChatRequest, GenerateRequest, PullRequest

GREETING = "Ollama is running"


def chat_line(content: str, done: bool = False, **extra: Any) -> bytes:
    """Serialize one /api/chat response line, newline included."""
    payload = {
        "model": "llama3:latest",
        "created_at": "2024-01-06T12:00:00Z",
        "message": {"role": "assistant", "content": content},
        "done": done,
        **extra,
    }
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode()


def model_entry(name: str, size: int = 4_000_000_000) -> dict[str, Any]:
    return {"name": name, "modified_at": "2024-01-05T09:30:00Z", "size": size}


@dataclass
class FakeOllamaState:
    """Mutable state behind the fake server."""

    greeting: str = GREETING
    models: list[dict[str, Any]] = field(
        default_factory=lambda: [model_entry("llama3:latest"), model_entry("zephyr:latest")]
    )
    reply: list[str] = field(default_factory=lambda: ["Hello", ", ", "world", "!"])
    chat_chunks: list[bytes] | None = None
    requests: list[dict[str, Any]] = field(default_factory=list)
    failing_pulls: set[str] = field(default_factory=set)

    def model_names(self) -> list[str]:
        return [m["name"] for m in self.models]


def create_fake_ollama(state: FakeOllamaState) -> FastAPI:
    """Create an app answering like a local Ollama server."""
    app = FastAPI(title="Fake Ollama")

    def _unknown_model(name: str) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": f"model '{name}' not found"})

    @app.get("/")
    async def root() -> PlainTextResponse:
        return PlainTextResponse(state.greeting)

    @app.get("/api/tags")
    async def tags() -> dict[str, Any]:
        return {"models": state.models}

    @app.post("/api/chat", response_model=None)
    async def chat(body: ChatRequest) -> StreamingResponse | JSONResponse:
        state.requests.append(body.model_dump())
        if body.model not in state.model_names():
            return _unknown_model(body.model)

        async def lines() -> AsyncIterator[bytes]:
            if state.chat_chunks is not None:
                for chunk in state.chat_chunks:
                    yield chunk
                return
            for fragment in state.reply:
                yield chat_line(fragment)
            yield chat_line("", done=True, total_duration=1_500_000_000)

        return StreamingResponse(lines(), media_type="application/x-ndjson")

    @app.post("/api/generate", response_model=None)
    async def generate(body: GenerateRequest) -> StreamingResponse | JSONResponse:
        state.requests.append(body.model_dump())
        if body.model not in state.model_names():
            return _unknown_model(body.model)

        async def lines() -> AsyncIterator[bytes]:
            for fragment in state.reply:
                yield (json.dumps({"model": body.model, "response": fragment, "done": False}) + "\n").encode()
            final = {"model": body.model, "response": "", "done": True, "context": [1, 2, 3]}
            yield (json.dumps(final) + "\n").encode()

        return StreamingResponse(lines(), media_type="application/x-ndjson")

    @app.post("/api/pull")
    async def pull(body: PullRequest) -> StreamingResponse:
        state.requests.append(body.model_dump())

        async def progress() -> AsyncIterator[bytes]:
            yield b'{"status": "pulling manifest"}\n'
            if body.name in state.failing_pulls:
                yield b'{"error": "pull model manifest: file does not exist"}\n'
                return
            yield b'{"status": "downloading", "total": 100, "completed": 50}\n'
            yield b'{"status": "downloading", "total": 100, "completed": 100}\n'
            state.models.append(model_entry(body.name, size=100))
            yield b'{"status": "success"}\n'

        return StreamingResponse(progress(), media_type="application/x-ndjson")

    return app


class ScriptedChat:
    """MockTransport handler whose chat body is pushed by the test.

    Every /api/chat request gets a stream that yields whatever the test
    pushes with feed(), ends on end(), and raises on fail(). Other paths
    are answered by an optional fallback handler.
    """

    def __init__(
        self, fallback: Callable[[httpx.Request], httpx.Response] | None = None
    ) -> None:
        self._chunks: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()
        self._fallback = fallback
        self.chat_requests: list[dict[str, Any]] = []
        self.other_requests: list[str] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def feed(self, chunk: bytes) -> None:
        self._chunks.put_nowait(chunk)

    def end(self) -> None:
        self._chunks.put_nowait(None)

    def fail(self, error: Exception) -> None:
        self._chunks.put_nowait(error)

    async def _body(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._chunks.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat":
            self.chat_requests.append(json.loads(request.content))
            return httpx.Response(200, content=self._body())
        self.other_requests.append(request.url.path)
        if self._fallback is not None:
            return self._fallback(request)
        return httpx.Response(200, text=GREETING)


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")
