"""Async HTTP client for a local Ollama server.

Covers the server-state operations (liveness probe, installed detection,
model listing, model pulling, launching the server) and the two streaming
endpoints. Streams are decoded by the newline-delimited decoder.

Each operation opens its own httpx.AsyncClient with a timeout suited to
it. The chat and generate streams only bound the connect phase: a slow
model may take arbitrarily long between lines.
"""

import asyncio
import logging
import shutil
import subprocess
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Any

import httpx

from sidekick.client.config import SidekickConfig, get_config
from sidekick.errors import CodecError, ServerRejected, TransportUnreachable
from sidekick.models.schemas import (
    ConnectionStatus,
    Endpoint,
    Message,
    ModelInfo,
    StreamDelta,
)
from sidekick.protocol.codec import (
    decode_models,
    decode_pull_line,
    encode_chat_request,
    encode_generate_request,
    encode_pull_request,
)
from sidekick.protocol.decoder import decode_stream

logger = logging.getLogger(__name__)

LIVENESS_GREETING = "Ollama is running"


def _error_detail(response: httpx.Response) -> str:
    """Extract the server's error text from an already-read error response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.reason_phrase


class OllamaClient:
    """Client for the Ollama HTTP API.

    Args:
        config: Client configuration. Loads from environment if not provided.
        transport: Optional httpx transport, used by tests to stand in for
            the network.
    """

    def __init__(
        self,
        config: SidekickConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or get_config()
        self._transport = transport

    @property
    def config(self) -> SidekickConfig:
        return self._config

    def _client(self, timeout: float | httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    # Server state

    def _resolve_binary(self) -> Path | None:
        binary = self._config.server_binary
        if binary.is_file():
            return binary
        found = shutil.which(binary.name)
        return Path(found) if found else None

    def is_installed(self) -> bool:
        """Return True if the server executable is present locally."""
        return self._resolve_binary() is not None

    def _failure_status(self) -> ConnectionStatus:
        if self.is_installed():
            return ConnectionStatus.ERROR
        return ConnectionStatus.NOT_INSTALLED

    async def probe_liveness(self) -> ConnectionStatus:
        """Check whether the server is up.

        The server counts as live only if GET / returns the exact greeting.
        On failure, the local binary decides between ERROR and NOT_INSTALLED.

        Returns:
            CONNECTED, ERROR or NOT_INSTALLED.
        """
        try:
            async with self._client(self._config.probe_timeout) as client:
                response = await client.get("/")
        except httpx.HTTPError as e:
            logger.info(f"Liveness probe could not reach {self._config.base_url}: {e}")
            return self._failure_status()

        if response.text == LIVENESS_GREETING:
            return ConnectionStatus.CONNECTED

        logger.warning(
            f"Unexpected liveness response from {self._config.base_url} "
            f"(HTTP {response.status_code}): {response.text[:80]!r}"
        )
        return self._failure_status()

    async def list_models(self) -> list[ModelInfo]:
        """List installed models in server order.

        Returns:
            Models as listed by GET /api/tags.

        Raises:
            TransportUnreachable: If the server cannot be reached.
            ServerRejected: If the server answers with an error status.
            CodecError: If the listing cannot be decoded.
        """
        try:
            async with self._client(self._config.list_timeout) as client:
                response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            logger.error(f"Failed to list models: {e}")
            raise TransportUnreachable(f"Could not list models: {e}") from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error(f"Model listing rejected (HTTP {response.status_code}): {detail}")
            raise ServerRejected(f"Model listing failed: {detail}", response.status_code)

        try:
            models = decode_models(response.content)
        except CodecError as e:
            logger.error(f"Failed to decode model listing: {e}")
            raise

        logger.debug(f"Listed {len(models)} models")
        return models

    async def pull_model(self, name: str) -> bool:
        """Download a model on the server and wait for completion.

        Progress lines are read but not reported. The pull counts as
        successful when the stream closes without an error object.

        Args:
            name: Model tag to pull.

        Returns:
            True if the pull completed, False otherwise.
        """
        timeout = httpx.Timeout(
            self._config.connect_timeout, read=self._config.pull_read_timeout
        )
        logger.info(f"Pulling model {name}")

        try:
            async with (
                self._client(timeout) as client,
                client.stream("POST", "/api/pull", json=encode_pull_request(name)) as response,
            ):
                if response.is_error:
                    await response.aread()
                    logger.error(
                        f"Pull of {name} rejected (HTTP {response.status_code}): "
                        f"{_error_detail(response)}"
                    )
                    return False

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        error = decode_pull_line(line)
                    except CodecError as e:
                        logger.warning(f"Skipping pull progress line: {e}")
                        continue
                    if error:
                        logger.error(f"Pull of {name} failed: {error}")
                        return False
        except httpx.HTTPError as e:
            logger.error(f"Pull of {name} aborted: {e}")
            return False

        logger.info(f"Pulled model {name}")
        return True

    async def launch_server_process(self) -> ConnectionStatus:
        """Start the server as a detached subprocess and probe it.

        Failing to start the process is not fatal; the server is probed
        either way.

        Returns:
            The connection status after launching.
        """
        binary = self._resolve_binary()
        if binary is None:
            logger.warning(f"Cannot launch server: {self._config.server_binary} not found")
            return await self.probe_liveness()

        try:
            subprocess.Popen(
                [str(binary), "serve"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"Failed to launch {binary}: {e}")
            return await self.probe_liveness()

        logger.info(f"Launched {binary} serve, waiting for it to come up")
        status = ConnectionStatus.ERROR
        attempts = self._config.launch_probe_attempts
        for attempt in range(attempts):
            status = await self.probe_liveness()
            if status is ConnectionStatus.CONNECTED:
                break
            if attempt < attempts - 1:
                await asyncio.sleep(self._config.launch_probe_interval)
        return status

    # Streaming

    async def _stream(
        self, endpoint: Endpoint, body: dict[str, Any]
    ) -> AsyncIterator[StreamDelta]:
        timeout = httpx.Timeout(None, connect=self._config.connect_timeout)
        try:
            async with (
                self._client(timeout) as client,
                client.stream("POST", endpoint.value, json=body) as response,
            ):
                if response.is_error:
                    await response.aread()
                    raise ServerRejected(
                        f"{endpoint.value} rejected: {_error_detail(response)}",
                        response.status_code,
                    )
                async for delta in decode_stream(response.aiter_bytes(), endpoint):
                    yield delta
        except httpx.RequestError as e:
            raise TransportUnreachable(f"Stream from {endpoint.value} failed: {e}") from e

    async def stream_chat(
        self, messages: Iterable[Message], model: str
    ) -> AsyncIterator[StreamDelta]:
        """Stream an assistant reply for the given transcript.

        Args:
            messages: Full transcript; the server keeps no history.
            model: Model tag to run.

        Yields:
            Deltas in stream order.

        Raises:
            TransportUnreachable: If the connection fails.
            ServerRejected: If the server answers with an error status.
        """
        body = encode_chat_request(messages, model)
        async for delta in self._stream(Endpoint.CHAT, body):
            yield delta

    async def stream_generate(
        self, prompt: str, model: str, context: list[int] | None = None
    ) -> AsyncIterator[StreamDelta]:
        """Stream a completion for a single prompt (legacy generate endpoint).

        Args:
            prompt: Prompt text.
            model: Model tag to run.
            context: Continuation tokens from a previous final delta.

        Yields:
            Deltas in stream order.
        """
        body = encode_generate_request(prompt, model, context)
        async for delta in self._stream(Endpoint.GENERATE, body):
            yield delta
