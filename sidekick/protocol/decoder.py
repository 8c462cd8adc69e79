"""Newline-delimited JSON stream decoder.

Reassembles complete lines from byte chunks of arbitrary size and decodes
each one into a StreamDelta. A JSON object split across two network reads
stays buffered until the rest of it arrives.
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator

from sidekick.errors import CodecError
from sidekick.models.schemas import Endpoint, StreamDelta
from sidekick.protocol.codec import decode_line

logger = logging.getLogger(__name__)

DELIMITER = b"\n"


class LineDecoder:
    """Incremental decoder for one response stream.

    Not thread-safe: a decoder belongs to exactly one stream and is fed
    chunks in arrival order.
    """

    def __init__(self, endpoint: Endpoint = Endpoint.CHAT) -> None:
        self._endpoint = endpoint
        self._buffer = bytearray()
        self._skipped = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    @property
    def skipped(self) -> int:
        """Number of lines dropped because they failed to decode."""
        return self._skipped

    def feed(self, chunk: bytes) -> list[StreamDelta]:
        """Buffer a chunk and decode every line it completes.

        Args:
            chunk: Raw bytes as delivered by the transport.

        Returns:
            Deltas for the completed lines, in stream order.
        """
        self._buffer.extend(chunk)
        deltas: list[StreamDelta] = []

        while (index := self._buffer.find(DELIMITER)) != -1:
            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]

            if not line.strip():
                continue

            try:
                deltas.append(decode_line(line, self._endpoint))
            except CodecError as e:
                self._skipped += 1
                logger.warning(f"Skipping line: {e}")
                logger.debug(f"Skipped line content: {line[:200]!r}")

        return deltas

    def close(self) -> int:
        """Discard any undelimited remainder.

        Returns:
            Number of bytes discarded.
        """
        discarded = len(self._buffer)
        if discarded:
            logger.debug(f"Discarding {discarded} undelimited bytes at end of stream")
        self._buffer.clear()
        return discarded


async def decode_stream(
    chunks: AsyncIterable[bytes],
    endpoint: Endpoint = Endpoint.CHAT,
) -> AsyncIterator[StreamDelta]:
    """Decode an async byte stream into deltas.

    Args:
        chunks: Byte chunks in arrival order.
        endpoint: Endpoint that produced the stream.

    Yields:
        One delta per successfully decoded line.
    """
    decoder = LineDecoder(endpoint)
    try:
        async for chunk in chunks:
            for delta in decoder.feed(chunk):
                yield delta
    finally:
        decoder.close()
