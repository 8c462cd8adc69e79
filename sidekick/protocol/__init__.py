"""Streaming protocol: wire codec and newline-delimited stream decoder."""

from sidekick.protocol.codec import (
    decode_line,
    decode_models,
    decode_pull_line,
    encode_chat_request,
    encode_generate_request,
    encode_pull_request,
)
from sidekick.protocol.decoder import LineDecoder, decode_stream

__all__ = [
    "LineDecoder",
    "decode_line",
    "decode_models",
    "decode_pull_line",
    "decode_stream",
    "encode_chat_request",
    "encode_generate_request",
    "encode_pull_request",
]
