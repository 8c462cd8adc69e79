"""Test package for Sidekick.

Structure:
    - unit/: Codec, decoder, session, store, config and client tests
    - integration/: Client and session against an in-process fake server

The fake Ollama server lives in fakes.py and is reached through
httpx.ASGITransport, so no running server is needed.
Leverages pytest with pytest-check for soft assertions.
"""
