"""Sidekick - desktop chat client for a locally hosted Ollama server.

Streams chat replies over Ollama's newline-delimited JSON API and keeps
the conversation state a UI needs.

Components:
    - models: Internal types and wire shapes
    - protocol: Wire codec and stream decoder
    - client: HTTP client for server state and streaming
    - session: Transcript, single-flight submission and cancellation
    - storage: Persisted selected model
"""

__version__ = "0.1.0"
