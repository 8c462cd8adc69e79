"""Chat session orchestration.

Responsibilities:
    - Transcript ownership and single-flight submission
    - Feeding streamed deltas into the pending assistant reply
    - Cancellation and transcript reset
    - Connection status and model selection for the UI

Consumers subscribe with add_listener() and receive SessionEvent values.
"""

from sidekick.session.chat_session import (
    ChatSession,
    InFlightRequest,
    SessionEvent,
    SessionEventKind,
    SessionListener,
    SessionState,
)

__all__ = [
    "ChatSession",
    "InFlightRequest",
    "SessionEvent",
    "SessionEventKind",
    "SessionListener",
    "SessionState",
]
