"""Chat session orchestration.

Owns the transcript, the in-flight request and the selected model, and
feeds decoded deltas into the pending assistant message.

State machine:
    IDLE --submit--> STREAMING --(stream end | cancel)--> IDLE

A second submit while STREAMING is rejected, never queued. All state
mutations happen under one lock so deltas, cancellation and UI calls can
come from different threads. Listeners are notified after the lock is
released.

The server keeps no history between calls, so every turn resends the
full transcript.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from sidekick.client.ollama import OllamaClient
from sidekick.errors import (
    AlreadyInFlight,
    NoModelSelected,
    ServerRejected,
    SidekickError,
    TransportUnreachable,
)
from sidekick.models.schemas import ConnectionStatus, Message, ModelInfo, Role
from sidekick.storage.selected_model import SelectedModelStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Whether a reply is currently streaming."""

    IDLE = "idle"
    STREAMING = "streaming"


class SessionEventKind(str, Enum):
    """Kinds of notifications emitted by a chat session."""

    SUBMITTED = "submitted"
    DELTA = "delta"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    CLEARED = "cleared"
    STATUS = "status"
    MODELS = "models"
    MODEL_SELECTED = "model_selected"


class SessionEvent(BaseModel):
    """A state change reported to session listeners.

    Attributes:
        kind: What happened.
        content: Text fragment (DELTA), discarded partial reply (CANCELLED)
            or model name (MODEL_SELECTED).
        message: The appended user message (SUBMITTED) or committed reply
            (COMMITTED; None when an empty reply was suppressed).
        status: New connection status (STATUS).
        models: Fresh model listing (MODELS).
        error: Failure description (FAILED).
    """

    kind: SessionEventKind
    content: str | None = None
    message: Message | None = None
    status: ConnectionStatus | None = None
    models: list[ModelInfo] | None = None
    error: str | None = None


SessionListener = Callable[[SessionEvent], None]


@dataclass(eq=False)
class InFlightRequest:
    """Cancellation handle for the one streaming request of a session."""

    loop: asyncio.AbstractEventLoop
    task: asyncio.Task[None] | None = field(default=None)

    def cancel(self) -> None:
        """Abort the transport. Safe to call from any thread."""
        if self.task is None or self.task.done() or self.loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.task.cancel()
        else:
            self.loop.call_soon_threadsafe(self.task.cancel)


class ChatSession:
    """A single conversation with the local server.

    Args:
        client: Ollama client used for all network operations.
        store: Optional persistence for the selected model.
        commit_empty: Commit assistant replies that streamed no text.
            Defaults to the client configuration.
    """

    def __init__(
        self,
        client: OllamaClient,
        store: SelectedModelStore | None = None,
        *,
        commit_empty: bool | None = None,
    ) -> None:
        self._client = client
        self._store = store
        if commit_empty is None:
            commit_empty = client.config.commit_empty_responses
        self._commit_empty = commit_empty

        self._lock = threading.Lock()
        self._listeners: list[SessionListener] = []
        self._transcript: list[Message] = []
        self._pending: Message | None = None
        self._in_flight: InFlightRequest | None = None
        self._status = ConnectionStatus.CONNECTING
        self._models: list[ModelInfo] = []
        self._model: str | None = store.get() if store else None

    # Listeners

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Session listener failed on {event.kind.value} event")

    # Read-only views

    @property
    def state(self) -> SessionState:
        with self._lock:
            return SessionState.STREAMING if self._in_flight else SessionState.IDLE

    @property
    def transcript(self) -> tuple[Message, ...]:
        """Committed messages, oldest first."""
        with self._lock:
            return tuple(m.model_copy() for m in self._transcript)

    @property
    def pending(self) -> Message | None:
        """Snapshot of the assistant reply being streamed, if any."""
        with self._lock:
            return self._pending.model_copy() if self._pending else None

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def models(self) -> list[ModelInfo]:
        with self._lock:
            return list(self._models)

    @property
    def model(self) -> str | None:
        return self._model

    @property
    def is_available(self) -> bool:
        """True when the server is up and a model is selected."""
        return self._status is ConnectionStatus.CONNECTED and self._model is not None

    # Conversation

    def submit(self, prompt: str) -> asyncio.Task[None]:
        """Send a prompt and start streaming the reply.

        Must be called from the event loop that will run the stream.

        Args:
            prompt: User text.

        Returns:
            The task streaming the reply. Awaiting it raises CancelledError
            if the request is cancelled.

        Raises:
            ValueError: If the prompt is blank.
            AlreadyInFlight: If a reply is still streaming.
            NoModelSelected: If no model has been selected.
        """
        text = prompt.strip()
        if not text:
            raise ValueError("Prompt must not be empty")

        loop = asyncio.get_running_loop()
        with self._lock:
            if self._in_flight is not None:
                raise AlreadyInFlight("A reply is still streaming")
            if not self._model:
                raise NoModelSelected("Select a model before sending a prompt")

            user_message = Message(role=Role.USER, content=text)
            self._transcript.append(user_message)
            self._pending = Message(role=Role.ASSISTANT)
            history = [m.model_copy() for m in self._transcript]

            handle = InFlightRequest(loop=loop)
            handle.task = loop.create_task(self._pump(handle, history, self._model))
            self._in_flight = handle

        logger.debug(f"Submitted turn {len(history)} to {self._model}")
        self._emit(SessionEvent(kind=SessionEventKind.SUBMITTED, message=user_message.model_copy()))
        return handle.task

    def on_delta(self, fragment: str) -> None:
        """Append a text fragment to the pending reply.

        A no-op when nothing is pending, e.g. a delta arriving after cancel.
        """
        self._append(fragment, None)

    def on_stream_end(self) -> None:
        """Commit the pending reply and return to IDLE."""
        self._finish(None)

    def cancel(self) -> bool:
        """Abort the in-flight request and drop its partial reply.

        Returns:
            True if a request was cancelled, False if the session was idle.
        """
        with self._lock:
            handle, discarded = self._detach()
        if handle is None:
            return False

        handle.cancel()
        logger.info("Cancelled in-flight request")
        self._emit(
            SessionEvent(
                kind=SessionEventKind.CANCELLED,
                content=discarded.content if discarded else None,
            )
        )
        return True

    def clear(self) -> None:
        """Reset the transcript. Cancels the in-flight request first, if any."""
        with self._lock:
            handle, discarded = self._detach()
            self._transcript.clear()

        if handle is not None:
            handle.cancel()
            self._emit(
                SessionEvent(
                    kind=SessionEventKind.CANCELLED,
                    content=discarded.content if discarded else None,
                )
            )
        self._emit(SessionEvent(kind=SessionEventKind.CLEARED))

    def _detach(self) -> tuple[InFlightRequest | None, Message | None]:
        # Caller holds the lock
        handle, discarded = self._in_flight, self._pending
        self._in_flight = None
        self._pending = None
        return handle, discarded

    def _append(self, fragment: str, handle: InFlightRequest | None) -> None:
        if not fragment:
            return
        with self._lock:
            if handle is not None and handle is not self._in_flight:
                return
            if self._pending is None:
                return
            self._pending.content += fragment
        self._emit(SessionEvent(kind=SessionEventKind.DELTA, content=fragment))

    def _finish(self, handle: InFlightRequest | None) -> None:
        with self._lock:
            if handle is not None and handle is not self._in_flight:
                return
            stale, pending = self._detach()
            if pending is None:
                return
            committed = bool(pending.content) or self._commit_empty
            if committed:
                self._transcript.append(pending)

        # Ended from outside the stream task: stop reading the stream
        if handle is None and stale is not None:
            stale.cancel()

        if not committed:
            logger.debug("Suppressed empty assistant reply")
        self._emit(
            SessionEvent(
                kind=SessionEventKind.COMMITTED,
                message=pending.model_copy() if committed else None,
            )
        )

    async def _pump(
        self, handle: InFlightRequest, history: list[Message], model: str
    ) -> None:
        failure: Exception | None = None
        try:
            async for delta in self._client.stream_chat(history, model):
                if handle is not self._in_flight:
                    return
                self._append(delta.content, handle)
                if delta.done and delta.total_duration is not None:
                    logger.debug(f"Reply finished in {delta.total_duration.total_seconds():.2f}s")
        except asyncio.CancelledError:
            with self._lock:
                current = handle is self._in_flight
            # Cancelled by the loop rather than by cancel(): release the session
            if current:
                self.cancel()
            raise
        except (TransportUnreachable, ServerRejected) as e:
            logger.error(f"Chat stream failed: {e}")
            failure = e
        except Exception as e:
            logger.exception("Unexpected error while streaming reply")
            failure = e

        self._finish(handle)

        if failure is not None:
            self._emit(SessionEvent(kind=SessionEventKind.FAILED, error=str(failure)))
            if isinstance(failure, TransportUnreachable):
                await self.refresh_connection()

    # Server state and model selection

    def _set_status(self, status: ConnectionStatus) -> None:
        with self._lock:
            changed = status is not self._status
            self._status = status
        if changed:
            logger.info(f"Connection status: {status.value}")
            self._emit(SessionEvent(kind=SessionEventKind.STATUS, status=status))

    async def refresh_connection(self) -> ConnectionStatus:
        """Probe the server and record the result."""
        status = await self._client.probe_liveness()
        self._set_status(status)
        return status

    async def start_server(self) -> ConnectionStatus:
        """Launch the server process, then record the probe result."""
        self._set_status(ConnectionStatus.CONNECTING)
        status = await self._client.launch_server_process()
        self._set_status(status)
        return status

    async def refresh_models(self) -> list[ModelInfo]:
        """Reload the model list and resolve the selected model.

        A stored selection that is no longer installed falls back to the
        first listed model. The fallback is not persisted.

        Returns:
            Models in server order, or an empty list if listing failed.
        """
        try:
            models = await self._client.list_models()
        except SidekickError as e:
            logger.error(f"Could not refresh models: {e}")
            with self._lock:
                self._models = []
            self._emit(SessionEvent(kind=SessionEventKind.FAILED, error=str(e)))
            return []

        names = [m.name for m in models]
        with self._lock:
            self._models = list(models)
            previous = self._model
            if self._model not in names:
                self._model = names[0] if names else None
            selected = self._model

        self._emit(SessionEvent(kind=SessionEventKind.MODELS, models=list(models)))
        if selected != previous:
            logger.info(f"Selected model {previous!r} unavailable, using {selected!r}")
            self._emit(SessionEvent(kind=SessionEventKind.MODEL_SELECTED, content=selected))
        return list(models)

    def select_model(self, name: str) -> None:
        """Select a model for subsequent turns and persist the choice."""
        if not name or not name.strip():
            raise ValueError("Model name must not be empty")
        name = name.strip()
        with self._lock:
            self._model = name
        if self._store is not None:
            self._store.set(name)
        self._emit(SessionEvent(kind=SessionEventKind.MODEL_SELECTED, content=name))

    async def pull_model(self, name: str) -> bool:
        """Pull a model on the server and reload the list when it lands."""
        ok = await self._client.pull_model(name)
        if ok:
            await self.refresh_models()
        return ok
