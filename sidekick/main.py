"""Console entry point.

Probes the local Ollama server, starts it when the binary is installed but
the server is down, loads the installed models and runs a prompt loop.
Replies stream to stdout; logs go to stderr. Ctrl-C while a reply is
streaming cancels it.
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
import threading

from dotenv import load_dotenv

from sidekick.client.config import get_config
from sidekick.client.ollama import OllamaClient
from sidekick.errors import AlreadyInFlight, NoModelSelected
from sidekick.models.schemas import ConnectionStatus, ModelInfo
from sidekick.session.chat_session import (
    ChatSession,
    SessionEvent,
    SessionEventKind,
)
from sidekick.storage.selected_model import SelectedModelStore

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

HELP = """Commands:
    /models        list installed models
    /model NAME    select a model (persisted)
    /pull NAME     download a model
    /clear         start a new conversation
    /quit          exit"""


def _format_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _print_models(models: list[ModelInfo], selected: str | None) -> None:
    if not models:
        print("No models installed. Use /pull NAME to download one.")
        return
    for model in models:
        marker = "*" if model.name == selected else " "
        print(f"{marker} {model.name:<40} {_format_size(model.size_bytes):>10}  {model.modified_at}")


def _print_event(event: SessionEvent) -> None:
    """Write session events to the console."""
    match event.kind:
        case SessionEventKind.DELTA:
            sys.stdout.write(event.content or "")
            sys.stdout.flush()
        case SessionEventKind.COMMITTED:
            print()
        case SessionEventKind.CANCELLED:
            print("\n[cancelled]")
        case SessionEventKind.FAILED:
            print(f"\n[error] {event.error}")
        case SessionEventKind.STATUS if event.status is not None:
            print(f"[{event.status.value}]")
        case SessionEventKind.MODEL_SELECTED:
            print(f"[model: {event.content}]")


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: "asyncio.Queue[str | None]") -> None:
    """Read stdin on a daemon thread so a blocked read never holds up exit."""

    def read() -> None:
        for line in sys.stdin:
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(lines.put_nowait, line.rstrip("\n"))
        if not loop.is_closed():
            loop.call_soon_threadsafe(lines.put_nowait, None)

    threading.Thread(target=read, name="stdin-reader", daemon=True).start()


async def _connect(session: ChatSession) -> bool:
    status = await session.refresh_connection()
    if status is ConnectionStatus.ERROR:
        print("Ollama is not running, trying to start it...")
        status = await session.start_server()

    if status is ConnectionStatus.NOT_INSTALLED:
        print("Ollama is not installed. Install it from https://ollama.com and retry.")
        return False
    if status is not ConnectionStatus.CONNECTED:
        print("Could not connect to Ollama, is it running?")
        return False
    return True


async def _run_turn(session: ChatSession, prompt: str) -> None:
    try:
        task = session.submit(prompt)
    except (AlreadyInFlight, NoModelSelected, ValueError) as e:
        print(f"[{e}]")
        return

    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    try:
        # wait() does not raise when the turn is cancelled
        await asyncio.wait([task])
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


async def _handle_command(session: ChatSession, line: str) -> bool:
    """Run a slash command. Returns False when the loop should stop."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command in ("/quit", "/exit"):
        return False
    if command == "/models":
        await session.refresh_models()
        _print_models(session.models, session.model)
    elif command == "/model" and argument:
        session.select_model(argument)
    elif command == "/pull" and argument:
        print(f"Pulling {argument}...")
        ok = await session.pull_model(argument)
        print("Done." if ok else f"Failed to pull {argument}.")
    elif command == "/clear":
        session.clear()
    else:
        print(HELP)
    return True


async def run_console() -> int:
    """Run the interactive chat loop.

    Returns:
        Process exit code.
    """
    config = get_config()
    session = ChatSession(OllamaClient(config), SelectedModelStore(config.settings_path))
    session.add_listener(_print_event)

    if not await _connect(session):
        return 1

    await session.refresh_models()
    _print_models(session.models, session.model)

    lines: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), lines)

    while True:
        sys.stdout.write("> ")
        sys.stdout.flush()
        line = await lines.get()
        if line is None:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not await _handle_command(session, line):
                break
            continue
        await _run_turn(session, line)

    session.cancel()
    return 0


def main() -> None:
    """Application entry point."""
    logger.debug(f"Using Ollama at {get_config().base_url}")
    try:
        code = asyncio.run(run_console())
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
