"""Client configuration with environment variable loading.

Pydantic-based configuration for the Ollama client, chat session and
selected-model store. Values come from the environment or a .env file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

DEFAULT_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_SERVER_BINARY = "/usr/local/bin/ollama"


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _default_settings_path() -> Path:
    configured = os.getenv("SIDEKICK_SETTINGS_PATH")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".config" / "sidekick" / "settings.json"


class SidekickConfig(BaseModel):
    """Configuration for the Ollama client.

    Attributes:
        base_url: Server base address.
        server_binary: Expected location of the server executable.
        settings_path: JSON file holding the last selected model.
        commit_empty_responses: Commit assistant replies that streamed no text.
        probe_timeout: Seconds allowed for the liveness probe.
        list_timeout: Seconds allowed for listing models.
        connect_timeout: Seconds allowed to open a streaming connection.
        pull_read_timeout: Seconds allowed between two pull progress lines.
        launch_probe_attempts: Probes made after launching the server.
        launch_probe_interval: Seconds between those probes.
    """

    base_url: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_HOST", DEFAULT_BASE_URL),
        description="Ollama server base URL",
    )
    server_binary: Path = Field(
        default_factory=lambda: Path(
            os.getenv("SIDEKICK_OLLAMA_BINARY", DEFAULT_SERVER_BINARY)
        ),
        description="Path of the ollama executable",
    )
    settings_path: Path = Field(
        default_factory=_default_settings_path,
        description="Where the selected model is persisted",
    )
    commit_empty_responses: bool = Field(
        default_factory=lambda: _env_flag("SIDEKICK_COMMIT_EMPTY", True),
        description="Commit assistant messages with no content at stream end",
    )
    probe_timeout: float = Field(default=5.0, gt=0.0)
    list_timeout: float = Field(default=10.0, gt=0.0)
    connect_timeout: float = Field(default=10.0, gt=0.0)
    pull_read_timeout: float = Field(default=300.0, gt=0.0)
    launch_probe_attempts: int = Field(default=10, ge=1)
    launch_probe_interval: float = Field(default=1.0, ge=0.0)

    @field_validator("base_url")
    @classmethod
    def normalize_base_url(cls, v: str) -> str:
        """Strip whitespace and trailing slashes; default to http://."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("OLLAMA_HOST must not be empty")
        if "://" not in v:
            v = f"http://{v}"
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported URL scheme in OLLAMA_HOST: {v}")
        return v


def get_config() -> SidekickConfig:
    """Create client configuration from environment.

    Returns:
        Configured SidekickConfig instance.

    Raises:
        ValueError: If OLLAMA_HOST is not a usable URL.
    """
    return SidekickConfig()
