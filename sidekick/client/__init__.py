"""HTTP client for the local Ollama server.

Responsibilities:
    - Liveness probing and installed detection
    - Model listing and pulling
    - Launching the server process
    - Streaming chat and generate requests

Configuration is loaded from the environment (.env supported).
"""

from sidekick.client.config import SidekickConfig, get_config
from sidekick.client.ollama import LIVENESS_GREETING, OllamaClient

__all__ = ["LIVENESS_GREETING", "OllamaClient", "SidekickConfig", "get_config"]
