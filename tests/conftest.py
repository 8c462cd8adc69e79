"""Pytest fixtures and shared test configuration.

Fixtures:
    - config: SidekickConfig pointing at temporary paths, binary present
    - fake_state / fake_ollama: in-process fake Ollama server
    - client: OllamaClient talking to the fake server over ASGITransport
    - store: SelectedModelStore in a temporary directory
    - scripted / scripted_client: chat stream fed chunk by chunk
"""

from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from sidekick.client.config import SidekickConfig
from sidekick.client.ollama import OllamaClient
from sidekick.storage.selected_model import SelectedModelStore
from tests.fakes import FakeOllamaState, ScriptedChat, create_fake_ollama


@pytest.fixture
def server_binary(tmp_path: Path) -> Path:
    """Create a stand-in server executable.

    Returns:
        Path of the fake binary.
    """
    binary = tmp_path / "bin" / "ollama"
    binary.parent.mkdir()
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def config(tmp_path: Path, server_binary: Path) -> SidekickConfig:
    """Configuration isolated from the developer's environment."""
    return SidekickConfig(
        base_url="http://ollama.test",
        server_binary=server_binary,
        settings_path=tmp_path / "settings" / "settings.json",
        commit_empty_responses=True,
        launch_probe_attempts=2,
        launch_probe_interval=0.0,
    )


@pytest.fixture
def fake_state() -> FakeOllamaState:
    return FakeOllamaState()


@pytest.fixture
def fake_ollama(fake_state: FakeOllamaState) -> FastAPI:
    return create_fake_ollama(fake_state)


@pytest.fixture
def client(config: SidekickConfig, fake_ollama: FastAPI) -> OllamaClient:
    """OllamaClient wired to the fake server."""
    return OllamaClient(config, transport=httpx.ASGITransport(app=fake_ollama))


@pytest.fixture
def store(config: SidekickConfig) -> SelectedModelStore:
    return SelectedModelStore(config.settings_path)


@pytest.fixture
def scripted() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture
def scripted_client(config: SidekickConfig, scripted: ScriptedChat) -> OllamaClient:
    """OllamaClient whose chat stream is driven by the test."""
    return OllamaClient(config, transport=scripted.transport())
