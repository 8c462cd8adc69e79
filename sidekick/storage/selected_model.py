"""Persistence for the last selected model.

Stores a single value under a fixed key in a small JSON settings file.
The stored id is not checked against the server's model list; callers
resolve staleness when they read it.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

SELECTED_MODEL_KEY = "selected_model"


class StoredSettings(BaseModel):
    """On-disk settings document."""

    selected_model: str | None = None


class SelectedModelStore:
    """Key-value store for the selected model identifier.

    Args:
        path: Settings file location. Parent directories are created on
            first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> StoredSettings:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return StoredSettings()
        except OSError as e:
            logger.warning(f"Could not read settings from {self._path}: {e}")
            return StoredSettings()

        try:
            return StoredSettings.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt settings file {self._path}: {e.error_count()} errors")
            return StoredSettings()

    def _write(self, settings: StoredSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(settings.model_dump_json(indent=2))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self) -> str | None:
        """Return the stored model id, or None if nothing is stored."""
        return self._load().selected_model

    def set(self, model_id: str) -> None:
        """Persist the model id, replacing any previous value."""
        settings = self._load()
        settings.selected_model = model_id
        self._write(settings)
        logger.debug(f"Stored {SELECTED_MODEL_KEY}={model_id}")

    def clear(self) -> None:
        """Forget the stored model id."""
        if self.get() is None:
            return
        self._write(StoredSettings())
