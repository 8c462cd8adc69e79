"""Persisted client settings (the last selected model)."""

from sidekick.storage.selected_model import SELECTED_MODEL_KEY, SelectedModelStore

__all__ = ["SELECTED_MODEL_KEY", "SelectedModelStore"]
