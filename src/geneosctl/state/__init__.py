"""Persisted YAML settings for instances and hosts."""
from __future__ import annotations

from .registry import SettingsStore, StateRegistryError

__all__ = ["SettingsStore", "StateRegistryError"]
