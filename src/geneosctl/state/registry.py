"""Read and write YAML settings files through a :class:`~geneosctl.hosts.base.Host`.

Instances keep their settings in ``<home>/<type>.yml`` and remote host
definitions live in ``<hosts_dir>/<name>/host.yml``. Writes replace the file
atomically on the owning host so a crash never leaves a half-written file.
"""
from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass
from typing import TYPE_CHECKING

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to manage geneosctl state. Install with `pip install geneosctl`."
    ) from exc

from ..errors import HostError

if TYPE_CHECKING:
    from ..hosts.base import Host


class StateRegistryError(RuntimeError):
    """Raised when a settings file cannot be read or written."""


@dataclass(frozen=True, slots=True)
class SettingsStore:
    """YAML settings files stored on one host."""

    host: Host

    def exists(self, path: str) -> bool:
        """Return ``True`` when *path* is present on the host."""
        return self.host.exists(path)

    def read(self, path: str, *, default: Mapping[str, object] | None = None) -> dict[str, object]:
        """Read a settings mapping, returning *default* when the file is missing."""
        try:
            text = self.host.read_text(path)
        except FileNotFoundError:
            return dict(deepcopy(default or {}))
        except (OSError, HostError) as exc:
            raise StateRegistryError(f"Failed to read settings file {path}: {exc}") from exc
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
            raise StateRegistryError(f"Failed to parse settings file {path}: {exc}") from exc
        if data is None:
            return dict(deepcopy(default or {}))
        if not isinstance(data, Mapping):
            raise StateRegistryError(f"Settings file {path} must contain a mapping.")
        return {str(key): value for key, value in data.items()}

    def write(self, path: str, payload: Mapping[str, object], *, mode: int = 0o640) -> None:
        """Atomically write *payload* to *path* on the host."""
        text = yaml.safe_dump(dict(payload), sort_keys=False)
        try:
            self.host.write_text(path, text, mode=mode)
        except (OSError, HostError) as exc:
            raise StateRegistryError(f"Failed to write settings file {path}: {exc}") from exc


__all__ = ["SettingsStore", "StateRegistryError"]
