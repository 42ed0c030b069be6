"""Instance values shared by every component variant.

Each variant (``GatewayInstance``, ``NetprobeInstance``...) holds one
:class:`InstanceCommon` carrying the identity and settings that every type
has, and implements the :class:`Instance` protocol for the parts that differ:
launch command, derived configuration files, reload and process matching.
"""
from __future__ import annotations

import logging
import posixpath
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..errors import InvalidArgumentError, UnsupportedError
from ..state import SettingsStore

if TYPE_CHECKING:
    from ..hosts.base import Host
    from ..templates import TemplateEngine
    from .registry import Component

LOGGER = logging.getLogger(__name__)

DISABLE_EXTENSION = "disabled"


@dataclass(eq=False, slots=True)
class InstanceCommon:
    """Identity and settings of one instance."""

    component: Component
    name: str
    host: Host
    templates: TemplateEngine
    settings: dict[str, object] = field(default_factory=dict)
    loaded: bool = False

    @classmethod
    def create(
        cls,
        component: Component,
        name: str,
        host: Host,
        templates: TemplateEngine,
    ) -> InstanceCommon:
        """Build an instance with its rendered default settings."""
        common = cls(component=component, name=name, host=host, templates=templates)
        common.settings = render_defaults(component, name, host, templates)
        return common

    def __str__(self) -> str:
        return f"{self.component.name}:{self.name}@{self.host.name}"

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.component.name, self.name, self.host.name)

    @property
    def home(self) -> str:
        return str(self.settings.get("home") or self.component.instance_home(self.host, self.name))

    # ------------------------------------------------------------------
    # Settings access
    # ------------------------------------------------------------------
    def get(self, key: str, default: str = "") -> str:
        value = self.settings.get(key)
        if value is None:
            return default
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.settings.get(key)
        if value in (None, ""):
            return default
        if isinstance(value, bool):
            raise InvalidArgumentError(f"{self}: setting {key!r} must be an integer")
        try:
            return int(str(value))
        except ValueError as exc:
            raise InvalidArgumentError(f"{self}: setting {key!r} must be an integer") from exc

    def get_list(self, key: str) -> list[str]:
        value = self.settings.get(key)
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, Sequence):
            return [str(item) for item in value]
        raise InvalidArgumentError(f"{self}: setting {key!r} must be a list")

    def set(self, key: str, value: object) -> None:
        self.settings[key] = value

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def config_path(self, extension: str = "yml") -> str:
        """Return ``<home>/<type>.<extension>``."""
        return posixpath.join(self.home, f"{self.component.name}.{extension}")

    def abs_path(self, path: str) -> str:
        """Resolve *path* relative to the instance home."""
        cleaned = posixpath.normpath(path)
        if posixpath.isabs(cleaned):
            return cleaned
        return posixpath.join(self.home, cleaned)

    def log_file(self) -> str:
        """Return the full path of the instance log file."""
        logdir = self.get("logdir")
        if not logdir:
            directory = self.home
        else:
            directory = self.abs_path(logdir)
        return posixpath.join(directory, self.get("logfile"))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> bool:
        """Overlay settings from ``<home>/<type>.yml`` when present."""
        store = SettingsStore(self.host)
        path = self.config_path()
        if not store.exists(path):
            self.loaded = False
            return False
        for key, value in store.read(path).items():
            if key in {"home", "name"}:
                continue
            self.settings[key] = value
        self.loaded = True
        return True

    def unload(self) -> None:
        """Drop loaded settings, falling back to the rendered defaults."""
        self.settings = render_defaults(self.component, self.name, self.host, self.templates)
        self.loaded = False

    def save(self) -> None:
        """Write the settings to ``<home>/<type>.yml``."""
        SettingsStore(self.host).write(self.config_path(), self.settings)
        self.loaded = True

    def is_disabled(self) -> bool:
        try:
            return self.host.stat(self.config_path(DISABLE_EXTENSION)).is_file
        except FileNotFoundError:
            return False


@runtime_checkable
class Instance(Protocol):
    """Type-specific behaviour dispatched by the core."""

    common: InstanceCommon

    def command(self) -> tuple[list[str], dict[str, str]]:
        """Return launch arguments (after the program) and extra environment."""
        ...

    def rebuild(self, initial: bool = False) -> None:
        """Regenerate derived configuration files."""
        ...

    def reload_signal(self) -> int:
        """Return the signal that asks the process to reread its configuration."""
        ...

    def process_matches(self, argv: Sequence[str]) -> bool:
        """Return ``True`` when *argv* belongs to this instance's process."""
        ...


def render_defaults(
    component: Component,
    name: str,
    host: Host,
    templates: TemplateEngine,
) -> dict[str, object]:
    """Render *component*'s default settings in declaration order."""
    context: dict[str, object] = {"root": host.root, "name": name, "host": host.name}
    rendered: dict[str, object] = {"name": name}
    for key, source in component.defaults:
        value = templates.render_text(source, context)
        rendered[key] = value
        context[key] = value
    return rendered


def binary_matches(common: InstanceCommon, argv: Sequence[str]) -> bool:
    """Match an executable named after ``binary`` with a bare name argument."""
    if not argv:
        return False
    binary = common.get("binary")
    if not binary or not posixpath.basename(argv[0]).startswith(binary):
        return False
    return common.name in argv[1:]


def parse_env(entries: Sequence[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a mapping, ignoring malformed items."""
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if sep and key:
            env[key] = value
    return env


def build_command(instance: Instance) -> tuple[list[str], dict[str, str]]:
    """Assemble the full argv and environment used to start *instance*."""
    common = instance.common
    args, env = instance.command()
    args = [*args, *shlex.split(common.get("options"))]
    environment = dict(env)
    environment.update(parse_env(common.get_list("env")))
    environment["LD_LIBRARY_PATH"] = common.get("libpaths")
    return [common.get("program"), *args], environment


def unsupported(instance: InstanceCommon, action: str) -> UnsupportedError:
    return UnsupportedError(f"{instance}: {action} is not supported by {instance.component.name}")


def tls_args(common: InstanceCommon) -> list[str]:
    """Return ``-secure``/certificate arguments shared by probes and licd."""
    args: list[str] = []
    certificate = common.get("certificate")
    if certificate:
        args.extend(["-secure", "-ssl-certificate", certificate])
    privatekey = common.get("privatekey")
    if privatekey:
        args.extend(["-ssl-certificate-key", privatekey])
    return args


def settings_pairs(value: object) -> list[tuple[str, str]]:
    """Return a sorted list of pairs from a mapping-valued setting."""
    if not isinstance(value, Mapping):
        return []
    return sorted((str(key), str(item)) for key, item in value.items())


__all__ = [
    "DISABLE_EXTENSION",
    "Instance",
    "InstanceCommon",
    "binary_matches",
    "build_command",
    "parse_env",
    "render_defaults",
    "settings_pairs",
    "tls_args",
    "unsupported",
]
