"""Component descriptors and the registry that holds them.

A :class:`Component` describes one instance type: its command line aliases,
its default settings, the directories it needs under a host root and the
factory that wraps an :class:`~geneosctl.components.base.InstanceCommon` in
the type-specific variant. Components are compared by identity once
registered.
"""
from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import InvalidArgumentError

if TYPE_CHECKING:
    from ..hosts.base import Host
    from .base import Instance, InstanceCommon

LOGGER = logging.getLogger(__name__)

InstanceFactory = Callable[["InstanceCommon"], "Instance"]


@dataclass(eq=False, slots=True)
class Component:
    """Static metadata for one instance type."""

    name: str
    aliases: tuple[str, ...]
    real: bool = True
    package_type: str | None = None
    defaults: tuple[tuple[str, str], ...] = ()
    global_settings: Mapping[str, str] = field(default_factory=dict)
    directories: tuple[str, ...] = ()
    factory: InstanceFactory | None = None

    def __str__(self) -> str:
        return self.name

    @property
    def packages(self) -> str:
        """Return the component name used under ``packages/``."""
        return self.package_type or self.name

    @property
    def port_range_key(self) -> str:
        return f"{self.name}portrange"

    @property
    def clean_list_key(self) -> str:
        return f"{self.name}cleanlist"

    @property
    def purge_list_key(self) -> str:
        return f"{self.name}purgelist"

    def component_dir(self, host: Host) -> str:
        """Return the directory holding one sub-directory per instance."""
        return host.path(self.name, f"{self.name}s")

    def instance_home(self, host: Host, name: str) -> str:
        return posixpath.join(self.component_dir(host), name)

    def package_dir(self, host: Host) -> str:
        """Return the directory holding installed package versions."""
        return host.path("packages", self.packages)

    def matches(self, token: str) -> bool:
        return token in self.aliases


@dataclass
class ComponentRegistry:
    """Registered components in declaration order."""

    _components: dict[str, Component] = field(default_factory=dict)
    settings: dict[str, str] = field(default_factory=dict)

    def register(self, component: Component, factory: InstanceFactory | None = None) -> Component:
        """Store *component* and merge its global settings into the store."""
        if component.name in self._components:
            raise InvalidArgumentError(f"component {component.name!r} already registered")
        for alias in component.aliases:
            owner = self._owner_of(alias)
            if owner is not None:
                raise InvalidArgumentError(
                    f"alias {alias!r} of {component.name!r} already belongs to {owner.name!r}"
                )
        if factory is not None:
            component.factory = factory
        for key, value in component.global_settings.items():
            self.settings.setdefault(key.lower(), value)
        self._components[component.name] = component
        LOGGER.debug("registered component %s", component.name)
        return component

    def apply_settings(self, overrides: Mapping[str, object]) -> None:
        """Override global settings, typically from the user's configuration."""
        for key, value in overrides.items():
            self.settings[str(key).lower()] = "" if value is None else str(value)

    def setting(self, key: str, default: str = "") -> str:
        return self.settings.get(key.lower(), default)

    def _owner_of(self, alias: str) -> Component | None:
        for component in self._components.values():
            if alias in component.aliases:
                return component
        return None

    def lookup(self, token: str) -> Component | None:
        """Return the component owning *token*, or ``None``.

        Matching is case-sensitive. Aliases of the pseudo ``none`` component
        (``all``, ``any``) also return ``None`` meaning "no type filter".
        """
        component = self._owner_of(token)
        if component is None or not component.real:
            return None
        return component

    def is_alias(self, token: str) -> bool:
        """Return ``True`` when *token* names any registered component."""
        return self._owner_of(token) is not None

    def get(self, name: str) -> Component:
        try:
            return self._components[name]
        except KeyError as exc:
            raise InvalidArgumentError(f"unknown component {name!r}") from exc

    def real_components(self) -> list[Component]:
        """Return process-bearing components in registration order."""
        return [component for component in self._components.values() if component.real]

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components.values())

    def __len__(self) -> int:
        return len(self._components)

    def directories(self, component: Component | None = None) -> list[str]:
        """Return the directories (relative to a host root) that must exist."""
        if component is not None:
            return list(component.directories)
        seen: list[str] = []
        for item in self._components.values():
            for directory in item.directories:
                if directory not in seen:
                    seen.append(directory)
        return seen

    def make_component_dirs(self, host: Host, component: Component | None = None) -> list[str]:
        """Create the registered directories under *host*'s root."""
        created: list[str] = []
        for directory in self.directories(component):
            path = host.path(directory)
            host.mkdirs(path)
            created.append(path)
        return created


__all__ = ["Component", "ComponentRegistry", "InstanceFactory"]
