"""Orchestration layer tying components, hosts and instances together."""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field

from ..components.base import Instance, InstanceCommon
from ..components.registry import Component, ComponentRegistry
from ..errors import HostError, InvalidArgumentError
from ..hosts.base import Host
from ..hosts.resolver import HostResolver
from ..templates import TemplateEngine
from .address import InstanceAddress, split_name
from .cache import InstanceCache

LOGGER = logging.getLogger(__name__)


@dataclass
class Fleet:
    """Every instance across every known host."""

    registry: ComponentRegistry
    hosts: HostResolver
    templates: TemplateEngine
    reserved_names: tuple[str, ...] = ()
    cache: InstanceCache = field(default_factory=InstanceCache)

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------
    def split_name(self, token: str, default_host: Host | None = None) -> InstanceAddress:
        return split_name(
            token,
            default_host if default_host is not None else self.hosts.local,
            registry=self.registry,
            hosts=self.hosts,
        )

    def _components(self, component: Component | None) -> list[Component]:
        if component is None:
            return self.registry.real_components()
        return [component]

    def _hosts(self, host: Host) -> list[Host]:
        if host is self.hosts.all:
            return self.hosts.all_hosts()
        return [host]

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------
    def get_instance(self, component: Component, name: str, host: Host) -> Instance:
        """Return the single in-memory instance for ``(component, name, host)``."""
        if host is self.hosts.all:
            raise InvalidArgumentError(f"{component}:{name} needs a concrete host, not 'all'")
        if not component.real or component.factory is None:
            raise InvalidArgumentError(f"{component} has no instances")
        key = (component.name, name, host.name)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        common = InstanceCommon.create(component, name, host, self.templates)
        try:
            common.load()
        except RuntimeError as exc:
            LOGGER.warning("%s: cannot load settings: %s", common, exc)
        return self.cache.put(component.factory(common))

    def evict(self, instance: Instance) -> None:
        """Forget *instance* so the next lookup reloads it from disk."""
        instance.common.unload()
        self.cache.evict(instance.common.identity)

    def evict_host(self, host_name: str) -> int:
        doomed = [item for item in self.cache if item.common.host.name == host_name]
        for instance in doomed:
            self.evict(instance)
        return len(doomed)

    def names_on(self, host: Host, component: Component) -> list[str]:
        """Return bare instance directory names for *component* on *host*."""
        if not host.loaded:
            return []
        try:
            entries = host.listdir(component.component_dir(host))
        except (OSError, HostError) as exc:
            LOGGER.debug("%s: no %s instances: %s", host, component, exc)
            return []
        return sorted({entry.name for entry in entries if entry.is_dir})

    def find_names(self, host: Host, component: Component | None = None) -> list[str]:
        """Return ``name@host`` for every instance directory, sorted per host."""
        names: list[str] = []
        for target in self._hosts(host):
            bare: set[str] = set()
            for item in self._components(component):
                bare.update(self.names_on(target, item))
            names.extend(target.full_name(name) for name in sorted(bare))
        return names

    def instances(self, host: Host, component: Component | None = None) -> list[Instance]:
        """Return every instance of *component* (all types when ``None``) on *host*."""
        found: list[Instance] = []
        for target in self._hosts(host):
            for item in self._components(component):
                for name in self.names_on(target, item):
                    found.append(self.get_instance(item, name, target))
        return found

    def find_instances(self, component: Component | None, token: str) -> list[Instance]:
        """Return instances whose bare name matches *token* on its host(s).

        A token without ``@HOST`` is searched for on every known host. A type
        prefix in the token narrows the search to that component.
        """
        address = self.split_name(token, self.hosts.all)
        if not address.host.loaded:
            LOGGER.debug("host %s not loaded", address.host)
            return []
        if not address.name:
            return []
        if address.component is not None:
            if component is not None and component is not address.component:
                return []
            component = address.component
        found: list[Instance] = []
        for target in self._hosts(address.host):
            for item in self._components(component):
                if address.name in self.names_on(target, item):
                    found.append(self.get_instance(item, address.name, target))
        return found

    def exists(self, component: Component, name: str, host: Host) -> bool:
        """Return ``True`` when the instance directory is present.

        An unreachable host counts as not having the instance.
        """
        if not host.loaded:
            return False
        try:
            return host.is_dir(posixpath.join(component.component_dir(host), name))
        except (OSError, HostError) as exc:
            LOGGER.debug("%s: cannot check %s:%s: %s", host, component, name, exc)
            return False


__all__ = ["Fleet"]
