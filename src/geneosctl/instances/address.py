"""Parse ``[TYPE:]NAME[@HOST]`` tokens and classify instance names."""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..components.registry import Component, ComponentRegistry
    from ..hosts.base import Host
    from ..hosts.resolver import HostResolver

# Spaces are valid. The second character may not be '.' so that bare version
# strings such as "5.14.0" are never mistaken for instance names.
VALID_NAME_RE = re.compile(r"^\w[\w-]+[:@\.\w -]*$")


@dataclass(frozen=True, slots=True)
class InstanceAddress:
    """Parsed form of a command line token."""

    component: Component | None
    name: str
    host: Host

    def __str__(self) -> str:
        prefix = f"{self.component.name}:" if self.component is not None else ""
        return f"{prefix}{self.name}@{self.host.name}"


def split_name(
    token: str,
    default_host: Host,
    *,
    registry: ComponentRegistry,
    hosts: HostResolver,
) -> InstanceAddress:
    """Split *token* into component, bare name and host.

    No existence checks are made. The host suffix is taken after the last
    ``@``; a ``TYPE:`` prefix is only stripped when ``TYPE`` is a registered
    alias.
    """
    host = default_host
    name = token
    if "@" in token:
        name, _, host_name = token.rpartition("@")
        host = hosts.get(host_name)
    component = None
    prefix, sep, remainder = name.partition(":")
    if sep and registry.is_alias(prefix):
        component = registry.lookup(prefix)
        name = remainder
    return InstanceAddress(component=component, name=name, host=host)


def valid_instance_name(token: str) -> bool:
    """Return ``True`` when *token* may be treated as an instance address."""
    return VALID_NAME_RE.match(token) is not None


def reserved_name(
    token: str,
    *,
    registry: ComponentRegistry,
    reserved: Iterable[str] = (),
) -> bool:
    """Return ``True`` for component aliases and user-declared reserved names."""
    if registry.is_alias(token):
        return True
    folded = token.casefold()
    return any(folded == item.strip().casefold() for item in reserved if item.strip())


__all__ = [
    "InstanceAddress",
    "VALID_NAME_RE",
    "reserved_name",
    "split_name",
    "valid_instance_name",
]
