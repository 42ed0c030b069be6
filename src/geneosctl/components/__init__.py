"""Instance types and the registry that declares them."""
from __future__ import annotations

from collections.abc import Mapping

from . import gateway, licd, netprobe, root, san, webserver
from .base import Instance, InstanceCommon, build_command
from .registry import Component, ComponentRegistry

# Registration order is part of the contract: it fixes the iteration order of
# ``ComponentRegistry.real_components()`` and therefore of fleet listings.
REGISTRATION_ORDER = (root, gateway, licd, netprobe, san, webserver)


def build_registry(settings: Mapping[str, object] | None = None) -> ComponentRegistry:
    """Return a registry with every component registered."""
    registry = ComponentRegistry()
    for module in REGISTRATION_ORDER:
        module.register(registry)
    if settings:
        registry.apply_settings(settings)
    return registry


__all__ = [
    "Component",
    "ComponentRegistry",
    "Instance",
    "InstanceCommon",
    "REGISTRATION_ORDER",
    "build_command",
    "build_registry",
]
