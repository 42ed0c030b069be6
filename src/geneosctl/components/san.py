"""Self-announcing Netprobe (SAN) instances."""
from __future__ import annotations

import posixpath
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..errors import InvalidArgumentError
from .base import InstanceCommon, binary_matches, settings_pairs, tls_args, unsupported
from .registry import Component, ComponentRegistry

SAN = Component(
    name="san",
    aliases=("san", "sans"),
    package_type="netprobe",
    defaults=(
        ("binary", "netprobe.linux_64"),
        ("home", "{{ join(root, 'san', 'sans', name) }}"),
        ("install", "{{ join(root, 'packages', 'netprobe') }}"),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "san.log"),
        ("port", "7036"),
        ("libpaths", "{{ join(install, version, 'lib64') }}:{{ join(install, version) }}"),
        ("sanname", "{{ name }}"),
        ("configrebuild", "always"),
    ),
    global_settings={
        "SanPortRange": "7036,7100-",
        "SanCleanList": "*.old",
        "SanPurgeList": "san.log:san.txt:*.snooze:*.user_assignment",
    },
    directories=("packages/netprobe", "san/sans", "san/templates"),
)

SETUP_TEMPLATE = "san/netprobe.setup.xml.j2"


@dataclass(eq=False, slots=True)
class SanInstance:
    """A Netprobe that announces itself to one or more Gateways."""

    common: InstanceCommon

    def __str__(self) -> str:
        return str(self.common)

    def command(self) -> tuple[list[str], dict[str, str]]:
        common = self.common
        args = [
            common.name,
            "-listenip",
            "none",
            "-port",
            common.get("port"),
            "-setup",
            "netprobe.setup.xml",
            "-setup-interval",
            "300",
        ]
        return args + tls_args(common), {"LOG_FILENAME": common.log_file()}

    def rebuild(self, initial: bool = False) -> None:
        """Render ``netprobe.setup.xml`` according to ``configrebuild``."""
        common = self.common
        mode = common.get("configrebuild", "always")
        if mode not in ("never", "initial", "always"):
            raise InvalidArgumentError(f"{common}: unknown configrebuild value {mode!r}")
        if mode == "never" or (mode == "initial" and not initial):
            return
        common.templates.render_to_host(
            SETUP_TEMPLATE,
            common.host,
            posixpath.join(common.home, "netprobe.setup.xml"),
            {
                "sanname": common.get("sanname", common.name),
                "secure": bool(common.get("certificate") and common.get("privatekey")),
                "gateways": _gateways(common.settings.get("gateways")),
                "attributes": settings_pairs(common.settings.get("attributes")),
                "variables": _variables(common.settings.get("variables")),
                "types": common.get_list("types"),
            },
        )

    def reload_signal(self) -> int:
        raise unsupported(self.common, "reload")

    def process_matches(self, argv: Sequence[str]) -> bool:
        return binary_matches(self.common, argv)


def _gateways(value: object) -> list[tuple[str, int]]:
    if not isinstance(value, Mapping):
        return []
    return sorted((str(host), int(port)) for host, port in value.items())


def _variables(value: object) -> list[tuple[str, str, str]]:
    """Split ``name: type:value`` variable settings."""
    items: list[tuple[str, str, str]] = []
    for name, definition in settings_pairs(value):
        kind, sep, content = definition.partition(":")
        if not sep:
            kind, content = "string", definition
        items.append((name, kind, content))
    return items


def register(registry: ComponentRegistry) -> Component:
    return registry.register(SAN, SanInstance)


__all__ = ["SAN", "SanInstance", "register"]
