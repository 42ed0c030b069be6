"""Netprobe instances."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .base import InstanceCommon, binary_matches, tls_args, unsupported
from .registry import Component, ComponentRegistry

NETPROBE = Component(
    name="netprobe",
    aliases=("netprobe", "probe", "netprobes", "probes"),
    defaults=(
        ("binary", "netprobe.linux_64"),
        ("home", "{{ join(root, 'netprobe', 'netprobes', name) }}"),
        ("install", "{{ join(root, 'packages', 'netprobe') }}"),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "netprobe.log"),
        ("port", "7036"),
        ("libpaths", "{{ join(install, version, 'lib64') }}:{{ join(install, version) }}"),
    ),
    global_settings={
        "NetprobePortRange": "7036,7100-",
        "NetprobeCleanList": "*.old",
        "NetprobePurgeList": "netprobe.log:netprobe.txt:*.snooze:*.user_assignment",
    },
    directories=("packages/netprobe", "netprobe/netprobes"),
)


@dataclass(eq=False, slots=True)
class NetprobeInstance:
    """A plain Netprobe."""

    common: InstanceCommon

    def __str__(self) -> str:
        return str(self.common)

    def command(self) -> tuple[list[str], dict[str, str]]:
        common = self.common
        args = [common.name, "-port", common.get("port")]
        return args + tls_args(common), {"LOG_FILENAME": common.log_file()}

    def rebuild(self, initial: bool = False) -> None:
        raise unsupported(self.common, "rebuild")

    def reload_signal(self) -> int:
        raise unsupported(self.common, "reload")

    def process_matches(self, argv: Sequence[str]) -> bool:
        return binary_matches(self.common, argv)


def register(registry: ComponentRegistry) -> Component:
    return registry.register(NETPROBE, NetprobeInstance)


__all__ = ["NETPROBE", "NetprobeInstance", "register"]
