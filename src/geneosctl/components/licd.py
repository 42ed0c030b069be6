"""Licence daemon instances."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .base import InstanceCommon, binary_matches, tls_args, unsupported
from .registry import Component, ComponentRegistry

LICD = Component(
    name="licd",
    aliases=("licd", "licds"),
    defaults=(
        ("binary", "licd.linux_64"),
        ("home", "{{ join(root, 'licd', 'licds', name) }}"),
        ("install", "{{ join(root, 'packages', 'licd') }}"),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "licd.log"),
        ("port", "7041"),
        ("libpaths", "{{ join(install, version, 'lib64') }}"),
    ),
    global_settings={
        "LicdPortRange": "7041,7100-",
        "LicdCleanList": "*.old",
        "LicdPurgeList": "licd.log:licd.txt",
    },
    directories=("packages/licd", "licd/licds"),
)


@dataclass(eq=False, slots=True)
class LicdInstance:
    """A licence daemon."""

    common: InstanceCommon

    def __str__(self) -> str:
        return str(self.common)

    def command(self) -> tuple[list[str], dict[str, str]]:
        common = self.common
        args = [common.name, "-port", common.get("port"), "-log", common.log_file()]
        return args + tls_args(common), {}

    def rebuild(self, initial: bool = False) -> None:
        raise unsupported(self.common, "rebuild")

    def reload_signal(self) -> int:
        raise unsupported(self.common, "reload")

    def process_matches(self, argv: Sequence[str]) -> bool:
        return binary_matches(self.common, argv)


def register(registry: ComponentRegistry) -> Component:
    return registry.register(LICD, LicdInstance)


__all__ = ["LICD", "LicdInstance", "register"]
