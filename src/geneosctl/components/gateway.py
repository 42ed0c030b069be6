"""Gateway instances."""
from __future__ import annotations

import posixpath
import signal
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import InvalidArgumentError
from .base import InstanceCommon, binary_matches
from .registry import Component, ComponentRegistry

GATEWAY = Component(
    name="gateway",
    aliases=("gateway", "gateways"),
    defaults=(
        ("binary", "gateway2.linux_64"),
        ("home", "{{ join(root, 'gateway', 'gateways', name) }}"),
        ("install", "{{ join(root, 'packages', 'gateway') }}"),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "gateway.log"),
        ("port", "7039"),
        ("libpaths", "{{ join(install, version, 'lib64') }}:/usr/lib64"),
        ("gatewayname", "{{ name }}"),
        ("configrebuild", "initial"),
    ),
    global_settings={
        "GatewayPortRange": "7039,7100-",
        "GatewayCleanList": "*.old:*.history",
        "GatewayPurgeList": (
            "gateway.log:gateway.txt:gateway.snooze:gateway.user_assignment:"
            "licences.cache:cache/:database/"
        ),
    },
    directories=(
        "packages/gateway",
        "gateway/gateways",
        "gateway/gateway_shared",
        "gateway/gateway_config",
        "gateway/templates",
    ),
)

GATEWAY_TEMPLATE = "gateway/gateway.setup.xml.j2"
INSTANCE_TEMPLATE = "gateway/instance.setup.xml.j2"
REBUILD_MODES = ("never", "initial", "always")


@dataclass(eq=False, slots=True)
class GatewayInstance:
    """A Gateway process and its setup files."""

    common: InstanceCommon

    def __str__(self) -> str:
        return str(self.common)

    def command(self) -> tuple[list[str], dict[str, str]]:
        common = self.common
        install = common.get("install")
        version = common.get("version")
        args = [
            common.name,
            "-resources-dir",
            posixpath.join(install, version, "resources"),
            "-log",
            common.log_file(),
            "-setup",
            posixpath.join(common.home, "gateway.setup.xml"),
            "-stats",
        ]
        gatewayname = common.get("gatewayname")
        if gatewayname and gatewayname != common.name:
            args.insert(0, gatewayname)
        args[:0] = ["-port", common.get("port")]

        if common.get("licdhost"):
            args.extend(["-licd-host", common.get("licdhost")])
        if common.get_int("licdport"):
            args.extend(["-licd-port", common.get("licdport")])

        licdsecure = common.get("licdsecure").lower()
        certificate = common.get("certificate")
        if certificate:
            if licdsecure != "false":
                args.append("-licd-secure")
            args.extend(["-ssl-certificate", certificate])
            args.extend(["-ssl-certificate-chain", common.host.path("tls", "chain.pem")])
        elif licdsecure == "true":
            args.append("-licd-secure")
        if common.get("privatekey"):
            args.extend(["-ssl-certificate-key", common.get("privatekey")])
        return args, {}

    def rebuild(self, initial: bool = False) -> None:
        """Render ``instance.setup.xml`` and, when allowed, ``gateway.setup.xml``."""
        common = self.common
        context = self._template_context()
        common.templates.render_to_host(
            INSTANCE_TEMPLATE,
            common.host,
            posixpath.join(common.home, "instance.setup.xml"),
            context,
        )
        mode = common.get("configrebuild", "initial")
        if mode not in REBUILD_MODES:
            raise InvalidArgumentError(f"{common}: unknown configrebuild value {mode!r}")
        if mode == "never" or (mode == "initial" and not initial):
            return
        common.templates.render_to_host(
            GATEWAY_TEMPLATE,
            common.host,
            posixpath.join(common.home, "gateway.setup.xml"),
            context,
        )

    def _template_context(self) -> dict[str, object]:
        common = self.common
        includes = common.settings.get("includes")
        include_items: list[tuple[int, str]] = []
        if isinstance(includes, dict):
            include_items = sorted((int(key), str(value)) for key, value in includes.items())
        return {
            "name": common.name,
            "home": common.home,
            "hostname": common.host.hostname,
            "gatewayname": common.get("gatewayname", common.name),
            "port": common.get_int("port"),
            "secure": bool(common.get("certificate") and common.get("privatekey")),
            "includes": include_items,
        }

    def reload_signal(self) -> int:
        return int(signal.SIGUSR1)

    def process_matches(self, argv: Sequence[str]) -> bool:
        return binary_matches(self.common, argv)


def register(registry: ComponentRegistry) -> Component:
    return registry.register(GATEWAY, GatewayInstance)


__all__ = ["GATEWAY", "GatewayInstance", "register"]
