"""Port allocation from component port ranges."""
from __future__ import annotations

import logging
from collections.abc import Collection, Iterator

from ..components.registry import Component
from ..errors import InvalidArgumentError
from ..hosts.base import Host
from .fleet import Fleet

LOGGER = logging.getLogger(__name__)

MAX_PORT = 49151


def _parse_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_port_range(port_range: str) -> Iterator[int]:
    """Yield candidate ports from a port range string in order.

    The string is a comma separated list of single ports and
    inclusive ranges written ``a-b`` or ``a..b``. An open range ``a-`` ends
    at :data:`MAX_PORT`. Malformed or inverted pieces are skipped.
    """
    for piece in port_range.split(","):
        bounds = piece.split("-", 1)
        if len(bounds) == 1:
            bounds = piece.split("..", 1)

        if len(bounds) > 1:
            low = _parse_int(bounds[0])
            high = MAX_PORT if bounds[1].strip() == "" else _parse_int(bounds[1])
            if low is None or high is None or low >= high:
                continue
            yield from range(low, high + 1)
            continue

        port = _parse_int(bounds[0])
        if port is None or port < 1 or port > MAX_PORT:
            continue
        yield port


def next_port(port_range: str, used: Collection[int]) -> int:
    """Return the first port in *port_range* not in *used*, or ``0``."""
    for port in parse_port_range(port_range):
        if port not in used:
            return port
    return 0


def used_ports(fleet: Fleet, host: Host) -> set[int]:
    """Return the ports configured by every loaded instance on *host*."""
    if host is fleet.hosts.all:
        raise InvalidArgumentError("used ports must be read from one host, not 'all'")
    ports: set[int] = set()
    for instance in fleet.instances(host):
        common = instance.common
        if not common.loaded:
            LOGGER.info("cannot load configuration for %s", common)
            continue
        try:
            port = common.get_int("port")
        except InvalidArgumentError as exc:
            LOGGER.warning("%s", exc)
            continue
        if port:
            ports.add(port)
    return ports


def next_port_for(fleet: Fleet, host: Host, component: Component) -> int:
    """Return the next free port for a new *component* instance on *host*."""
    port_range = fleet.registry.setting(component.port_range_key)
    return next_port(port_range, used_ports(fleet, host))


__all__ = ["MAX_PORT", "next_port", "next_port_for", "parse_port_range", "used_ports"]
