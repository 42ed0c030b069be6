"""Tests for instance address parsing and name classification."""
from __future__ import annotations

import pytest

from geneosctl.components.registry import ComponentRegistry
from geneosctl.hosts.resolver import HostResolver
from geneosctl.instances.address import reserved_name, split_name, valid_instance_name


def test_split_name_with_type_and_host(registry: ComponentRegistry, hosts: HostResolver) -> None:
    """``TYPE:NAME@HOST`` yields all three parts."""
    address = split_name("gateway:g1@hostb", hosts.local, registry=registry, hosts=hosts)

    assert address.component is registry.lookup("gateway")
    assert address.name == "g1"
    assert address.host is hosts.get("hostb")
    assert address.host.loaded is False


def test_split_name_bare_uses_default_host(
    registry: ComponentRegistry, hosts: HostResolver
) -> None:
    """A bare name keeps the caller's default host and no type."""
    address = split_name("g1", hosts.all, registry=registry, hosts=hosts)

    assert address.component is None
    assert address.name == "g1"
    assert address.host is hosts.all


def test_split_name_host_only(registry: ComponentRegistry, hosts: HostResolver) -> None:
    """``@HOST`` yields an empty name on that host."""
    address = split_name("@localhost", hosts.all, registry=registry, hosts=hosts)

    assert address.component is None
    assert address.name == ""
    assert address.host is hosts.local


def test_split_name_uses_last_at_sign(registry: ComponentRegistry, hosts: HostResolver) -> None:
    """Only the final ``@`` separates the host."""
    address = split_name("user@site@localhost", hosts.all, registry=registry, hosts=hosts)

    assert address.name == "user@site"
    assert address.host is hosts.local


def test_split_name_keeps_unknown_prefix(registry: ComponentRegistry, hosts: HostResolver) -> None:
    """A colon prefix that is not a component alias stays part of the name."""
    address = split_name("widget:w1", hosts.local, registry=registry, hosts=hosts)

    assert address.component is None
    assert address.name == "widget:w1"


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("gw1", True),
        ("my gateway", True),
        ("gateway:g1@hostb", True),
        ("5.14.0", False),
        ("-flag", False),
        ("/tmp/file", False),
        ("g", False),
    ],
)
def test_valid_instance_name(token: str, expected: bool) -> None:
    """Versions, options and paths are not instance names."""
    assert valid_instance_name(token) is expected


def test_reserved_name_covers_aliases_and_user_list(registry: ComponentRegistry) -> None:
    """Aliases and configured names are reserved, the latter case-insensitively."""
    assert reserved_name("gateway", registry=registry) is True
    assert reserved_name("all", registry=registry) is True
    assert reserved_name("Prod", registry=registry, reserved=("prod",)) is True
    assert reserved_name("g1", registry=registry, reserved=("prod",)) is False
