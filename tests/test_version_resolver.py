"""Tests for latest-version selection and the active version link."""
from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from geneosctl.components.registry import ComponentRegistry
from geneosctl.errors import HostError, InvalidArgumentError, NotFoundError
from geneosctl.hosts.local import LocalHost
from geneosctl.hosts.resolver import HostResolver
from geneosctl.instances import Fleet
from geneosctl.providers import component_version, latest, update, update_all
from geneosctl.providers.version_resolver import select_latest, version_key


def _packages(host: LocalHost, component: str, *versions: str) -> Path:
    base = Path(host.root) / "packages" / component
    for version in versions:
        (base / version).mkdir(parents=True, exist_ok=True)
    base.mkdir(parents=True, exist_ok=True)
    return base


def test_select_latest_breaks_numeric_ties_by_name() -> None:
    """Equal numeric versions are ordered by the unstripped name."""
    names = ["1.0.0", "1.2.0", "GA1.1.0", "2.0.0-beta", "2.0.0-rc1"]

    assert select_latest(names) == "2.0.0-rc1"


def test_version_key_pads_and_strips_ga_prefix() -> None:
    """Missing components default to zero and ``GA`` is ignored."""
    assert version_key("GA5.14") == (5, 14, 0)
    assert version_key("netprobe-6") == (6, 0, 0)
    assert version_key("active_prod") is None


def test_select_latest_of_nothing_is_empty() -> None:
    """No versioned names yields an empty string."""
    assert select_latest([]) == ""
    assert select_latest(["active_prod", "downloads"]) == ""


def test_latest_filters_and_excludes(hosts: HostResolver) -> None:
    """The caller's pattern and exclude predicate restrict candidates."""
    base = _packages(hosts.local, "gateway", "5.13.2", "5.14.0", "6.0.0")
    (base / "7.0.0.tar.gz").write_text("", encoding="utf-8")

    assert latest(hosts.local, str(base), "^5") == "5.14.0"
    assert latest(hosts.local, str(base), "", lambda entry: not entry.is_dir) == "6.0.0"
    assert latest(hosts.local, str(base / "missing")) == ""
    with pytest.raises(InvalidArgumentError):
        latest(hosts.local, str(base), "([")


def test_update_creates_link_to_latest(hosts: HostResolver, registry: ComponentRegistry) -> None:
    """With no link present the newest version is activated."""
    base = _packages(hosts.local, "gateway", "5.13.2", "5.14.0")

    result = update(hosts.local, registry.get("gateway"))

    assert result.changed is True
    assert result.version == "5.14.0"
    assert os.readlink(base / "active_prod") == "5.14.0"


def test_update_twice_is_idempotent(hosts: HostResolver, registry: ComponentRegistry) -> None:
    """A second update without overwrite leaves the link alone."""
    base = _packages(hosts.local, "gateway", "5.14.0")
    gateway = registry.get("gateway")

    assert update(hosts.local, gateway).changed is True
    assert update(hosts.local, gateway).changed is False
    assert os.readlink(base / "active_prod") == "5.14.0"


def test_update_respects_existing_link_without_overwrite(
    hosts: HostResolver, registry: ComponentRegistry
) -> None:
    """An existing link to another version is only replaced with overwrite."""
    base = _packages(hosts.local, "netprobe", "5.13.2", "5.14.0")
    os.symlink("5.13.2", base / "active_prod")
    netprobe = registry.get("netprobe")

    assert update(hosts.local, netprobe).changed is False
    assert os.readlink(base / "active_prod") == "5.13.2"

    result = update(hosts.local, netprobe, overwrite=True)
    assert result.changed is True
    assert os.readlink(base / "active_prod") == "5.14.0"
    assert not (base / ".active_prod.tmp").exists()


def test_update_selects_version_prefix_and_link_name(
    hosts: HostResolver, registry: ComponentRegistry
) -> None:
    """A version prefix and alternate link name are honoured."""
    base = _packages(hosts.local, "licd", "5.13.2", "5.14.0")

    result = update(hosts.local, registry.get("licd"), version="5.13", link_name="active_dev")

    assert result.version == "5.13.2"
    assert os.readlink(base / "active_dev") == "5.13.2"
    with pytest.raises(InvalidArgumentError):
        update(hosts.local, registry.get("licd"), link_name="../escape")


def test_update_without_versions_leaves_link_untouched(
    hosts: HostResolver, registry: ComponentRegistry
) -> None:
    """Nothing to activate is not found, and the old link survives."""
    base = _packages(hosts.local, "gateway")
    os.symlink("5.12.0", base / "active_prod")

    with pytest.raises(NotFoundError):
        update(hosts.local, registry.get("gateway"), overwrite=True)
    assert os.readlink(base / "active_prod") == "5.12.0"


def test_update_refuses_to_replace_non_link(
    hosts: HostResolver, registry: ComponentRegistry
) -> None:
    """A real file or directory named like the link is an error."""
    base = _packages(hosts.local, "gateway", "5.14.0")
    (base / "active_prod").write_text("", encoding="utf-8")

    with pytest.raises(HostError):
        update(hosts.local, registry.get("gateway"), overwrite=True)


def test_update_all_skips_missing_packages(
    hosts: HostResolver,
    registry: ComponentRegistry,
    add_host: Callable[[str], LocalHost],
) -> None:
    """Across hosts and types, absent packages are skipped quietly."""
    remote = add_host("hostb")
    _packages(hosts.local, "gateway", "5.14.0")
    _packages(remote, "netprobe", "6.0.0")

    results = update_all(hosts, registry, hosts.all)

    assert [(item.host, item.component, item.version) for item in results] == [
        ("localhost", "gateway", "5.14.0"),
        ("hostb", "netprobe", "6.0.0"),
    ]
    with pytest.raises(NotFoundError):
        update_all(hosts, registry, hosts.local, registry.get("licd"))


def test_component_version_follows_link(
    fleet: Fleet, make_instance: Callable[..., Path]
) -> None:
    """An instance reports its configured link and the version behind it."""
    local = fleet.hosts.local
    base = _packages(local, "gateway", "5.14.0")
    os.symlink("5.14.0", base / "active_prod")
    make_instance(local, "gateway", "gw1")
    gateway = fleet.get_instance(fleet.registry.get("gateway"), "gw1", local)

    assert component_version(gateway) == ("active_prod", "5.14.0")

    (base / "active_prod").unlink()
    assert component_version(gateway) == ("active_prod", "unknown")
