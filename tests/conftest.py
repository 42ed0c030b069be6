"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

from geneosctl.components import ComponentRegistry, build_registry
from geneosctl.hosts.local import LocalHost
from geneosctl.hosts.resolver import HostResolver
from geneosctl.instances import Fleet
from geneosctl.templates import TemplateEngine

MakeInstance = Callable[..., Path]
AddHost = Callable[[str], LocalHost]


@pytest.fixture(autouse=True)
def _not_superuser(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test as an ordinary user so remote hosts are listed."""
    monkeypatch.setattr("geneosctl.hosts.resolver.is_superuser", lambda: False)


@pytest.fixture
def geneos_root(tmp_path: Path) -> Path:
    """Return an empty Geneos root for the local host."""
    root = tmp_path / "geneos"
    root.mkdir()
    return root


@pytest.fixture
def registry() -> ComponentRegistry:
    """Return a registry with every component registered."""
    return build_registry()


@pytest.fixture
def templates() -> TemplateEngine:
    return TemplateEngine.with_overrides(None)


@pytest.fixture
def hosts(geneos_root: Path) -> HostResolver:
    """Return a resolver whose local host lives under ``geneos_root``."""
    return HostResolver(local=LocalHost.create(geneos_root), hosts_dir=str(geneos_root / "hosts"))


@pytest.fixture
def fleet(registry: ComponentRegistry, hosts: HostResolver, templates: TemplateEngine) -> Fleet:
    return Fleet(registry=registry, hosts=hosts, templates=templates)


@pytest.fixture
def add_host(tmp_path: Path, hosts: HostResolver) -> AddHost:
    """Return a helper registering a filesystem-backed stand-in for a remote host.

    The stand-in is a :class:`LocalHost` with its own root, persisted in the
    hosts directory and pre-seeded in the resolver cache so no SSH session is
    ever opened.
    """

    def _add(name: str) -> LocalHost:
        root = tmp_path / f"{name}-root"
        root.mkdir(parents=True, exist_ok=True)
        host_dir = Path(hosts.hosts_dir) / name
        host_dir.mkdir(parents=True, exist_ok=True)
        settings = {"hostname": name, "port": 22, "geneos": str(root)}
        (host_dir / "host.yml").write_text(yaml.safe_dump(settings), encoding="utf-8")
        host = LocalHost(name=name, root=str(root), settings=settings)
        hosts._cache[name] = host  # type: ignore[attr-defined]
        return host

    return _add


@pytest.fixture
def make_instance() -> MakeInstance:
    """Return a helper creating an instance directory with optional settings."""

    def _make(
        host: LocalHost,
        component: str,
        name: str,
        settings: dict[str, object] | None = None,
    ) -> Path:
        home = Path(host.root) / component / f"{component}s" / name
        home.mkdir(parents=True, exist_ok=True)
        if settings is not None:
            (home / f"{component}.yml").write_text(yaml.safe_dump(settings), encoding="utf-8")
        return home

    return _make
