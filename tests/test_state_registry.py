"""Settings store tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from geneosctl.hosts.local import LocalHost
from geneosctl.state import SettingsStore, StateRegistryError


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(LocalHost(name="localhost", root=str(tmp_path)))


def test_read_missing_file_returns_default(store: SettingsStore, tmp_path: Path) -> None:
    """Missing files return a copy of the provided default."""
    default = {"gateways": {"gw.example.com": 7039}}

    result = store.read(str(tmp_path / "san.yml"), default=default)

    assert result == default
    result["gateways"] = {}
    assert default["gateways"] == {"gw.example.com": 7039}


def test_write_and_read_back(store: SettingsStore, tmp_path: Path) -> None:
    """Written settings keep their mode and their key order."""
    path = tmp_path / "gw1" / "gateway.yml"
    payload = {"port": 7100, "name": "gw1", "env": ["JAVA_HOME=/opt/java"]}

    store.write(str(path), payload)

    assert (path.stat().st_mode & 0o777) == 0o640
    assert path.read_text(encoding="utf-8").splitlines()[0] == "port: 7100"
    assert store.read(str(path)) == payload
    assert store.exists(str(path))


def test_empty_file_reads_as_default(store: SettingsStore, tmp_path: Path) -> None:
    """An empty YAML document is treated like a missing one."""
    path = tmp_path / "host.yml"
    path.write_text("", encoding="utf-8")

    assert store.read(str(path)) == {}


def test_non_mapping_payload_raises(store: SettingsStore, tmp_path: Path) -> None:
    """A settings file must hold a mapping."""
    path = tmp_path / "netprobe.yml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(StateRegistryError):
        store.read(str(path))
