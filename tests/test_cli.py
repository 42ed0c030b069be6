"""CLI smoke tests for geneosctl."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from geneosctl import __version__
from geneosctl.cli import app
from geneosctl.components.registry import ComponentRegistry
from geneosctl.config import StopConfig
from geneosctl.exit_codes import ExitCode
from geneosctl.instances import Lifecycle, ProcScanLocator

runner = CliRunner()


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Write a config file rooted in ``tmp_path`` and return the CLI environment."""
    root = tmp_path / "geneos"
    root.mkdir()
    proc = tmp_path / "proc"
    proc.mkdir()
    config = {
        "geneos_root": str(root),
        "logs_dir": str(tmp_path / "logs"),
        "reserved_names": ["prod"],
    }
    config_path = tmp_path / "geneosctl.yml"
    config_path.write_text(yaml.safe_dump(config), encoding="utf-8")

    def from_config(
        cls: type[Lifecycle], registry: ComponentRegistry, stop: StopConfig
    ) -> Lifecycle:
        return cls(
            registry=registry,
            locator=ProcScanLocator(proc_root=str(proc)),
            grace_period=0,
            sleep=lambda _seconds: None,
        )

    monkeypatch.setattr(Lifecycle, "from_config", classmethod(from_config))
    return {"GENEOSCTL_CONFIG_FILE": str(config_path)}


def _root(env: dict[str, str]) -> Path:
    return Path(yaml.safe_load(Path(env["GENEOSCTL_CONFIG_FILE"]).read_text())["geneos_root"])


def _instance(env: dict[str, str], component: str, name: str, **settings: object) -> Path:
    home = _root(env) / component / f"{component}s" / name
    home.mkdir(parents=True)
    if settings:
        (home / f"{component}.yml").write_text(yaml.safe_dump(settings), encoding="utf-8")
    return home


def _operations(env: dict[str, str]) -> list[dict[str, object]]:
    logs = Path(env["GENEOSCTL_CONFIG_FILE"]).parent / "logs" / "operations.jsonl"
    return [json.loads(line) for line in logs.read_text(encoding="utf-8").splitlines()]


def test_version_flag(env: dict[str, str]) -> None:
    """``--version`` prints the package version and logs the operation."""
    result = runner.invoke(app, ["--version"], env=env)

    assert result.exit_code == 0
    assert __version__ in result.stdout
    assert _operations(env)[-1]["command"] == "root --version"


def test_no_command_prints_help(env: dict[str, str]) -> None:
    """Running without a command shows usage."""
    result = runner.invoke(app, env=env)

    assert result.exit_code == 0
    assert "Usage" in result.stdout


def test_invalid_config_exits_with_validation_code(tmp_path: Path) -> None:
    """Unknown configuration keys stop the CLI before any command runs."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("bogus: true\n", encoding="utf-8")

    result = runner.invoke(app, ["ls"], env={"GENEOSCTL_CONFIG_FILE": str(cfg)})

    assert result.exit_code == ExitCode.VALIDATION


def test_ls_json_lists_instances(env: dict[str, str]) -> None:
    """Instances are listed with port, version and disabled marker."""
    _instance(env, "gateway", "gw1", port=7039)
    probe_home = _instance(env, "netprobe", "np1", port=7100)
    (probe_home / "netprobe.disabled").write_text("disabled\n", encoding="utf-8")

    result = runner.invoke(app, ["ls", "--json"], env=env)

    assert result.exit_code == 0, result.stdout
    rows = json.loads(result.stdout)["instances"]
    assert [(row["type"], row["label"], row["port"]) for row in rows] == [
        ("gateway", "gw1", 7039),
        ("netprobe", "np1*", 7100),
    ]
    assert rows[0]["host"] == "localhost"
    assert rows[0]["version"] == "active_prod:unknown"


def test_ls_table_with_type_filter(env: dict[str, str]) -> None:
    """A leading type restricts the listing."""
    _instance(env, "gateway", "gw1")
    _instance(env, "netprobe", "np1")

    result = runner.invoke(app, ["ls", "netprobe"], env=env)

    assert result.exit_code == 0
    assert "np1" in result.stdout
    assert "gw1" not in result.stdout


def test_ls_on_empty_fleet_succeeds(env: dict[str, str]) -> None:
    """No instances is not an error for listings."""
    result = runner.invoke(app, ["ls", "--json"], env=env)

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"instances": []}


def test_start_unknown_instance_is_not_found(env: dict[str, str]) -> None:
    """A name that matches nothing exits with the not found code."""
    result = runner.invoke(app, ["start", "ghost"], env=env)

    assert result.exit_code == ExitCode.NOT_FOUND
    assert "no instances matched" in result.stdout
    assert _operations(env)[-1]["result"]["status"] == "error"  # type: ignore[index]


def test_reserved_name_is_rejected(env: dict[str, str]) -> None:
    """Configured reserved names cannot be used as instance names."""
    result = runner.invoke(app, ["start", "prod@localhost"], env=env)

    assert result.exit_code == ExitCode.VALIDATION


def test_stop_reports_not_running(env: dict[str, str]) -> None:
    """Stopping a stopped instance is informational, not a failure."""
    _instance(env, "gateway", "gw1")

    result = runner.invoke(app, ["stop", "gw1"], env=env)

    assert result.exit_code == 0
    assert "gateway:gw1@localhost not running" in result.stdout


def test_disable_then_enable(env: dict[str, str]) -> None:
    """Disable writes the marker and enable removes it."""
    home = _instance(env, "gateway", "gw1")

    disabled = runner.invoke(app, ["disable", "gateway", "gw1"], env=env)
    assert disabled.exit_code == 0
    assert (home / "gateway.disabled").exists()

    started = runner.invoke(app, ["start", "gw1"], env=env)
    assert started.exit_code == 0
    assert "disabled" in started.stdout
    assert _operations(env)[-1]["result"]["status"] == "warning"  # type: ignore[index]

    enabled = runner.invoke(app, ["enable", "gw1"], env=env)
    assert enabled.exit_code == 0
    assert not (home / "gateway.disabled").exists()


def test_clean_removes_old_files(env: dict[str, str]) -> None:
    """Clean deletes files on the component clean list."""
    home = _instance(env, "gateway", "gw1")
    (home / "setup.xml.old").write_text("x", encoding="utf-8")

    result = runner.invoke(app, ["clean", "gw1"], env=env)

    assert result.exit_code == 0
    assert "removed 1 path(s)" in result.stdout
    assert not (home / "setup.xml.old").exists()


def test_rebuild_writes_setup_files(env: dict[str, str]) -> None:
    """Rebuild renders gateway setup files and skips unsupported types."""
    home = _instance(env, "gateway", "gw1")
    _instance(env, "netprobe", "np1")

    result = runner.invoke(app, ["rebuild"], env=env)

    assert result.exit_code == 0
    assert (home / "instance.setup.xml").exists()
    assert "not supported" in result.stdout


def test_update_activates_latest_version(env: dict[str, str]) -> None:
    """``update`` points the active link at the newest version."""
    base = _root(env) / "packages" / "gateway"
    (base / "5.13.2").mkdir(parents=True)
    (base / "5.14.0").mkdir()

    result = runner.invoke(app, ["update", "gateway", "--host", "localhost"], env=env)

    assert result.exit_code == 0, result.stdout
    assert os.readlink(base / "active_prod") == "5.14.0"


def test_update_missing_version_is_not_found(env: dict[str, str]) -> None:
    """Asking for an absent version of one type fails."""
    (_root(env) / "packages" / "gateway" / "5.14.0").mkdir(parents=True)

    result = runner.invoke(
        app, ["update", "gateway", "--version", "7", "--host", "localhost"], env=env
    )

    assert result.exit_code == ExitCode.NOT_FOUND


def test_init_creates_layout(env: dict[str, str]) -> None:
    """``init`` creates the component directories."""
    result = runner.invoke(app, ["init"], env=env)

    assert result.exit_code == 0
    assert (_root(env) / "gateway" / "gateways").is_dir()
    assert (_root(env) / "packages" / "downloads").is_dir()


def test_nextport_skips_used_ports(env: dict[str, str]) -> None:
    """The next free port follows the configured range."""
    _instance(env, "gateway", "gw1", port=7039)

    result = runner.invoke(app, ["nextport", "gateway"], env=env)

    assert result.exit_code == 0
    assert result.stdout.strip() == "7100"

    unknown = runner.invoke(app, ["nextport", "widget"], env=env)
    assert unknown.exit_code == ExitCode.VALIDATION


def test_host_add_list_and_delete(env: dict[str, str]) -> None:
    """Remote host definitions can be managed without connecting."""
    added = runner.invoke(
        app,
        ["host", "add", "hostb", "ssh://geneos@b.example.com:2222/opt/itrs", "--no-probe"],
        env=env,
    )
    assert added.exit_code == 0, added.stdout

    listed = runner.invoke(app, ["host", "ls", "--json"], env=env)
    assert listed.exit_code == 0
    hosts = json.loads(listed.stdout)["hosts"]
    assert [host["name"] for host in hosts] == ["localhost", "hostb"]
    assert hosts[1]["hostname"] == "b.example.com"
    assert hosts[1]["port"] == 2222
    assert hosts[1]["root"] == "/opt/itrs"

    deleted = runner.invoke(app, ["host", "delete", "hostb"], env=env)
    assert deleted.exit_code == 0
    assert not (_root(env) / "hosts" / "hostb").exists()

    missing = runner.invoke(app, ["host", "delete", "hostb"], env=env)
    assert missing.exit_code == ExitCode.NOT_FOUND
