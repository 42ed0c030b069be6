"""Tests for process discovery and lifecycle operations."""
from __future__ import annotations

import shutil
import signal
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from geneosctl.components.base import Instance
from geneosctl.errors import (
    DisabledError,
    GeneosError,
    InvalidArgumentError,
    NotFoundError,
    ProcessStoppedError,
    UnsupportedError,
)
from geneosctl.instances import Fleet, Lifecycle, ProcScanLocator


def _fake_process(proc_root: Path, pid: int, argv: Sequence[str]) -> Path:
    entry = proc_root / str(pid)
    entry.mkdir(parents=True)
    (entry / "cmdline").write_bytes(b"\0".join(arg.encode() for arg in argv) + b"\0")
    return entry


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """Return an empty directory standing in for ``/proc``."""
    root = tmp_path / "proc"
    root.mkdir()
    (root / "self").mkdir()
    return root


@pytest.fixture
def lifecycle(fleet: Fleet, proc_root: Path) -> Lifecycle:
    """Return a lifecycle reading the fake process table without sleeping."""
    return Lifecycle(
        registry=fleet.registry,
        locator=ProcScanLocator(proc_root=str(proc_root)),
        grace_period=0,
        attempts=2,
        sleep=lambda _seconds: None,
    )


@pytest.fixture
def gateway(fleet: Fleet, make_instance: Callable[..., Path]) -> Instance:
    """Return the local gateway ``gw1`` with an existing home directory."""
    make_instance(fleet.hosts.local, "gateway", "gw1")
    return fleet.get_instance(fleet.registry.get("gateway"), "gw1", fleet.hosts.local)


@pytest.fixture
def signals(
    gateway: Instance, proc_root: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[..., list[int]]:
    """Return a helper that records signals and ends the process on a chosen one."""

    def _install(pid: int, *, dies_on: int = signal.SIGTERM) -> list[int]:
        sent: list[int] = []

        def fake_signal(target: int, signum: int) -> None:
            assert target == pid
            sent.append(signum)
            if signum in (dies_on, signal.SIGKILL):
                shutil.rmtree(proc_root / str(pid), ignore_errors=True)

        monkeypatch.setattr(gateway.common.host, "signal", fake_signal)
        return sent

    return _install


def test_locator_scans_pids_in_ascending_order(
    gateway: Instance, lifecycle: Lifecycle, proc_root: Path
) -> None:
    """The lowest matching PID wins and unrelated entries are skipped."""
    (proc_root / "5").mkdir()  # no cmdline, as for a vanished process
    _fake_process(proc_root, 90, ["/usr/bin/bash", "-c", "gw1"])
    _fake_process(proc_root, 300, ["/opt/geneos/gateway2.linux_64", "gw1", "-port", "7039"])
    _fake_process(proc_root, 200, ["/opt/geneos/gateway2.linux_64", "gw1", "-port", "7039"])

    assert lifecycle.get_pid(gateway) == 200
    info = lifecycle.info(gateway)
    assert info.pid == 200
    assert info.started.tzinfo is not None


def test_locator_reports_stopped_when_nothing_matches(
    gateway: Instance, lifecycle: Lifecycle, proc_root: Path
) -> None:
    """A different instance name is not a match."""
    _fake_process(proc_root, 200, ["/opt/geneos/gateway2.linux_64", "gw2"])

    with pytest.raises(ProcessStoppedError):
        lifecycle.get_pid(gateway)
    assert lifecycle.is_running(gateway) is False


def test_stop_then_process_is_gone(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    signals: Callable[..., list[int]],
) -> None:
    """A process that exits on SIGTERM is no longer discoverable."""
    _fake_process(proc_root, 4242, ["/opt/geneos/gateway2.linux_64", "gw1"])
    sent = signals(4242)

    lifecycle.stop(gateway)

    assert sent == [signal.SIGTERM]
    with pytest.raises(ProcessStoppedError):
        lifecycle.get_pid(gateway)


def test_stop_escalates_to_sigkill(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    signals: Callable[..., list[int]],
) -> None:
    """A process ignoring SIGTERM is killed after the polling attempts."""
    _fake_process(proc_root, 4242, ["/opt/geneos/gateway2.linux_64", "gw1"])
    sent = signals(4242, dies_on=signal.SIGKILL)

    lifecycle.stop(gateway)

    assert sent == [signal.SIGTERM, signal.SIGTERM, signal.SIGTERM, signal.SIGKILL]


def test_kill_sends_sigkill_directly(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    signals: Callable[..., list[int]],
) -> None:
    """``force`` skips the SIGTERM phase."""
    _fake_process(proc_root, 4242, ["/opt/geneos/gateway2.linux_64", "gw1"])
    sent = signals(4242)

    lifecycle.stop(gateway, force=True)

    assert sent == [signal.SIGKILL]


def test_stop_when_not_running_reports_stopped(gateway: Instance, lifecycle: Lifecycle) -> None:
    """Stopping a stopped instance is signalled as already stopped."""
    with pytest.raises(ProcessStoppedError):
        lifecycle.stop(gateway)


def test_stop_raises_when_process_survives_sigkill(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A process that cannot be killed is an error."""
    _fake_process(proc_root, 4242, ["/opt/geneos/gateway2.linux_64", "gw1"])
    monkeypatch.setattr(gateway.common.host, "signal", lambda target, signum: None)

    with pytest.raises(GeneosError, match="still running"):
        lifecycle.stop(gateway)


def test_reload_sends_component_signal(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    signals: Callable[..., list[int]],
) -> None:
    """Gateways reload their configuration on SIGUSR1."""
    _fake_process(proc_root, 4242, ["/opt/geneos/gateway2.linux_64", "gw1"])
    sent = signals(4242)

    lifecycle.reload(gateway)

    assert sent == [signal.SIGUSR1]


def test_reload_unsupported_for_netprobes(
    fleet: Fleet, lifecycle: Lifecycle, make_instance: Callable[..., Path]
) -> None:
    """Netprobes have no reload signal."""
    make_instance(fleet.hosts.local, "netprobe", "np1")
    netprobe = fleet.get_instance(fleet.registry.get("netprobe"), "np1", fleet.hosts.local)

    with pytest.raises(UnsupportedError):
        lifecycle.reload(netprobe)


def test_start_spawns_detached_process(
    gateway: Instance, lifecycle: Lifecycle, monkeypatch: pytest.MonkeyPatch
) -> None:
    """The launch command runs from the instance home with output captured."""
    common = gateway.common
    program = Path(common.get("program"))
    program.parent.mkdir(parents=True)
    program.write_text("#!/bin/sh\n", encoding="utf-8")
    calls: list[dict[str, object]] = []

    def fake_spawn(
        argv: Sequence[str], *, env: Mapping[str, str], cwd: str, output: str
    ) -> int:
        calls.append({"argv": list(argv), "env": dict(env), "cwd": cwd, "output": output})
        return 4242

    monkeypatch.setattr(common.host, "spawn", fake_spawn)

    assert lifecycle.start(gateway) == 4242

    (call,) = calls
    argv = call["argv"]
    assert isinstance(argv, list)
    assert argv[0] == str(program)
    assert argv[1:3] == ["-port", "7039"]
    assert "gw1" in argv
    assert call["cwd"] == common.home
    assert call["output"] == f"{common.home}/gateway.txt"
    env = call["env"]
    assert isinstance(env, dict)
    assert env["LD_LIBRARY_PATH"].endswith(":/usr/lib64")


def test_start_when_running_returns_existing_pid(
    gateway: Instance,
    lifecycle: Lifecycle,
    proc_root: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A running instance is not started twice."""
    _fake_process(proc_root, 77, ["/opt/geneos/gateway2.linux_64", "gw1"])

    def unexpected(*args: object, **kwargs: object) -> int:
        raise AssertionError("spawn must not be called")

    monkeypatch.setattr(gateway.common.host, "spawn", unexpected)

    assert lifecycle.start(gateway) == 77


def test_start_requires_program(gateway: Instance, lifecycle: Lifecycle) -> None:
    """A missing executable is reported as not found."""
    with pytest.raises(NotFoundError, match="program"):
        lifecycle.start(gateway)


def test_disable_and_enable_toggle_marker(gateway: Instance, lifecycle: Lifecycle) -> None:
    """Disabled instances refuse to start until enabled again."""
    marker = Path(gateway.common.config_path("disabled"))

    assert lifecycle.disable(gateway) is True
    assert marker.is_file()
    assert lifecycle.disable(gateway) is False
    with pytest.raises(DisabledError):
        lifecycle.start(gateway)

    assert lifecycle.enable(gateway) is True
    assert not marker.exists()
    assert lifecycle.enable(gateway) is False


def test_clean_removes_clean_list_only(gateway: Instance, lifecycle: Lifecycle) -> None:
    """A normal clean keeps logs and runtime state."""
    home = Path(gateway.common.home)
    for name in ("setup.xml.old", "gateway.history", "gateway.log"):
        (home / name).write_text("x", encoding="utf-8")

    removed = lifecycle.clean(gateway)

    assert sorted(Path(path).name for path in removed) == ["gateway.history", "setup.xml.old"]
    assert (home / "gateway.log").exists()


def test_purge_removes_purge_list_too(gateway: Instance, lifecycle: Lifecycle) -> None:
    """A full clean also deletes logs and cache directories."""
    home = Path(gateway.common.home)
    (home / "gateway.log").write_text("x", encoding="utf-8")
    (home / "cache").mkdir()
    (home / "cache" / "entry").write_text("x", encoding="utf-8")
    (home / "gateway.setup.xml").write_text("<gateway/>", encoding="utf-8")

    lifecycle.clean(gateway, purge=True)

    assert not (home / "gateway.log").exists()
    assert not (home / "cache").exists()
    assert (home / "gateway.setup.xml").exists()


def test_delete_paths_refuses_escaping_patterns(gateway: Instance, lifecycle: Lifecycle) -> None:
    """Clean patterns must stay inside the instance home."""
    with pytest.raises(InvalidArgumentError):
        lifecycle.delete_paths(gateway, "/etc/*")
    with pytest.raises(InvalidArgumentError):
        lifecycle.delete_paths(gateway, "*.old:../*")
