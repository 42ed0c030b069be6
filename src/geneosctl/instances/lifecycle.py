"""Discover, start, stop and signal instance processes.

There is no PID file and no supervisor. A process belongs to an instance
when its command line matches :meth:`Instance.process_matches`; the default
:class:`ProcScanLocator` walks a Unix style ``/proc`` tree on the instance's
host (locally or over SFTP), so it only supports Linux targets.
"""
from __future__ import annotations

import logging
import posixpath
import signal as signal_module
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from ..components.base import DISABLE_EXTENSION, Instance, build_command
from ..components.registry import ComponentRegistry
from ..config import StopConfig
from ..errors import (
    DisabledError,
    GeneosError,
    HostError,
    InvalidArgumentError,
    NotFoundError,
    ProcessStoppedError,
)
from ..hosts.base import Host

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessInfo:
    """Owner and start time of a discovered process."""

    pid: int
    uid: int
    gid: int
    started: datetime


class ProcessLocator(Protocol):
    """Strategy that maps an instance to its running process."""

    def get_pid(self, instance: Instance) -> int:
        """Return the PID or raise :class:`ProcessStoppedError`."""
        ...

    def info(self, instance: Instance) -> ProcessInfo:
        """Return :class:`ProcessInfo` or raise :class:`ProcessStoppedError`."""
        ...


@dataclass(frozen=True, slots=True)
class ProcScanLocator:
    """Scan ``/proc/<pid>/cmdline`` in ascending PID order."""

    proc_root: str = "/proc"

    def _pids(self, host: Host) -> list[int]:
        try:
            entries = host.listdir(self.proc_root)
        except OSError as exc:
            raise HostError(f"{host}: cannot list {self.proc_root}: {exc}") from exc
        return sorted(int(entry.name) for entry in entries if entry.name.isdigit())

    def _cmdline(self, host: Host, pid: int) -> list[str]:
        data = host.read_bytes(posixpath.join(self.proc_root, str(pid), "cmdline"))
        args = data.decode("utf-8", "replace").split("\0")
        if args and args[-1] == "":
            args.pop()
        return args

    def get_pid(self, instance: Instance) -> int:
        host = instance.common.host
        for pid in self._pids(host):
            try:
                argv = self._cmdline(host, pid)
            except OSError:
                # the process went away or is not ours to read
                continue
            if argv and instance.process_matches(argv):
                return pid
        raise ProcessStoppedError(f"{instance.common}: no process found")

    def info(self, instance: Instance) -> ProcessInfo:
        pid = self.get_pid(instance)
        try:
            details = instance.common.host.stat(posixpath.join(self.proc_root, str(pid)))
        except OSError as exc:
            raise ProcessStoppedError(f"{instance.common}: process {pid} went away") from exc
        return ProcessInfo(
            pid=pid,
            uid=details.uid,
            gid=details.gid,
            started=datetime.fromtimestamp(details.mtime, UTC),
        )


def _split_list(value: str) -> list[str]:
    return [item for item in value.split(":") if item.strip()]


@dataclass
class Lifecycle:
    """Process operations for single instances."""

    registry: ComponentRegistry
    locator: ProcessLocator = field(default_factory=ProcScanLocator)
    grace_period: float = 0.25
    attempts: int = 10
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, registry: ComponentRegistry, stop: StopConfig) -> Lifecycle:
        return cls(registry=registry, grace_period=stop.grace_period, attempts=stop.attempts)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def get_pid(self, instance: Instance) -> int:
        return self.locator.get_pid(instance)

    def info(self, instance: Instance) -> ProcessInfo:
        return self.locator.info(instance)

    def is_running(self, instance: Instance) -> bool:
        try:
            self.get_pid(instance)
        except ProcessStoppedError:
            return False
        return True

    def signal(self, instance: Instance, signum: int) -> None:
        """Deliver *signum* to the instance process."""
        pid = self.get_pid(instance)
        try:
            instance.common.host.signal(pid, signum)
        except ProcessStoppedError:
            raise
        except (OSError, GeneosError) as exc:
            LOGGER.error(
                "%s: sending signal %d to PID %d failed: %s", instance.common, signum, pid, exc
            )
            raise

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------
    def start(self, instance: Instance) -> int:
        """Start the instance detached and return its PID."""
        common = instance.common
        try:
            pid = self.get_pid(instance)
        except ProcessStoppedError:
            pass
        else:
            LOGGER.info("%s already running with PID %d", common, pid)
            return pid
        if common.is_disabled():
            raise DisabledError(f"{common} is disabled")
        argv, env = build_command(instance)
        program = argv[0]
        if not program or not common.host.exists(program):
            raise NotFoundError(f"{common}: program {program or '(unset)'} not found")
        spawned = common.host.spawn(
            argv,
            env=env,
            cwd=common.home,
            output=common.config_path("txt"),
        )
        if spawned is not None:
            LOGGER.info("%s started with PID %d", common, spawned)
            return spawned
        self.sleep(self.grace_period)
        pid = self.get_pid(instance)
        LOGGER.info("%s started with PID %d", common, pid)
        return pid

    def stop(self, instance: Instance, *, force: bool = False) -> None:
        """Stop the instance, escalating from SIGTERM to SIGKILL."""
        common = instance.common
        if force:
            self.signal(instance, signal_module.SIGKILL)
            LOGGER.info("%s killed", common)
            return

        self.signal(instance, signal_module.SIGTERM)
        for _ in range(self.attempts):
            self.sleep(self.grace_period)
            try:
                self.signal(instance, signal_module.SIGTERM)
            except ProcessStoppedError:
                LOGGER.info("%s stopped", common)
                return
        if not self.is_running(instance):
            LOGGER.info("%s stopped", common)
            return

        try:
            self.signal(instance, signal_module.SIGKILL)
        except ProcessStoppedError:
            LOGGER.info("%s stopped", common)
            return
        self.sleep(self.grace_period)
        if self.is_running(instance):
            raise GeneosError(f"{common}: process still running after SIGKILL")
        LOGGER.info("%s killed", common)

    def restart(self, instance: Instance) -> int:
        try:
            self.stop(instance)
        except ProcessStoppedError:
            pass
        return self.start(instance)

    def reload(self, instance: Instance) -> None:
        """Ask the process to reread its configuration."""
        self.signal(instance, instance.reload_signal())
        LOGGER.info("%s: sent reload signal", instance.common)

    # ------------------------------------------------------------------
    # Disable / enable
    # ------------------------------------------------------------------
    def disable(self, instance: Instance) -> bool:
        """Stop the instance and write its disable marker."""
        common = instance.common
        if common.is_disabled():
            return False
        try:
            self.stop(instance)
        except ProcessStoppedError:
            pass
        marker = common.config_path(DISABLE_EXTENSION)
        common.host.write_text(marker, f"disabled {datetime.now(UTC).isoformat()}\n")
        LOGGER.info("%s disabled", common)
        return True

    def enable(self, instance: Instance) -> bool:
        common = instance.common
        if not common.is_disabled():
            return False
        common.host.remove(common.config_path(DISABLE_EXTENSION))
        LOGGER.info("%s enabled", common)
        return True

    # ------------------------------------------------------------------
    # Clean / purge
    # ------------------------------------------------------------------
    def delete_paths(self, instance: Instance, patterns: str) -> list[str]:
        """Remove every file matched by the ``:`` separated relative globs."""
        common = instance.common
        host = common.host
        removed: list[str] = []
        for pattern in _split_list(patterns):
            cleaned = posixpath.normpath(pattern.strip())
            if posixpath.isabs(cleaned) or cleaned == ".." or cleaned.startswith("../"):
                raise InvalidArgumentError(f"{common}: refusing to clean {pattern!r}")
            for path in host.glob(posixpath.join(common.home, cleaned)):
                try:
                    host.remove_all(path)
                except OSError as exc:
                    LOGGER.error("%s: cannot remove %s: %s", common, path, exc)
                    continue
                removed.append(path)
        return removed

    def clean(self, instance: Instance, *, purge: bool = False) -> list[str]:
        """Delete the clean list and, with *purge*, the purge list too.

        Purging stops a running instance first and starts it again after.
        """
        component = instance.common.component
        clean_list = self.registry.setting(component.clean_list_key)
        if not purge:
            removed = self.delete_paths(instance, clean_list)
            LOGGER.info("%s cleaned", instance.common)
            return removed

        stopped = False
        try:
            self.stop(instance)
            stopped = True
        except ProcessStoppedError:
            pass
        removed = self.delete_paths(instance, clean_list)
        removed += self.delete_paths(instance, self.registry.setting(component.purge_list_key))
        LOGGER.info("%s fully cleaned", instance.common)
        if stopped:
            self.start(instance)
        return removed


__all__ = ["Lifecycle", "ProcScanLocator", "ProcessInfo", "ProcessLocator"]
