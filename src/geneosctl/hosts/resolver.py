"""Look up execution targets by name.

``localhost`` and ``all`` are sentinels: the first is the machine running the
tool, the second means "every known host" and is never an execution target
itself. Every other name refers to a remote host defined by a
``<hosts_dir>/<name>/host.yml`` file. Lookups are cached so that repeated
references to one name return the same :class:`Host` value.
"""
from __future__ import annotations

import logging
import os
import posixpath
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from ..config import AppConfig, SSHConfig
from ..errors import HostError, InvalidArgumentError, NotFoundError
from ..state import SettingsStore
from .base import CommandResult, DirEntry, FileStat, Host
from .local import LOCAL_NAME, LocalHost
from .remote import RemoteHost

LOGGER = logging.getLogger(__name__)

ALL_NAME = "all"
HOST_SETTINGS_FILE = "host.yml"
_HOST_NAME_RE = re.compile(r"^[\w][\w.-]*$")


@dataclass(eq=False)
class AllHosts(Host):
    """Sentinel meaning "every known host"; refuses all I/O."""

    def _refuse(self) -> HostError:
        return HostError("'all' is not an execution target")

    def stat(self, path: str) -> FileStat:
        raise self._refuse()

    def lstat(self, path: str) -> FileStat:
        raise self._refuse()

    def listdir(self, path: str) -> list[DirEntry]:
        raise self._refuse()

    def read_bytes(self, path: str) -> bytes:
        raise self._refuse()

    def write_bytes(self, path: str, data: bytes, *, mode: int = 0o664) -> None:
        raise self._refuse()

    def remove(self, path: str) -> None:
        raise self._refuse()

    def remove_all(self, path: str) -> None:
        raise self._refuse()

    def rename(self, source: str, destination: str) -> None:
        raise self._refuse()

    def symlink(self, target: str, link: str) -> None:
        raise self._refuse()

    def readlink(self, path: str) -> str:
        raise self._refuse()

    def mkdirs(self, path: str, mode: int = 0o775) -> None:
        raise self._refuse()

    def run(self, command: str) -> CommandResult:
        raise self._refuse()

    def signal(self, pid: int, signum: int) -> None:
        raise self._refuse()

    def spawn(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str,
        output: str,
    ) -> int | None:
        raise self._refuse()

    def _read_os_release(self) -> dict[str, str]:
        return {}


def is_superuser() -> bool:
    """Return ``True`` when running with elevated privileges."""
    return hasattr(os, "geteuid") and os.geteuid() == 0


@dataclass
class HostResolver:
    """Cache of hosts keyed by name."""

    local: Host
    hosts_dir: str
    ssh: SSHConfig = field(default_factory=SSHConfig)
    _all: AllHosts = field(init=False)
    _cache: dict[str, Host] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self._all = AllHosts(name=ALL_NAME, root="")

    @classmethod
    def from_config(cls, config: AppConfig) -> HostResolver:
        """Build a resolver rooted at the configured Geneos directory."""
        return cls(
            local=LocalHost.create(config.geneos_root),
            hosts_dir=str(config.hosts_dir),
            ssh=config.ssh,
        )

    @property
    def all(self) -> Host:
        return self._all

    @property
    def store(self) -> SettingsStore:
        return SettingsStore(self.local)

    def settings_path(self, name: str) -> str:
        return posixpath.join(self.hosts_dir, name, HOST_SETTINGS_FILE)

    def get(self, name: str) -> Host:
        """Return the host called *name*, loading its settings on first use."""
        if name in ("", LOCAL_NAME):
            return self.local
        if name == ALL_NAME:
            return self._all
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        host = RemoteHost(name=name, root="", loaded=False, ssh=self.ssh)
        path = self.settings_path(name)
        try:
            if self.store.exists(path):
                settings = self.store.read(path)
                host.settings = settings
                host.root = str(settings.get("geneos") or "")
                host.loaded = bool(host.root)
        except RuntimeError as exc:
            LOGGER.warning("cannot load settings for host %s: %s", name, exc)
        self._cache[name] = host
        return host

    def all_hosts(self) -> list[Host]:
        """Return LOCAL plus every persisted remote host.

        When running as the superuser only LOCAL is returned so that elevated
        commands never fan out to remotes configured by another user.
        """
        hosts: list[Host] = [self.local]
        if is_superuser():
            return hosts
        try:
            entries = self.local.listdir(self.hosts_dir)
        except (FileNotFoundError, NotADirectoryError):
            return hosts
        for entry in sorted(entries, key=lambda item: item.name):
            if not entry.is_dir or entry.name in (LOCAL_NAME, ALL_NAME):
                continue
            host = self.get(entry.name)
            if host.loaded:
                hosts.append(host)
        return hosts

    def add(
        self,
        name: str,
        url: str,
        *,
        probe: bool = True,
    ) -> Host:
        """Persist a new remote host definition parsed from an ``ssh://`` URL."""
        if name in (LOCAL_NAME, ALL_NAME) or not _HOST_NAME_RE.match(name):
            raise InvalidArgumentError(f"invalid host name {name!r}")
        if self.store.exists(self.settings_path(name)):
            raise InvalidArgumentError(f"host {name!r} already exists")
        settings = parse_host_url(url, default_root=self.local.root)
        host = RemoteHost(
            name=name,
            root=str(settings["geneos"]),
            settings=settings,
            loaded=True,
            ssh=self.ssh,
        )
        if probe:
            release = host.os_release
            if release:
                settings["osinfo"] = release
        self.store.write(self.settings_path(name), settings)
        self._cache[name] = host
        return host

    def delete(self, name: str) -> None:
        """Remove a remote host definition and evict it from the cache."""
        if name in (LOCAL_NAME, ALL_NAME):
            raise InvalidArgumentError(f"cannot delete the {name!r} host")
        path = posixpath.join(self.hosts_dir, name)
        if not self.local.is_dir(path):
            raise NotFoundError(f"host {name!r} not found")
        self.local.remove_all(path)
        self.evict(name)

    def evict(self, name: str) -> None:
        """Drop *name* from the cache, closing any open sessions."""
        host = self._cache.pop(name, None)
        if isinstance(host, RemoteHost):
            host.close()

    def close(self) -> None:
        for name in list(self._cache):
            self.evict(name)


def parse_host_url(url: str, *, default_root: str) -> dict[str, object]:
    """Parse ``[ssh://][user@]host[:port][/path]`` into host settings."""
    if "://" not in url:
        url = f"ssh://{url}"
    parts = urlsplit(url)
    if parts.scheme != "ssh" or not parts.hostname:
        raise InvalidArgumentError(f"invalid host URL {url!r}")
    try:
        port = parts.port or 22
    except ValueError as exc:
        raise InvalidArgumentError(f"invalid port in {url!r}") from exc
    settings: dict[str, object] = {
        "hostname": parts.hostname,
        "port": port,
        "geneos": parts.path if parts.path not in ("", "/") else default_root,
    }
    if parts.username:
        settings["username"] = parts.username
    return settings


__all__ = [
    "ALL_NAME",
    "AllHosts",
    "HostResolver",
    "is_superuser",
    "parse_host_url",
]
