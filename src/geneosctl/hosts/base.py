"""Capability surface shared by every execution target.

A :class:`Host` exposes just enough filesystem and process primitives for the
core to list instance directories, read the process table, deliver signals
and spawn detached processes. Paths are always POSIX strings so that the same
code drives the local machine and remote hosts reached over SSH.
"""
from __future__ import annotations

import fnmatch
import posixpath
import shlex
import stat as stat_module
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ..errors import HostError

OS_RELEASE_PATHS = ("/etc/os-release", "/usr/lib/os-release")


@dataclass(frozen=True, slots=True)
class FileStat:
    """Subset of ``stat(2)`` results used by the core."""

    path: str
    mode: int
    size: int
    mtime: float
    uid: int
    gid: int

    @property
    def is_dir(self) -> bool:
        return stat_module.S_ISDIR(self.mode)

    @property
    def is_file(self) -> bool:
        return stat_module.S_ISREG(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat_module.S_ISLNK(self.mode)


@dataclass(frozen=True, slots=True)
class DirEntry:
    """One directory listing entry."""

    name: str
    is_dir: bool
    is_symlink: bool = False


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of running a shell command on a host."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``os-release`` style ``KEY=value`` lines."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        values[key.strip()] = value
    return values


@dataclass(eq=False)
class Host(ABC):
    """An execution target identified by a logical name."""

    name: str
    root: str
    settings: dict[str, object] = field(default_factory=dict)
    loaded: bool = True
    _os_release: dict[str, str] | None = field(default=None, init=False, repr=False)

    def __str__(self) -> str:
        return self.name

    @property
    def is_local(self) -> bool:
        return False

    @property
    def hostname(self) -> str:
        return str(self.settings.get("hostname") or self.name)

    def path(self, *parts: str) -> str:
        """Return a path beneath this host's Geneos root."""
        return posixpath.join(self.root, *parts)

    def full_name(self, name: str) -> str:
        """Return ``name@host`` for an instance living on this host."""
        return f"{name}@{self.name}"

    @property
    def os_release(self) -> dict[str, str]:
        """Return (and cache) the host's OS release metadata."""
        if self._os_release is None:
            self._os_release = self._read_os_release()
        return self._os_release

    def _read_os_release(self) -> dict[str, str]:
        for candidate in OS_RELEASE_PATHS:
            try:
                return parse_os_release(self.read_text(candidate))
            except (OSError, HostError):
                continue
        return {}

    # ------------------------------------------------------------------
    # Filesystem primitives
    # ------------------------------------------------------------------
    @abstractmethod
    def stat(self, path: str) -> FileStat:
        """Return file status following symlinks; raise ``FileNotFoundError``."""

    @abstractmethod
    def lstat(self, path: str) -> FileStat:
        """Return file status without following symlinks."""

    @abstractmethod
    def listdir(self, path: str) -> list[DirEntry]:
        """List *path*; raise ``FileNotFoundError`` when missing."""

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """Return file contents."""

    @abstractmethod
    def write_bytes(self, path: str, data: bytes, *, mode: int = 0o664) -> None:
        """Atomically replace *path* with *data*."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or symlink."""

    @abstractmethod
    def remove_all(self, path: str) -> None:
        """Remove a file or directory tree; missing paths are ignored."""

    @abstractmethod
    def rename(self, source: str, destination: str) -> None:
        """Rename *source* over *destination*."""

    @abstractmethod
    def symlink(self, target: str, link: str) -> None:
        """Create *link* pointing at *target*."""

    @abstractmethod
    def readlink(self, path: str) -> str:
        """Return the target of the symlink *path*."""

    @abstractmethod
    def mkdirs(self, path: str, mode: int = 0o775) -> None:
        """Create *path* and any missing parents."""

    # ------------------------------------------------------------------
    # Process primitives
    # ------------------------------------------------------------------
    @abstractmethod
    def run(self, command: str) -> CommandResult:
        """Run a shell command and capture combined output."""

    @abstractmethod
    def signal(self, pid: int, signum: int) -> None:
        """Deliver *signum* to *pid*; raise ``ProcessStoppedError`` if it is gone."""

    @abstractmethod
    def spawn(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str,
        output: str,
    ) -> int | None:
        """Start a detached process, returning its PID when known."""

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------
    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def write_text(self, path: str, text: str, *, mode: int = 0o664) -> None:
        self.write_bytes(path, text.encode("utf-8"), mode=mode)

    def exists(self, path: str) -> bool:
        try:
            self.lstat(path)
        except FileNotFoundError:
            return False
        return True

    def is_dir(self, path: str) -> bool:
        try:
            return self.stat(path).is_dir
        except FileNotFoundError:
            return False

    def glob(self, pattern: str) -> list[str]:
        """Expand a shell-style pattern one path segment at a time."""
        if not pattern.startswith("/"):
            raise HostError(f"glob pattern must be absolute: {pattern!r}")
        segments = [segment for segment in pattern.split("/") if segment]
        candidates = ["/"]
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            matched: list[str] = []
            for base in candidates:
                if not any(char in segment for char in "*?["):
                    joined = posixpath.join(base, segment)
                    if self.exists(joined):
                        matched.append(joined)
                    continue
                try:
                    entries = self.listdir(base)
                except (FileNotFoundError, NotADirectoryError):
                    continue
                for entry in entries:
                    if entry.name.startswith(".") and not segment.startswith("."):
                        continue
                    if not fnmatch.fnmatchcase(entry.name, segment):
                        continue
                    if not last and not entry.is_dir:
                        continue
                    matched.append(posixpath.join(base, entry.name))
            candidates = sorted(matched)
        return candidates


def shell_command(
    argv: Sequence[str],
    *,
    env: Mapping[str, str],
    cwd: str,
    output: str,
) -> str:
    """Render a detached launch as a single ``sh`` command line."""
    lines = [f"cd {shlex.quote(cwd)}"]
    lines.extend(f"export {key}={shlex.quote(value)}" for key, value in env.items())
    command = " ".join(shlex.quote(arg) for arg in argv)
    lines.append(f"nohup {command} > {shlex.quote(output)} 2>&1 < /dev/null &")
    return "; ".join(lines)


__all__ = [
    "CommandResult",
    "DirEntry",
    "FileStat",
    "Host",
    "parse_os_release",
    "shell_command",
]
