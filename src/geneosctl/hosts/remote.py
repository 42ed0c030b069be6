"""Remote hosts reached over SSH with paramiko."""
from __future__ import annotations

import logging
import posixpath
import stat as stat_module
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import paramiko

from ..config import SSHConfig
from ..errors import HostError, ProcessStoppedError
from .base import CommandResult, DirEntry, FileStat, Host, shell_command

LOGGER = logging.getLogger(__name__)


def _to_stat(path: str, attrs: paramiko.SFTPAttributes) -> FileStat:
    return FileStat(
        path=path,
        mode=attrs.st_mode or 0,
        size=attrs.st_size or 0,
        mtime=float(attrs.st_mtime or 0),
        uid=attrs.st_uid or 0,
        gid=attrs.st_gid or 0,
    )


@dataclass(eq=False)
class RemoteHost(Host):
    """A host whose filesystem and processes are reached through SSH."""

    ssh: SSHConfig = field(default_factory=SSHConfig)
    _client: paramiko.SSHClient | None = field(default=None, init=False, repr=False)
    _sftp: paramiko.SFTPClient | None = field(default=None, init=False, repr=False)

    @property
    def port(self) -> int:
        return int(self.settings.get("port") or self.ssh.port)

    @property
    def username(self) -> str | None:
        value = self.settings.get("username") or self.ssh.username
        return str(value) if value else None

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------
    def _key_files(self) -> list[str]:
        ssh_dir = Path("~/.ssh").expanduser()
        return [str(ssh_dir / name) for name in self.ssh.private_keys if (ssh_dir / name).exists()]

    def connect(self) -> paramiko.SSHClient:
        """Return an open client, dialling the host on first use."""
        if self._client is not None:
            return self._client
        client = paramiko.SSHClient()
        if self.ssh.known_hosts.exists():
            client.load_host_keys(str(self.ssh.known_hosts))
        if self.ssh.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        LOGGER.debug("connecting to %s:%s as %s", self.hostname, self.port, self.username)
        try:
            client.connect(
                self.hostname,
                port=self.port,
                username=self.username,
                timeout=self.ssh.connect_timeout,
                allow_agent=True,
                look_for_keys=True,
                key_filename=self._key_files() or None,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise HostError(f"cannot connect to {self.name} ({self.hostname}): {exc}") from exc
        self._client = client
        return client

    def sftp(self) -> paramiko.SFTPClient:
        """Return an SFTP session on the host."""
        if self._sftp is None:
            try:
                self._sftp = self.connect().open_sftp()
            except paramiko.SSHException as exc:
                raise HostError(f"cannot open sftp session on {self.name}: {exc}") from exc
        return self._sftp

    def close(self) -> None:
        """Close any open sessions."""
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Filesystem primitives
    # ------------------------------------------------------------------
    def stat(self, path: str) -> FileStat:
        return _to_stat(path, self.sftp().stat(path))

    def lstat(self, path: str) -> FileStat:
        return _to_stat(path, self.sftp().lstat(path))

    def listdir(self, path: str) -> list[DirEntry]:
        entries: list[DirEntry] = []
        sftp = self.sftp()
        for attrs in sftp.listdir_attr(path):
            mode = attrs.st_mode or 0
            is_link = stat_module.S_ISLNK(mode)
            is_dir = stat_module.S_ISDIR(mode)
            if is_link:
                try:
                    is_dir = stat_module.S_ISDIR(
                        sftp.stat(posixpath.join(path, attrs.filename)).st_mode or 0
                    )
                except OSError:
                    is_dir = False
            entries.append(DirEntry(name=attrs.filename, is_dir=is_dir, is_symlink=is_link))
        return entries

    def read_bytes(self, path: str) -> bytes:
        with self.sftp().open(path, "rb") as handle:
            return handle.read()

    def write_bytes(self, path: str, data: bytes, *, mode: int = 0o664) -> None:
        sftp = self.sftp()
        self.mkdirs(posixpath.dirname(path))
        tmp_path = posixpath.join(
            posixpath.dirname(path), f".{posixpath.basename(path)}.{uuid.uuid4().hex[:8]}"
        )
        try:
            with sftp.open(tmp_path, "wb") as handle:
                handle.write(data)
            sftp.chmod(tmp_path, mode)
            sftp.posix_rename(tmp_path, path)
        finally:
            if self.exists(tmp_path):
                sftp.remove(tmp_path)

    def remove(self, path: str) -> None:
        self.sftp().remove(path)

    def remove_all(self, path: str) -> None:
        try:
            info = self.lstat(path)
        except FileNotFoundError:
            return
        if not info.is_dir:
            self.remove(path)
            return
        for entry in self.listdir(path):
            child = posixpath.join(path, entry.name)
            if entry.is_symlink or not entry.is_dir:
                self.remove(child)
            else:
                self.remove_all(child)
        self.sftp().rmdir(path)

    def rename(self, source: str, destination: str) -> None:
        self.sftp().posix_rename(source, destination)

    def symlink(self, target: str, link: str) -> None:
        self.sftp().symlink(target, link)

    def readlink(self, path: str) -> str:
        target = self.sftp().readlink(path)
        if target is None:
            raise OSError(f"{path} is not a symlink")
        return target

    def mkdirs(self, path: str, mode: int = 0o775) -> None:
        if not path or path == "/" or self.is_dir(path):
            return
        self.mkdirs(posixpath.dirname(path), mode)
        self.sftp().mkdir(path, mode)

    # ------------------------------------------------------------------
    # Process primitives
    # ------------------------------------------------------------------
    def run(self, command: str) -> CommandResult:
        LOGGER.debug("%s: running %s", self.name, command)
        try:
            _stdin, stdout, stderr = self.connect().exec_command(command)
            output = stdout.read().decode("utf-8", "replace") + stderr.read().decode(
                "utf-8", "replace"
            )
            returncode = stdout.channel.recv_exit_status()
        except paramiko.SSHException as exc:
            raise HostError(f"{self.name}: command failed: {exc}") from exc
        return CommandResult(returncode=returncode, output=output)

    def signal(self, pid: int, signum: int) -> None:
        result = self.run(f"kill -{signum} {pid}")
        if result.ok:
            return
        if "no such process" in result.output.lower():
            raise ProcessStoppedError(f"process {pid} no longer exists on {self.name}")
        raise HostError(f"{self.name}: kill -{signum} {pid} failed: {result.output.strip()}")

    def spawn(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str,
        output: str,
    ) -> int | None:
        result = self.run(shell_command(argv, env=env, cwd=cwd, output=output))
        if not result.ok:
            raise HostError(f"{self.name}: cannot start {argv[0]}: {result.output.strip()}")
        return None


__all__ = ["RemoteHost"]
