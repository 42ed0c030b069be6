"""The machine running geneosctl."""
from __future__ import annotations

import glob as glob_module
import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import HostError, ProcessStoppedError
from .base import CommandResult, DirEntry, FileStat, Host

LOGGER = logging.getLogger(__name__)

LOCAL_NAME = "localhost"


def _to_stat(path: str, result: os.stat_result) -> FileStat:
    return FileStat(
        path=path,
        mode=result.st_mode,
        size=result.st_size,
        mtime=result.st_mtime,
        uid=result.st_uid,
        gid=result.st_gid,
    )


@dataclass(eq=False)
class LocalHost(Host):
    """Direct filesystem and process access on this machine."""

    @classmethod
    def create(cls, root: Path | str) -> LocalHost:
        """Build the local host and eagerly read its OS release metadata."""
        host = cls(name=LOCAL_NAME, root=str(Path(root).expanduser()))
        _ = host.os_release
        return host

    @property
    def is_local(self) -> bool:
        return True

    def stat(self, path: str) -> FileStat:
        return _to_stat(path, os.stat(path))

    def lstat(self, path: str) -> FileStat:
        return _to_stat(path, os.lstat(path))

    def listdir(self, path: str) -> list[DirEntry]:
        entries: list[DirEntry] = []
        with os.scandir(path) as iterator:
            for entry in iterator:
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                entries.append(
                    DirEntry(name=entry.name, is_dir=is_dir, is_symlink=entry.is_symlink())
                )
        return entries

    def read_bytes(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes, *, mode: int = 0o664) -> None:
        destination = Path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), prefix=f".{destination.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)

    def remove(self, path: str) -> None:
        os.remove(path)

    def remove_all(self, path: str) -> None:
        target = Path(path)
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)

    def rename(self, source: str, destination: str) -> None:
        os.replace(source, destination)

    def symlink(self, target: str, link: str) -> None:
        os.symlink(target, link)

    def readlink(self, path: str) -> str:
        return os.readlink(path)

    def mkdirs(self, path: str, mode: int = 0o775) -> None:
        os.makedirs(path, mode=mode, exist_ok=True)

    def glob(self, pattern: str) -> list[str]:
        return sorted(glob_module.glob(pattern))

    def run(self, command: str) -> CommandResult:
        completed = subprocess.run(  # noqa: S602
            command,
            shell=True,
            check=False,
            capture_output=True,
            text=True,
        )
        return CommandResult(
            returncode=completed.returncode,
            output=(completed.stdout or "") + (completed.stderr or ""),
        )

    def signal(self, pid: int, signum: int) -> None:
        try:
            os.kill(pid, signum)
        except ProcessLookupError as exc:
            raise ProcessStoppedError(f"process {pid} no longer exists") from exc

    def spawn(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: str,
        output: str,
    ) -> int | None:
        environment = dict(os.environ)
        environment.update(env)
        try:
            with open(output, "ab") as log_handle:
                process = subprocess.Popen(  # noqa: S603
                    list(argv),
                    cwd=cwd,
                    env=environment,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as exc:
            raise HostError(f"cannot start {argv[0]}: {exc}") from exc
        return process.pid


__all__ = ["LOCAL_NAME", "LocalHost"]
