"""Install release archives into ``packages/<type>/<version>``."""
from __future__ import annotations

import logging
import posixpath
import re
import tarfile
from dataclasses import dataclass
from pathlib import Path

from ..components.registry import Component, ComponentRegistry
from ..errors import InvalidArgumentError, NotFoundError
from ..hosts.base import DirEntry, Host
from .version_resolver import (
    ARCHIVE_RE,
    DEFAULT_LINK,
    UpdateResult,
    latest,
    match_version,
    update,
)

LOGGER = logging.getLogger(__name__)

DOWNLOADS_DIR = ("packages", "downloads")

# Archive file names use these spellings instead of the component name.
ARCHIVE_NAMES = {"webserver": "web-server"}


class ArchiveInstallError(InvalidArgumentError):
    """Raised when an archive cannot be unpacked safely."""


@dataclass(frozen=True, slots=True)
class InstallResult:
    """Metadata describing a completed installation."""

    component: str
    version: str
    path: str
    files: int
    installed: bool
    update: UpdateResult | None = None


def clean_relative_path(name: str) -> str:
    """Return *name* normalised, rejecting absolute or escaping paths."""
    cleaned = posixpath.normpath(name)
    if posixpath.isabs(cleaned) or cleaned == ".." or cleaned.startswith("../"):
        raise ArchiveInstallError(f"archive member {name!r} escapes the install directory")
    return cleaned


def _under_link(relative: str, links: set[str]) -> bool:
    parent = posixpath.dirname(relative)
    while parent:
        if parent in links:
            return True
        parent = posixpath.dirname(parent)
    return False


@dataclass
class ArchiveInstaller:
    """Unpack local release archives onto a host and activate them."""

    registry: ComponentRegistry
    local: Host
    link_name: str = DEFAULT_LINK

    # ------------------------------------------------------------------
    # Archive selection
    # ------------------------------------------------------------------
    @property
    def downloads_dir(self) -> str:
        return self.local.path(*DOWNLOADS_DIR)

    def parse_archive_name(self, filename: str) -> tuple[Component, str]:
        """Return the component and version encoded in an archive file name."""
        match = ARCHIVE_RE.match(posixpath.basename(filename))
        if match is None:
            raise InvalidArgumentError(f"{filename!r} is not a recognised release archive name")
        component = self.registry.lookup(match.group(1))
        if component is None:
            raise InvalidArgumentError(f"{filename!r}: unknown component {match.group(1)!r}")
        return component, match.group(2)

    def parse_override(self, override: str) -> tuple[Component, str]:
        """Parse a ``TYPE:VERSION`` override."""
        type_name, sep, version = override.partition(":")
        if not sep:
            raise InvalidArgumentError("type/version override must be in the form TYPE:VERSION")
        component = self.registry.lookup(type_name)
        if component is None:
            raise InvalidArgumentError(f"invalid component type {type_name!r}")
        if not match_version(version):
            raise InvalidArgumentError(f"invalid version {version!r}")
        return component, version

    def latest_archive(self, component: Component, version: str = "") -> Path:
        """Return the newest downloaded archive for *component*."""
        marker = ARCHIVE_NAMES.get(component.name, component.name)

        def exclude(entry: DirEntry) -> bool:
            return entry.is_dir or marker not in entry.name

        pattern = re.escape(version) if version else ""
        name = latest(self.local, self.downloads_dir, pattern, exclude)
        if not name:
            raise NotFoundError(f"no {component} archive found in {self.downloads_dir}")
        return Path(self.downloads_dir) / name

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------
    def install(
        self,
        host: Host,
        archive: Path,
        *,
        component: Component | None = None,
        override: str | None = None,
        overwrite: bool = False,
    ) -> InstallResult:
        """Unpack *archive* on *host* and point the active link at it."""
        if override:
            component, version = self.parse_override(override)
        else:
            from_file, version = self.parse_archive_name(archive.name)
            if component is not None and component.name not in ("san", from_file.name):
                raise InvalidArgumentError(
                    f"component type and archive mismatch: {archive.name!r} is not a {component}"
                )
            component = from_file
        if not archive.is_file():
            raise NotFoundError(f"archive {archive} not found")

        basedir = posixpath.join(component.package_dir(host), version)
        installed = False
        files = 0
        if host.exists(basedir):
            LOGGER.info("%s version %s already installed on %s", component, version, host)
        else:
            files = self._unpack(host, component, archive, basedir)
            installed = True
            LOGGER.info("installed %s to %s on %s", archive.name, basedir, host)

        result = update(
            host,
            component,
            version=version,
            link_name=self.link_name,
            overwrite=overwrite,
        )
        return InstallResult(
            component=component.packages,
            version=version,
            path=basedir,
            files=files,
            installed=installed,
            update=result,
        )

    def _strip_prefix(self, component: Component, name: str) -> str:
        if component.name == "webserver":
            return name
        return name.removeprefix(f"{component.packages}/")

    def _unpack(self, host: Host, component: Component, archive: Path, basedir: str) -> int:
        files = 0
        links: set[str] = set()
        host.mkdirs(basedir)
        try:
            with tarfile.open(archive, "r:*") as tar:
                for member in tar:
                    name = self._strip_prefix(component, member.name)
                    if name in ("", component.packages):
                        continue
                    relative = clean_relative_path(name)
                    if _under_link(relative, links):
                        raise ArchiveInstallError(
                            f"archive member {member.name!r} is written through a symlink"
                        )
                    fullpath = posixpath.join(basedir, relative)
                    if member.isdir():
                        host.mkdirs(fullpath, member.mode & 0o7777 or 0o775)
                    elif member.isreg():
                        handle = tar.extractfile(member)
                        if handle is None:
                            continue
                        with handle:
                            data = handle.read()
                        host.mkdirs(posixpath.dirname(fullpath))
                        host.write_bytes(fullpath, data, mode=member.mode & 0o7777 or 0o664)
                        files += 1
                    elif member.issym():
                        if posixpath.isabs(member.linkname):
                            raise ArchiveInstallError(
                                f"archive contains absolute symlink target {member.linkname!r}"
                            )
                        clean_relative_path(
                            posixpath.join(posixpath.dirname(relative), member.linkname)
                        )
                        links.add(relative)
                        if not host.exists(fullpath):
                            host.mkdirs(posixpath.dirname(fullpath))
                            host.symlink(member.linkname, fullpath)
                    else:
                        LOGGER.warning("skipping unsupported archive member %s", member.name)
        except ArchiveInstallError:
            host.remove_all(basedir)
            raise
        except (tarfile.TarError, OSError) as exc:
            host.remove_all(basedir)
            raise ArchiveInstallError(f"cannot unpack {archive}: {exc}") from exc
        return files


__all__ = [
    "ArchiveInstallError",
    "ArchiveInstaller",
    "InstallResult",
    "clean_relative_path",
]
