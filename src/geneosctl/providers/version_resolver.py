"""Pick the latest installed package version and manage the active link.

Versions live as directories under ``<root>/packages/<type>/``; the active
version is nothing more than a symlink (``active_prod`` by default) pointing
at one of them.
"""
from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass

from ..components.base import Instance
from ..components.registry import Component, ComponentRegistry
from ..errors import GeneosError, HostError, InvalidArgumentError, NotFoundError
from ..hosts.base import DirEntry, Host
from ..hosts.resolver import HostResolver

LOGGER = logging.getLogger(__name__)

DEFAULT_LINK = "active_prod"
LATEST = "latest"
MAX_LINK_DEPTH = 10
UNKNOWN_VERSION = "unknown"

ARCHIVE_RE = re.compile(
    r"^geneos-(web-server|fixanalyser2-netprobe|file-agent|\w+)-([\w\.-]+?)[\.-]?linux"
)
VERSION_RE = re.compile(r"(\d+(\.\d+){0,2})")
EXACT_VERSION_RE = re.compile(r"^(\d+(\.\d+){0,2})$")

ExcludeFn = Callable[[DirEntry], bool]


def match_version(value: str) -> bool:
    """Return ``True`` when *value* is a plain ``N[.N[.N]]`` version."""
    return EXACT_VERSION_RE.match(value) is not None


def version_key(name: str) -> tuple[int, int, int] | None:
    """Return the numeric ``(major, minor, patch)`` encoded in *name*."""
    stripped = name.removeprefix("GA")
    match = VERSION_RE.search(stripped)
    if match is None:
        return None
    parts = [int(part) for part in match.group(1).split(".")]
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def select_latest(names: list[str]) -> str:
    """Return the name with the highest version, or ``""``.

    Equal versions are ordered by comparing the original names as strings so
    that suffixes such as dates or ``-rc1`` break ties predictably.
    """
    latest = ""
    best: tuple[int, int, int] | None = None
    for name in names:
        key = version_key(name)
        if key is None:
            LOGGER.debug("%s does not look like a version", name)
            continue
        if best is None or key > best or (key == best and name > latest):
            best = key
            latest = name
    return latest


def latest(
    host: Host,
    directory: str,
    pattern: str = "",
    exclude: ExcludeFn | None = None,
) -> str:
    """Return the latest version entry of *directory* on *host*.

    Entries must match the *pattern* regular expression and must not be
    rejected by *exclude*. An unreadable directory yields ``""``.
    """
    try:
        entries = host.listdir(directory)
    except (OSError, HostError) as exc:
        LOGGER.debug("cannot read %s on %s: %s", directory, host, exc)
        return ""
    try:
        filter_re = re.compile(pattern)
    except re.error as exc:
        raise InvalidArgumentError(f"invalid version filter {pattern!r}: {exc}") from exc
    names = [
        entry.name
        for entry in entries
        if filter_re.search(entry.name) and not (exclude is not None and exclude(entry))
    ]
    return select_latest(names)


def _not_directory(entry: DirEntry) -> bool:
    return not entry.is_dir


# ----------------------------------------------------------------------
# Activation link
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UpdateResult:
    """Outcome of activating a version on one host."""

    host: str
    component: str
    version: str
    link: str
    changed: bool


def resolve_version(host: Host, component: Component, version: str = LATEST) -> str:
    """Resolve *version* (``latest`` or a prefix) to an installed directory name."""
    prefix = "" if version in ("", LATEST) else re.escape(version)
    resolved = latest(host, component.package_dir(host), f"^{prefix}", _not_directory)
    if not resolved:
        raise NotFoundError(f"{version!r} version of {component} on {host} not found")
    return resolved


def update(
    host: Host,
    component: Component,
    *,
    version: str = LATEST,
    link_name: str = DEFAULT_LINK,
    overwrite: bool = False,
) -> UpdateResult:
    """Point ``packages/<type>/<link_name>`` at *version*.

    An existing link is left alone unless *overwrite* is set. The new link is
    created under a temporary name and renamed over the old one so that the
    active version is never missing.
    """
    if not link_name or "/" in link_name or link_name in (".", ".."):
        raise InvalidArgumentError(f"invalid link name {link_name!r}")
    basedir = component.package_dir(host)
    resolved = resolve_version(host, component, version)
    if not host.is_dir(posixpath.join(basedir, resolved)):
        raise NotFoundError(f"{resolved!r} version of {component} on {host} not found")

    link = posixpath.join(basedir, link_name)
    existing = ""
    try:
        info = host.lstat(link)
    except FileNotFoundError:
        info = None
    if info is not None:
        if not info.is_symlink:
            raise HostError(f"{link} on {host} exists and is not a symlink")
        existing = host.readlink(link)

    unchanged = UpdateResult(
        host=host.name, component=component.packages, version=resolved, link=link, changed=False
    )
    if existing:
        target = posixpath.normpath(posixpath.join(basedir, existing))
        if target == posixpath.join(basedir, resolved) or not overwrite:
            return unchanged

    temp_link = posixpath.join(basedir, f".{link_name}.tmp")
    if host.exists(temp_link):
        host.remove(temp_link)
    host.symlink(resolved, temp_link)
    host.rename(temp_link, link)
    LOGGER.info("%s %s updated to %s", component, link, resolved)
    return UpdateResult(
        host=host.name, component=component.packages, version=resolved, link=link, changed=True
    )


def update_all(
    hosts: HostResolver,
    registry: ComponentRegistry,
    host: Host,
    component: Component | None = None,
    *,
    version: str = LATEST,
    link_name: str = DEFAULT_LINK,
    overwrite: bool = False,
) -> list[UpdateResult]:
    """Run :func:`update` across every host and/or component.

    Missing versions are skipped quietly; other failures are logged and the
    loop continues.
    """
    targets = hosts.all_hosts() if host is hosts.all else [host]
    if component is None:
        components: list[Component] = []
        seen: set[str] = set()
        for item in registry.real_components():
            if item.packages not in seen:
                seen.add(item.packages)
                components.append(item)
    else:
        components = [component]

    results: list[UpdateResult] = []
    for target in targets:
        for item in components:
            try:
                results.append(
                    update(
                        target, item, version=version, link_name=link_name, overwrite=overwrite
                    )
                )
            except NotFoundError as exc:
                if host is hosts.all or component is None:
                    LOGGER.debug("%s", exc)
                    continue
                raise
            except (OSError, GeneosError) as exc:
                LOGGER.error("%s on %s: %s", item, target, exc)
    return results


# ----------------------------------------------------------------------
# Instance versions
# ----------------------------------------------------------------------


def component_version(instance: Instance) -> tuple[str, str]:
    """Return the configured version and the directory it finally resolves to."""
    common = instance.common
    basedir = common.get("install")
    base = common.get("version")
    underlying = base
    for _ in range(MAX_LINK_DEPTH):
        path = posixpath.join(basedir, underlying)
        try:
            info = common.host.lstat(path)
            if not info.is_symlink:
                return base, underlying
            underlying = common.host.readlink(path)
        except (OSError, GeneosError):
            return base, UNKNOWN_VERSION
    return base, UNKNOWN_VERSION


__all__ = [
    "ARCHIVE_RE",
    "DEFAULT_LINK",
    "LATEST",
    "UpdateResult",
    "component_version",
    "latest",
    "match_version",
    "resolve_version",
    "select_latest",
    "update",
    "update_all",
    "version_key",
]
