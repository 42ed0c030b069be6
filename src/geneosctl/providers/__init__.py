"""Package version providers for geneosctl."""
from __future__ import annotations

from .archive_installer import ArchiveInstaller, ArchiveInstallError, InstallResult
from .version_resolver import (
    DEFAULT_LINK,
    UpdateResult,
    component_version,
    latest,
    update,
    update_all,
)

__all__ = [
    "ArchiveInstallError",
    "ArchiveInstaller",
    "DEFAULT_LINK",
    "InstallResult",
    "UpdateResult",
    "component_version",
    "latest",
    "update",
    "update_all",
]
