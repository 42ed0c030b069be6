"""Execution targets: the local machine and remote hosts reached over SSH."""
from __future__ import annotations

from .base import CommandResult, DirEntry, FileStat, Host
from .local import LOCAL_NAME, LocalHost
from .remote import RemoteHost
from .resolver import ALL_NAME, AllHosts, HostResolver, is_superuser, parse_host_url

__all__ = [
    "ALL_NAME",
    "AllHosts",
    "CommandResult",
    "DirEntry",
    "FileStat",
    "Host",
    "HostResolver",
    "LOCAL_NAME",
    "LocalHost",
    "RemoteHost",
    "is_superuser",
    "parse_host_url",
]
