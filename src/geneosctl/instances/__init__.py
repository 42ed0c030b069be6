"""Addressing, expansion and fan-out over the fleet of instances."""
from __future__ import annotations

from .address import InstanceAddress, reserved_name, split_name, valid_instance_name
from .cache import InstanceCache
from .expand import Expansion, expand, token_names
from .fanout import FanOutReport, for_all
from .fleet import Fleet
from .lifecycle import Lifecycle, ProcessInfo, ProcessLocator, ProcScanLocator
from .ports import next_port, next_port_for, used_ports

__all__ = [
    "Expansion",
    "FanOutReport",
    "Fleet",
    "InstanceAddress",
    "InstanceCache",
    "Lifecycle",
    "ProcScanLocator",
    "ProcessInfo",
    "ProcessLocator",
    "expand",
    "for_all",
    "next_port",
    "next_port_for",
    "reserved_name",
    "split_name",
    "token_names",
    "used_ports",
    "valid_instance_name",
]
