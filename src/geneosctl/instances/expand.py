"""Turn command line tokens into concrete instance addresses.

Tokens are classified in order:

* anything containing ``=`` is a parameter;
* a leading component alias becomes the type filter;
* ``@HOST`` expands to every instance on that host;
* a bare ``NAME`` expands to every host that has an instance called ``NAME``
  and is kept unchanged when nothing matches, so it can be reinterpreted as
  a file or URL later;
* ``NAME@HOST`` is kept as typed.

Names typed by the user (as opposed to names produced by expansion) may not
collide with reserved words.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..components.registry import Component
from ..errors import ReservedNameError
from .address import reserved_name, valid_instance_name
from .fleet import Fleet

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Expansion:
    """Result of expanding a token list."""

    component: Component | None
    names: list[str] = field(default_factory=list)
    params: list[str] = field(default_factory=list)
    wild: bool = False


def _expand_token(fleet: Fleet, token: str, component: Component | None) -> list[str] | None:
    """Expand one token.

    Returns ``None`` when the token is to be kept as typed, otherwise the
    (possibly empty) list of expanded names.
    """
    address = fleet.split_name(token, fleet.hosts.all)
    if not address.host.loaded:
        LOGGER.debug("%s: host %s not found", token, address.host)
        return []
    if address.component is not None:
        component = address.component

    if not address.name:
        return fleet.find_names(address.host, component)

    if address.host is not fleet.hosts.all:
        return None

    prefix = f"{address.component.name}:" if address.component is not None else ""
    candidates = [component] if component is not None else fleet.registry.real_components()
    matches: list[str] = []
    for host in fleet.hosts.all_hosts():
        for item in candidates:
            if fleet.exists(item, address.name, host):
                matches.append(f"{prefix}{host.full_name(address.name)}")
                break
    if not matches:
        LOGGER.debug("%s: no instance on any host, keeping as parameter", token)
        return None
    return matches


def token_names(fleet: Fleet, token: str, component: Component | None = None) -> list[str]:
    """Return the names one token stands for, or the token itself when kept as typed."""
    expanded = _expand_token(fleet, token, component)
    return [token] if expanded is None else expanded


def _is_reserved(fleet: Fleet, token: str) -> bool:
    address = fleet.split_name(token)
    return reserved_name(address.name, registry=fleet.registry, reserved=fleet.reserved_names)


def expand(
    fleet: Fleet,
    tokens: Sequence[str],
    component: Component | None = None,
    *,
    wildcard: bool = True,
) -> Expansion:
    """Expand *tokens* for a command whose type filter is *component*.

    With ``wildcard`` false only the type prefix is consumed; names are
    returned as typed.
    """
    params = [token for token in tokens if "=" in token]
    remaining = [token for token in tokens if "=" not in token]

    if remaining and fleet.registry.is_alias(remaining[0]):
        component = fleet.registry.lookup(remaining[0])
        remaining = remaining[1:]

    result = Expansion(component=component, params=params)
    produced: set[str] = set()
    candidates: list[str] = []

    if not wildcard:
        candidates = remaining
    elif not remaining:
        result.wild = True
        candidates = fleet.find_names(fleet.hosts.all, component)
        produced.update(candidates)
    else:
        for token in remaining:
            if not (token.startswith("@") or valid_instance_name(token)):
                candidates.append(token)
                continue
            expanded = _expand_token(fleet, token, component)
            if expanded is None:
                candidates.append(token)
                if fleet.split_name(token, fleet.hosts.all).host is fleet.hosts.all:
                    result.wild = True
                continue
            result.wild = True
            candidates.extend(expanded)
            produced.update(expanded)

    seen: set[str] = set()
    for name in candidates:
        if name not in produced and _is_reserved(fleet, name):
            raise ReservedNameError(f"{name!r} is a reserved name")
        if not valid_instance_name(name):
            result.params.append(name)
            continue
        if name in seen:
            continue
        seen.add(name)
        result.names.append(name)

    if wildcard and not result.names and not result.wild:
        result.names = fleet.find_names(fleet.hosts.all, component)
    LOGGER.debug("expanded %s into %s (params %s)", list(tokens), result.names, result.params)
    return result


__all__ = ["Expansion", "expand", "token_names"]
