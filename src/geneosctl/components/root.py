"""The pseudo component that stands for "every component type"."""
from __future__ import annotations

from .registry import Component, ComponentRegistry

ROOT = Component(
    name="none",
    aliases=("all", "any"),
    real=False,
    global_settings={
        "geneos": "",
        "download.url": "https://resources.itrsgroup.com/download/latest/",
        "defaultuser": "",
        "reservednames": "",
        "privatekeys": "id_rsa,id_ecdsa,id_ecdsa_sk,id_ed25519,id_ed25519_sk,id_dsa",
    },
    directories=("packages/downloads", "hosts"),
)


def register(registry: ComponentRegistry) -> Component:
    return registry.register(ROOT)


__all__ = ["ROOT", "register"]
