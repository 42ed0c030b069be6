"""A single cache of in-memory instances keyed by (type, name, host)."""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from ..components.base import Instance

CacheKey = tuple[str, str, str]


@dataclass
class InstanceCache:
    """Arena of instances with an index from key to slot.

    Evicted slots are reused so the arena does not grow without bound when
    instances are repeatedly deleted and recreated.
    """

    _arena: list[Instance | None] = field(default_factory=list)
    _index: dict[CacheKey, int] = field(default_factory=dict)
    _free: list[int] = field(default_factory=list)

    def get(self, key: CacheKey) -> Instance | None:
        slot = self._index.get(key)
        if slot is None:
            return None
        return self._arena[slot]

    def put(self, instance: Instance) -> Instance:
        """Store *instance*, returning the already cached value if present."""
        key = instance.common.identity
        existing = self.get(key)
        if existing is not None:
            return existing
        if self._free:
            slot = self._free.pop()
            self._arena[slot] = instance
        else:
            slot = len(self._arena)
            self._arena.append(instance)
        self._index[key] = slot
        return instance

    def evict(self, key: CacheKey) -> Instance | None:
        slot = self._index.pop(key, None)
        if slot is None:
            return None
        instance = self._arena[slot]
        self._arena[slot] = None
        self._free.append(slot)
        return instance

    def clear(self) -> None:
        self._arena.clear()
        self._index.clear()
        self._free.clear()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[Instance]:
        return (item for item in self._arena if item is not None)


__all__ = ["CacheKey", "InstanceCache"]
