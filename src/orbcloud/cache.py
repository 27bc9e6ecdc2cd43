from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUStore(Generic[K, V]):
    """Bounded key/value store with least-recently-used eviction.

    A capacity of ``None`` keeps every entry.
    """

    def __init__(self, capacity: int | None = 24) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError("LRU capacity must be positive or None.")
        self._capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @property
    def capacity(self) -> int | None:
        return self._capacity

    def get(self, key: K, default: V | None = None) -> V | None:
        if key in self._entries:
            value = self._entries.pop(key)
            self._entries[key] = value
            self.hits += 1
            return value
        self.misses += 1
        return default

    def peek(self, key: K) -> V | None:
        return self._entries.get(key)

    def put(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.pop(key)
        self._entries[key] = value
        if self._capacity is not None:
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        value = self.get(key)
        if value is None:
            value = factory()
            self.put(key, value)
        return value

    def discard(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[K]:
        return list(self._entries.keys())

    def stats(self) -> dict:
        return {"size": len(self._entries), "capacity": self._capacity, "hits": self.hits, "misses": self.misses}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._entries.keys()))
