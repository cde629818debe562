from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Dict, Generic, Hashable, Optional, TypeVar


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedCache(Generic[K, V]):
    """Write-once key -> record store for the lifetime of the process.

    ``max_entries`` is off by default. When set, the oldest insertion is
    evicted once the bound is reached (for long-running server use).
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def get(self, key: K) -> Optional[V]:
        if key not in self._entries:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return self._entries[key]

    def put(self, key: K, value: V) -> V:
        """Store ``value`` unless ``key`` is already present; return the kept value."""

        if key in self._entries:
            return self._entries[key]
        if self.max_entries is not None and len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
            self._stats["evictions"] += 1
        self._entries[key] = value
        return value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        out = dict(self._stats)
        out["entries"] = len(self._entries)
        return out


class InFlightRegistry(Generic[K, V]):
    """Keys with a fetch currently executing, each with its completion signal."""

    def __init__(self) -> None:
        self._signals: "Dict[K, asyncio.Future[V]]" = {}

    def mark_loading(self, key: K, signal: "asyncio.Future[V]") -> None:
        if key in self._signals:
            raise RuntimeError(f"key already loading: {key!r}")
        self._signals[key] = signal

    def is_loading(self, key: K) -> bool:
        return key in self._signals

    def signal_for(self, key: K) -> "Optional[asyncio.Future[V]]":
        return self._signals.get(key)

    def clear(self, key: K) -> None:
        self._signals.pop(key, None)

    def __len__(self) -> int:
        return len(self._signals)
