# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Bounded LRU mapping for in-memory caches.

Bounds both the number of entries and, when a weigher is given, their
total weight (e.g. byte size of cached attachments).
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

# Default max entry count when none is configured
DEFAULT_CACHE_MAX_SIZE = 256

K = TypeVar("K")
V = TypeVar("V")


def get_cache_max_size() -> int:
    """Get the configured attachment cache size from config."""
    from .config import get_config

    try:
        return get_config().attachment_cache_max_entries
    except Exception:
        return DEFAULT_CACHE_MAX_SIZE


class LRUDict(Generic[K, V]):
    """
    A mapping with LRU (Least Recently Used) eviction.

    When the cache exceeds ``max_size`` entries, or the summed weight of its
    values exceeds ``max_weight``, the least recently accessed entries are
    evicted until both limits hold again. The most recently inserted entry
    is never evicted on its own insertion, so a single oversized value is
    still cached.

    Not thread-safe; intended for use from a single event loop.

    Example:
        cache = LRUDict(max_size=100, max_weight=1 << 20, weigher=len)
        cache["key1"] = b"value1"
        cache["key1"]  # Accessing moves key1 to most recent
    """

    def __init__(
        self,
        max_size: int | None = None,
        max_weight: int | None = None,
        weigher: Callable[[V], int] | None = None,
        on_evict: Callable[[K, V], None] | None = None,
    ) -> None:
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of entries. If None, uses
                      SAMCHAT_ATTACHMENT_CACHE_MAX_ENTRIES or DEFAULT_CACHE_MAX_SIZE.
            max_weight: Optional maximum total weight.
            weigher: Returns the weight of a value (required with max_weight).
            on_evict: Called with each evicted key and value.
        """
        if max_weight is not None and weigher is None:
            raise ValueError("max_weight requires a weigher")
        self._max_size = max_size if max_size is not None else get_cache_max_size()
        self._max_weight = max_weight
        self._weigher = weigher
        self._on_evict = on_evict
        self._data: OrderedDict[K, V] = OrderedDict()
        self._weight = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        """Maximum number of entries."""
        return self._max_size

    @property
    def weight(self) -> int:
        """Current total weight of cached values."""
        return self._weight

    def _weigh(self, value: V) -> int:
        return self._weigher(value) if self._weigher else 0

    def __setitem__(self, key: K, value: V) -> None:
        """Set item and mark it most recently used."""
        if key in self._data:
            self._weight -= self._weigh(self._data[key])
            self._data.move_to_end(key)
        self._data[key] = value
        self._weight += self._weigh(value)
        self._evict_if_needed()

    def __getitem__(self, key: K) -> V:
        """Get item and mark it most recently used."""
        value = self._data[key]
        self._data.move_to_end(key)
        return value

    def __delitem__(self, key: K) -> None:
        value = self._data.pop(key)
        self._weight -= self._weigh(value)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        """Iterate over keys from least to most recently used."""
        return iter(list(self._data.keys()))

    def get(self, key: K, default: V | None = None) -> V | None:
        """Get item and mark it most recently used, or return ``default``."""
        if key not in self._data:
            return default
        return self[key]

    def peek(self, key: K, default: V | None = None) -> V | None:
        """Get item without updating access order."""
        return self._data.get(key, default)

    def pop(self, key: K, *args: Any) -> V:
        """Remove and return item."""
        if key not in self._data:
            if args:
                return args[0]
            raise KeyError(key)
        value = self._data.pop(key)
        self._weight -= self._weigh(value)
        return value

    def clear(self) -> None:
        self._data.clear()
        self._weight = 0

    def keys(self) -> list[K]:
        """Return keys in LRU order."""
        return list(self._data.keys())

    def _over_limit(self) -> bool:
        if len(self._data) > self._max_size:
            return True
        return self._max_weight is not None and self._weight > self._max_weight

    def _evict_if_needed(self) -> None:
        """Evict oldest entries while over a limit, keeping the newest."""
        while len(self._data) > 1 and self._over_limit():
            key, value = self._data.popitem(last=False)
            self._weight -= self._weigh(value)
            self._evictions += 1
            if self._on_evict is not None:
                self._on_evict(key, value)

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        return {
            "size": len(self._data),
            "max_size": self._max_size,
            "weight": self._weight,
            "max_weight": self._max_weight,
            "evictions": self._evictions,
            "utilization": len(self._data) / self._max_size if self._max_size > 0 else 0,
        }
