"""
Query result cache bounded by mutation epochs.

Every mutation of the owning registry clears the cache. Once the cache holds
`capacity` entries further results are not stored until the next clear.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

QUERY_CACHE_LIMIT = 1000


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    total_queries: int = 0

    def as_dict(self) -> dict[str, int | float]:
        return asdict(self)


class QueryCache:
    def __init__(self, capacity: int = QUERY_CACHE_LIMIT) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.capacity = capacity
        self._entries: dict[Hashable, tuple[int, ...]] = {}
        self._hits = 0
        self._misses = 0

    def lookup(self, key: Hashable) -> tuple[int, ...] | None:
        """Return the cached result for `key`, or None on a miss."""
        result = self._entries.get(key)
        if result is None:
            self._misses += 1
        else:
            self._hits += 1
        return result

    def store(self, key: Hashable, result: Iterable[int]) -> bool:
        """Cache a copy of `result`; returns False when the cache is full."""
        if key not in self._entries and len(self._entries) >= self.capacity:
            return False
        self._entries[key] = tuple(result)
        return True

    def invalidate_all(self) -> None:
        if self._entries:
            logger.debug("Dropping %d cached queries", len(self._entries))
            self._entries.clear()

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        if total == 0:
            return CacheStats()
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(self._hits / total * 100, 2),
            total_queries=total,
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
