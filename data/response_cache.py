"""ResponseCache — small TTL + LRU cache for duplicate lookups.

Owned by whoever constructs it and injected where needed; there is no
module-level instance.  Entries only save a network round-trip: a miss or an
expired entry falls back to the same lookup (and the same safe default) as
an uncached call.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable, TypeVar

import structlog

logger = structlog.get_logger("data.response_cache")

T = TypeVar("T")


class ResponseCache:
    """Bounded-TTL, bounded-capacity read-through cache.

    Parameters
    ----------
    ttl_s:
        Seconds an entry stays valid.  Must be > 0.
    max_entries:
        Capacity; the least recently used entry is evicted beyond it.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl_s: float = 5.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return default

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock() + self._ttl_s, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("response_cache.evicted", key=str(evicted))

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_load(
        self, key: Hashable, loader: Callable[[], Awaitable[T]]
    ) -> T:
        """Return the cached value or await *loader* and cache its result.

        Exceptions from *loader* propagate and nothing is cached.
        """
        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            return cached
        value = await loader()
        self.set(key, value)
        return value
