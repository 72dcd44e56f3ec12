"""In-process media cache fronting the durable media store.

Uses cachetools.FIFOCache for the capacity bound, so eviction follows
insertion order rather than access order. Entries also carry their insertion
time and are dropped once older than the TTL.

The disk store stays authoritative: losing this cache only costs one extra
disk read per path.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import FIFOCache

from autoresponder.media.store import MediaStore, sanitize_path

logger = logging.getLogger(__name__)

MEMORY_CACHE_TTL = 10 * 60.0
MEMORY_CACHE_LIMIT = 128


@dataclass
class CacheEntry:
    data: bytes
    cached_at: float


class HybridMediaCache:
    """Two tiers:
      1. ``_memory`` (FIFOCache): recent buffers, governed by *ttl* and *capacity*.
      2. the ``MediaStore`` on disk, read on a memory miss, then written back
         into memory.
    """

    def __init__(
        self,
        store: MediaStore,
        *,
        ttl: float = MEMORY_CACHE_TTL,
        capacity: int = MEMORY_CACHE_LIMIT,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.capacity = capacity
        self._timer = timer
        self._memory: FIFOCache = FIFOCache(maxsize=capacity)
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, path: str) -> bool:
        return sanitize_path(path) in self._memory

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.cached_at > self.ttl

    def get_cached(self, path: str) -> bytes | None:
        """Memory tier only. Expired entries are dropped."""
        key = sanitize_path(path)
        if not key:
            return None
        entry = self._memory.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._timer()):
            self._memory.pop(key, None)
            return None
        return entry.data

    async def get(self, path: str) -> bytes | None:
        key = sanitize_path(path)
        if not key:
            return None

        cached = self.get_cached(key)
        if cached is not None:
            self.hits += 1
            return cached

        self.misses += 1
        data = await self.store.load(key)
        if data is None:
            return None
        self.put(key, data)
        return data

    def put(self, path: str, data: bytes) -> None:
        key = sanitize_path(path)
        if not key or not data:
            return
        now = self._timer()
        self._memory.pop(key, None)
        self._memory[key] = CacheEntry(data=data, cached_at=now)
        self.prune(now)

    def prune(self, now: float | None = None) -> None:
        """Drop entries older than the TTL, then oldest-inserted while over capacity."""
        now = self._timer() if now is None else now
        for key in [k for k, entry in self._memory.items() if self._expired(entry, now)]:
            self._memory.pop(key, None)
        while len(self._memory) > self.capacity:
            self._memory.popitem()

    def invalidate(self, path: str) -> None:
        key = sanitize_path(path)
        if key:
            self._memory.pop(key, None)
