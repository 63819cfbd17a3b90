"""Reusable byte buffers."""

from __future__ import annotations

import threading


class Cache:
    """A pooled buffer; its bytes are available only while in use."""

    def __init__(self, size: int) -> None:
        self._buf = bytearray(size)
        self._used = True

    @property
    def in_use(self) -> bool:
        return self._used

    @property
    def capacity(self) -> int:
        return len(self._buf)

    def bytes(self) -> bytearray | None:
        return self._buf if self._used else None

    def free(self) -> None:
        self._used = False


class CachePool:
    """Hands out free buffers large enough for a request, creating them as needed."""

    def __init__(self) -> None:
        self._pool: list[Cache | None] = []
        self._lock = threading.Lock()

    def require(self, size: int) -> Cache:
        with self._lock:
            for cache in self._pool:
                if cache is None or cache.in_use or cache.capacity < size:
                    continue
                cache._used = True
                return cache
            new_cache = Cache(size)
            self._add(new_cache)
            return new_cache

    def _add(self, new_cache: Cache) -> None:
        for slot, cache in enumerate(self._pool):
            if cache is None:
                self._pool[slot] = new_cache
                return
        self._pool.append(new_cache)

    def delete_not_used(self) -> None:
        with self._lock:
            self._pool = [c if c is not None and c.in_use else None for c in self._pool]

    def delete_all(self) -> None:
        with self._lock:
            self._pool = [None] * len(self._pool)


class IDCachePool:
    """Buffers addressed by integer id."""

    def __init__(self) -> None:
        self._last_id = 0
        self._pool: dict[int, bytearray] = {}
        self._lock = threading.RLock()

    def apply(self, size: int) -> int:
        """Allocate a buffer under a fresh id and return the id."""
        with self._lock:
            while True:
                existed = self._last_id in self._pool
                self._last_id += 1
                if not existed:
                    break
            self.set(self._last_id, size)
            return self._last_id

    def existed(self, cache_id: int) -> bool:
        with self._lock:
            return cache_id in self._pool

    def get(self, cache_id: int) -> bytearray | None:
        with self._lock:
            return self._pool.get(cache_id)

    def set(self, cache_id: int, size: int) -> bytearray:
        with self._lock:
            self._pool[cache_id] = bytearray(size)
            return self._pool[cache_id]

    def set_if_not_exist(self, cache_id: int, size: int) -> bytearray:
        """Return the buffer for ``cache_id``, replacing it if missing or too small."""
        with self._lock:
            cache = self._pool.get(cache_id)
            if cache is None or len(cache) < size:
                self.delete(cache_id)
                self.set(cache_id, size)
            return self._pool[cache_id]

    def delete(self, cache_id: int) -> None:
        with self._lock:
            self._pool.pop(cache_id, None)

    def delete_all(self) -> None:
        with self._lock:
            self._pool.clear()


CACHE_POOL = CachePool()
ID_CACHE_POOL = IDCachePool()


def require(size: int) -> Cache:
    """Take a buffer from the shared pool."""
    return CACHE_POOL.require(size)