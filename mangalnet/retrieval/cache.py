"""
Session Cache for Resolved Entities
===================================

Memoizes hydrated entities by ``(kind, id)`` for the lifetime of one
retrieval session so that each remote record is fetched at most once.

Usage
-----
    from mangalnet.retrieval.cache import EntityCache

    cache = EntityCache()
    node = cache.get_or_load((EntityKind.NODE, 7), lambda: load_node(7))

    # Entities delivered by listing pages are stored without a fetch
    stored = cache.put((EntityKind.NODE, 8), node_8)

Cache Keys
----------
    Entries are keyed by ``(EntityKind, id)``. Identifiers are only unique
    within a kind, so node 7 and taxonomy 7 are separate entries.

Replacement Policy
------------------
    Keep-first. Remote data is treated as stable within a session: once a
    key holds an entity, later puts for that key return the stored entity
    and discard the new one. A put that races an in-flight load waits for
    it, so both callers end up holding the same entity. There is no TTL;
    clear() ends the session.

Negative Entries
----------------
    Loaders may raise a HydrationError for records that are missing or
    malformed upstream. That outcome is cached too and re-raised on later
    requests without another fetch. Any other exception (transient
    transport errors included) is not cached, so the caller may retry.

Thread Safety
-------------
    The cache uses a lock + sentinel pattern. If multiple threads request
    the same uncached key, only one runs the loader; the others wait on
    the sentinel's event and receive the same result or exception. The
    lock is never held while a loader runs.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Union

from .config import Config
from .errors import HydrationError, retrieval_error

logger = logging.getLogger("Mangal.Cache")


class _LoadingSentinel:
    """Sentinel indicating an entry is being loaded."""
    def __init__(self):
        self.event = threading.Event()
        self.result: Optional[Any] = None
        self.error: Optional[BaseException] = None


@dataclass
class CacheEntry:
    """A cached entity with metadata."""
    value: Any
    created_at: float
    hits: int = 0


@dataclass
class _FailedEntry:
    """A cached negative result."""
    error: HydrationError
    created_at: float
    hits: int = 0


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring."""
    hits: int = 0
    misses: int = 0
    loads: int = 0
    failed_loads: int = 0
    negative_hits: int = 0
    stores: int = 0
    kept_existing: int = 0
    waits: int = 0
    total_load_time: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0-1)."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_load_time_ms(self) -> float:
        return (self.total_load_time / self.loads * 1000) if self.loads > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": round(self.hit_rate, 3),
            "loads": self.loads,
            "failedLoads": self.failed_loads,
            "negativeHits": self.negative_hits,
            "stores": self.stores,
            "keptExisting": self.kept_existing,
            "waits": self.waits,
            "avgLoadTimeMs": round(self.avg_load_time_ms, 1),
        }


_Slot = Union[CacheEntry, _FailedEntry, _LoadingSentinel]


class EntityCache:
    """
    Keep-first, at-most-once-load cache.

    Example:
        >>> cache = EntityCache()
        >>> a = cache.get_or_load(("node", 1), lambda: "first")
        >>> b = cache.get_or_load(("node", 1), lambda: "second")
        >>> a is b
        True
    """

    def __init__(self, wait_timeout: Optional[float] = None):
        """
        Initialize an empty session cache.

        Args:
            wait_timeout: Seconds a thread waits for another thread's load
                (default from Config.CACHE.WAIT_TIMEOUT_SECONDS)
        """
        self._wait_timeout = wait_timeout or Config.CACHE.WAIT_TIMEOUT_SECONDS
        self._cache: Dict[Hashable, _Slot] = {}
        self._lock = threading.RLock()
        self._stats = CacheStats()

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key``, running ``loader`` on a miss.

        Raises:
            HydrationError: Cached or fresh negative result
            Exception: Whatever the loader raised (not cached)
        """
        with self._lock:
            slot = self._cache.get(key)
            if isinstance(slot, CacheEntry):
                slot.hits += 1
                self._stats.hits += 1
                logger.debug(f"cache hit: key={key}, hits={slot.hits}")
                return slot.value
            if isinstance(slot, _FailedEntry):
                slot.hits += 1
                self._stats.negative_hits += 1
                raise slot.error
            if isinstance(slot, _LoadingSentinel):
                sentinel = slot
                is_loader = False
                self._stats.waits += 1
            else:
                sentinel = _LoadingSentinel()
                self._cache[key] = sentinel
                is_loader = True
                self._stats.misses += 1

        if not is_loader:
            # Another thread is loading this key; wait outside the lock
            if not sentinel.event.wait(timeout=self._wait_timeout):
                raise retrieval_error(
                    f"timed out after {self._wait_timeout}s waiting for {key}",
                    timeout=True,
                )
            if sentinel.error is not None:
                raise sentinel.error
            return sentinel.result

        start_time = time.time()
        value = None
        error: Optional[BaseException] = None
        try:
            value = loader()
        except BaseException as e:
            error = e

        with self._lock:
            load_time = time.time() - start_time
            if self._cache.get(key) is sentinel:
                if error is None:
                    self._cache[key] = CacheEntry(value=value, created_at=time.time())
                    self._stats.loads += 1
                    self._stats.total_load_time += load_time
                elif isinstance(error, HydrationError):
                    self._cache[key] = _FailedEntry(error=error, created_at=time.time())
                    self._stats.failed_loads += 1
                else:
                    del self._cache[key]
                    self._stats.failed_loads += 1
            sentinel.result = value
            sentinel.error = error
            sentinel.event.set()  # Wake up waiters

        if isinstance(error, HydrationError):
            logger.debug(f"negative entry stored: key={key}: {error}")
            raise error
        if error is not None:
            logger.error(f"load failed: key={key}: {error}")
            raise error
        logger.debug(f"loaded: key={key}, took {load_time*1000:.1f}ms")
        return value

    def put(self, key: Hashable, value: Any) -> Any:
        """
        Store ``value`` unless ``key`` already holds an entity.

        If a loader is in flight for ``key``, waits for it: a successful
        load wins over ``value``; a failed one leaves the slot to ``value``.

        Returns:
            The value now held for ``key`` (the earlier one if present)

        Raises:
            RetrievalError: Timed out waiting for an in-flight load
        """
        while True:
            with self._lock:
                slot = self._cache.get(key)
                if isinstance(slot, CacheEntry):
                    self._stats.kept_existing += 1
                    return slot.value
                if not isinstance(slot, _LoadingSentinel):
                    self._cache[key] = CacheEntry(value=value, created_at=time.time())
                    self._stats.stores += 1
                    return value
                sentinel = slot
                self._stats.waits += 1

            if not sentinel.event.wait(timeout=self._wait_timeout):
                raise retrieval_error(
                    f"timed out after {self._wait_timeout}s waiting for {key}",
                    timeout=True,
                )

    def peek(self, key: Hashable) -> Optional[Any]:
        """Cached value for ``key`` without loading or counting a hit."""
        with self._lock:
            slot = self._cache.get(key)
            if isinstance(slot, CacheEntry):
                return slot.value
            return None

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return isinstance(self._cache.get(key), CacheEntry)

    def clear(self) -> int:
        """Drop all completed entries. Returns how many were dropped."""
        with self._lock:
            done = [k for k, v in self._cache.items() if not isinstance(v, _LoadingSentinel)]
            for k in done:
                del self._cache[k]
            return len(done)

    @property
    def size(self) -> int:
        """Number of cached entities (excludes negatives and in-flight loads)."""
        with self._lock:
            return sum(1 for v in self._cache.values() if isinstance(v, CacheEntry))

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def get_info(self) -> Dict[str, Any]:
        """Cache info for debugging."""
        with self._lock:
            by_kind: Dict[str, int] = {}
            negative = 0
            loading = 0
            for key, slot in self._cache.items():
                if isinstance(slot, _LoadingSentinel):
                    loading += 1
                elif isinstance(slot, _FailedEntry):
                    negative += 1
                else:
                    label = str(key[0]) if isinstance(key, tuple) and key else "other"
                    by_kind[label] = by_kind.get(label, 0) + 1
            return {
                "currentSize": sum(by_kind.values()),
                "byKind": by_kind,
                "negativeCount": negative,
                "loadingCount": loading,
                "stats": self._stats.to_dict(),
            }
