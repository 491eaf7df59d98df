import threading
import time
from collections import OrderedDict
from typing import Any, Protocol


class CacheStore(Protocol):
    """Minimal key/value store with per-entry TTL shared by concurrent requests."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def has(self, key: str) -> bool: ...

    def forget(self, key: str) -> None: ...


class CacheMetrics:
    """Thread-safe cache metrics tracker."""

    hits: int
    misses: int
    evictions: int
    _lock: threading.Lock

    def __init__(self):
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def record_hit(self):
        with self._lock:
            self.hits += 1

    def record_miss(self):
        with self._lock:
            self.misses += 1

    def record_eviction(self):
        with self._lock:
            self.evictions += 1

    def hit_rate(self) -> float:
        """Return cache hit rate as percentage (0-100)."""
        with self._lock:
            total = self.hits + self.misses
            if total == 0:
                return 0.0
            return (self.hits / total) * 100

    def reset(self):
        """Reset all metrics to zero."""
        with self._lock:
            self.hits = 0
            self.misses = 0
            self.evictions = 0


class TTLCache:
    """In-process CacheStore with per-entry expiry and optional LRU size limit."""

    _cache: OrderedDict[str, tuple[float, Any]]
    _lock: threading.Lock
    _maxsize: int | None
    _metrics: CacheMetrics

    def __init__(self, maxsize: int | None = None):
        """Initialize cache with optional size limit.

        Args:
            maxsize: Maximum number of entries. None = unlimited. Uses LRU eviction.
        """
        self._cache = OrderedDict()
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._metrics = CacheMetrics()

    def get(self, key: str) -> Any | None:
        with self._lock:
            hit = self._cache.get(key)
            if hit is None:
                self._metrics.record_miss()
                return None
            expires_at, value = hit
            if expires_at <= time.time():
                del self._cache[key]
                self._metrics.record_miss()
                return None
            # Move to end for LRU tracking
            self._cache.move_to_end(key)
            self._metrics.record_hit()
            return value

    def has(self, key: str) -> bool:
        with self._lock:
            hit = self._cache.get(key)
            return hit is not None and hit[0] > time.time()

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            if key in self._cache:
                del self._cache[key]

            self._cache[key] = (time.time() + ttl_seconds, value)

            if self._maxsize is not None and len(self._cache) > self._maxsize:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                self._metrics.record_eviction()

    def forget(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def flush(self):
        with self._lock:
            self._cache = OrderedDict()

    def get_metrics(self) -> CacheMetrics:
        """Return the metrics tracker for this cache."""
        return self._metrics

    def size(self) -> int:
        """Return current number of entries in cache, expired ones included."""
        with self._lock:
            return len(self._cache)
