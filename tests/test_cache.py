import threading
import time
from unittest.mock import patch

from app.util.cache import CacheMetrics, TTLCache


class TestTTLCacheExpiry:
    """Per-entry TTL behavior."""

    def test_get_returns_value_before_expiry(self):
        cache = TTLCache()
        cache.put("search:dune", "payload", 60)
        assert cache.get("search:dune") == "payload"
        assert cache.has("search:dune") is True

    def test_expired_entry_is_gone(self):
        """Entries past their TTL behave as missing and are dropped on read."""
        cache = TTLCache()
        with patch("app.util.cache.time.time", return_value=1000.0):
            cache.put("search:dune", "payload", 10)
        with patch("app.util.cache.time.time", return_value=1011.0):
            assert cache.has("search:dune") is False
            assert cache.get("search:dune") is None
        assert cache.size() == 0

    def test_entries_keep_their_own_ttl(self):
        cache = TTLCache()
        with patch("app.util.cache.time.time", return_value=1000.0):
            cache.put("short", 1, 5)
            cache.put("long", 2, 500)
        with patch("app.util.cache.time.time", return_value=1100.0):
            assert cache.get("short") is None
            assert cache.get("long") == 2

    def test_forget_removes_entry(self):
        cache = TTLCache()
        cache.put("token", "abc", 60)
        cache.forget("token")
        assert cache.get("token") is None
        # Forgetting a missing key is a no-op
        cache.forget("token")

    def test_flush_clears_everything(self):
        cache = TTLCache()
        cache.put("a", 1, 60)
        cache.put("b", 2, 60)
        cache.flush()
        assert cache.size() == 0

    def test_falsy_values_are_cached(self):
        """A stored True/0 flag must still count as present."""
        cache = TTLCache()
        cache.put("flag", True, 60)
        cache.put("zero", 0, 60)
        assert cache.has("flag") is True
        assert cache.get("zero") == 0


class TestTTLCacheLRU:
    """LRU eviction tests for TTLCache."""

    def test_no_maxsize_unlimited(self):
        """Cache without maxsize should store unlimited entries."""
        cache = TTLCache()
        for i in range(1000):
            cache.put(f"query_{i}", i, 60)
        assert cache.size() == 1000

    def test_lru_eviction_removes_oldest(self):
        """When maxsize exceeded, oldest entry should be evicted."""
        cache = TTLCache(maxsize=3)
        cache.put("q1", 1, 60)
        cache.put("q2", 2, 60)
        cache.put("q3", 3, 60)

        cache.put("q4", 4, 60)
        assert cache.size() == 3
        assert cache.get("q1") is None
        assert cache.get("q4") == 4

    def test_lru_get_moves_to_end(self):
        """Accessing an entry should mark it as recently used."""
        cache = TTLCache(maxsize=3)
        cache.put("q1", 1, 60)
        cache.put("q2", 2, 60)
        cache.put("q3", 3, 60)

        cache.get("q1")

        cache.put("q4", 4, 60)
        assert cache.get("q1") == 1
        assert cache.get("q2") is None

    def test_put_updates_lru_position(self):
        """Overwriting a key should move it to the recently used end."""
        cache = TTLCache(maxsize=3)
        cache.put("q1", 1, 60)
        cache.put("q2", 2, 60)
        cache.put("q3", 3, 60)

        cache.put("q1", "new", 60)

        cache.put("q4", 4, 60)
        assert cache.get("q1") == "new"
        assert cache.get("q2") is None

    def test_thread_safe_eviction(self):
        """Concurrent operations should not corrupt LRU order."""
        cache = TTLCache(maxsize=5)

        def worker(id):
            for i in range(10):
                cache.put(f"q_{id}_{i}", i, 60)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.size() <= 5


class TestCacheMetrics:
    """CacheMetrics class tests."""

    def test_metrics_initial_state(self):
        metrics = CacheMetrics()
        assert metrics.hits == 0
        assert metrics.misses == 0
        assert metrics.evictions == 0
        assert metrics.hit_rate() == 0.0

    def test_cache_records_hits_and_misses(self):
        cache = TTLCache()
        metrics = cache.get_metrics()

        cache.put("q1", 1, 60)
        assert cache.get("q1") == 1
        assert cache.get("q2") is None

        assert metrics.hits == 1
        assert metrics.misses == 1
        assert metrics.hit_rate() == 50.0

    def test_eviction_count(self):
        cache = TTLCache(maxsize=2)
        metrics = cache.get_metrics()

        cache.put("q1", 1, 60)
        cache.put("q2", 2, 60)
        cache.put("q3", 3, 60)
        cache.put("q4", 4, 60)

        assert metrics.evictions == 2

    def test_metrics_reset(self):
        cache = TTLCache()
        metrics = cache.get_metrics()
        cache.put("q", 1, 60)
        cache.get("q")
        cache.get("missing")

        metrics.reset()
        assert metrics.hits == 0
        assert metrics.misses == 0
        assert metrics.evictions == 0

    def test_metrics_thread_safe_increment(self):
        metrics = CacheMetrics()

        def worker():
            for _ in range(100):
                metrics.record_hit()
                metrics.record_miss()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert metrics.hits == 500
        assert metrics.misses == 500


class TestCachePerformance:
    def test_lookup_speed(self):
        """get() should be fast even with TTL checks."""
        cache = TTLCache()
        for i in range(100):
            cache.put(f"query_{i}", i, 3600)

        start = time.time()
        for i in range(10000):
            cache.get(f"query_{i % 100}")
        elapsed = time.time() - start

        assert elapsed < 1.0
