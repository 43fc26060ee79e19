"""Tests for ContentCache: LRU bound, TTL, prefix eviction."""
import pytest

from novelhub.services.cache import ContentCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestContentCache:
    def test_get_set(self):
        cache = ContentCache(max_entries=10, ttl_seconds=30)
        cache.set("chapter:1", {"id": "1"})
        assert cache.get("chapter:1") == {"id": "1"}
        assert cache.get("missing", "d") == "d"

    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = ContentCache(max_entries=10, ttl_seconds=30, clock=clock)
        cache.set("k", "v")
        clock.now = 29.9
        assert cache.get("k") == "v"
        clock.now = 30.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = ContentCache(max_entries=2, ttl_seconds=30)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_delete_prefix(self):
        cache = ContentCache()
        cache.set("chapter:1", 1)
        cache.set("chapter:2", 2)
        cache.set("module:1", 3)
        assert cache.delete_prefix("chapter:") == 2
        assert cache.get("module:1") == 3

    def test_get_or_load_skips_none(self):
        cache = ContentCache()
        calls = []

        def loader():
            calls.append(1)
            return None

        assert cache.get_or_load("k", loader) is None
        assert cache.get_or_load("k", loader) is None
        assert len(calls) == 2

    def test_get_or_load_caches_value(self):
        cache = ContentCache()
        calls = []

        def loader():
            calls.append(1)
            return "v"

        cache.get_or_load("k", loader)
        cache.get_or_load("k", loader)
        assert len(calls) == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ContentCache(max_entries=0)
