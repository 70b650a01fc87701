"""
Tests for Caching System
"""

import time
import pytest

from camper_core.caching import CacheEntry, ResourceCache
from camper_core.types import NodeContent, NodeDetail, EdgeRecord


class TestCacheEntry:
    """Tests for CacheEntry dataclass."""

    def test_entry_creation(self):
        """Test creating a cache entry."""
        entry = CacheEntry(key="n1", value="content")
        assert entry.key == "n1"
        assert entry.value == "content"
        assert entry.hits == 0
        assert entry.fetched_at <= time.monotonic()

    def test_entry_touch(self):
        """Test touch counts reads."""
        entry = CacheEntry(key="n1", value="content")
        entry.touch()
        entry.touch()
        assert entry.hits == 2

    def test_entry_age(self):
        """Test age grows from fetched_at."""
        entry = CacheEntry(key="n1", value="content", fetched_at=time.monotonic() - 5)
        assert entry.age >= 5


class TestResourceCache:
    """Tests for ResourceCache."""

    @pytest.mark.parametrize("key,value", [
        ("n1", NodeContent(id="n1", body="hello")),
        ("node with spaces", NodeContent(id="node with spaces")),
        ("", "empty key is still a key"),
        ("n/2", NodeDetail(id="n/2", edges=[EdgeRecord(id="e1")])),
    ])
    def test_cache_law(self, key, value):
        """set then get returns the value; evict then get returns nothing."""
        cache = ResourceCache("test")
        cache.set(key, value)
        assert cache.get(key) is value
        assert cache.evict(key) is True
        assert cache.get(key) is None

    def test_get_missing(self):
        """Test get on an empty cache."""
        cache = ResourceCache("test")
        assert cache.get("missing") is None
        assert cache.misses == 1

    def test_set_replaces(self):
        """Test one live entry per id."""
        cache = ResourceCache("test")
        cache.set("n1", "old")
        cache.set("n1", "new")
        assert cache.get("n1") == "new"
        assert len(cache) == 1

    def test_evict_missing_returns_false(self):
        """Test evicting an absent id."""
        cache = ResourceCache("test")
        assert cache.evict("nope") is False
        assert cache.evictions == 0

    def test_clear(self):
        """Test clear drops everything."""
        cache = ResourceCache("test")
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0
        assert "a" not in cache

    def test_keys_items_contains(self):
        """Test iteration helpers."""
        cache = ResourceCache("test")
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.keys() == ["a", "b"]
        assert dict(cache.items()) == {"a": 1, "b": 2}
        assert "a" in cache
        assert "c" not in cache

    def test_find(self):
        """Test find returns ids whose value matches."""
        cache = ResourceCache("details")
        cache.set("n1", NodeDetail(id="n1", edges=[EdgeRecord(id="e1")]))
        cache.set("n2", NodeDetail(id="n2", suggestions=[EdgeRecord(id="e1")]))
        cache.set("n3", NodeDetail(id="n3", edges=[EdgeRecord(id="e9")]))
        assert cache.find(lambda detail: "e1" in detail.edge_ids()) == ["n1", "n2"]

    def test_entry_does_not_count_hit(self):
        """Test entry() is a diagnostic read."""
        cache = ResourceCache("test")
        cache.set("a", 1)
        assert cache.entry("a").value == 1
        assert cache.hits == 0

    def test_stats(self):
        """Test statistics tracking."""
        cache = ResourceCache("node-content")
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("b")
        cache.evict("a")

        stats = cache.stats
        assert stats["name"] == "node-content"
        assert stats["size"] == 0
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["evictions"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)
