"""
Caching - Id-keyed caches for node content and node detail

Holds the last-fetched canonical value per node id. There is no TTL, size
bound or background eviction: entries go stale only when the event stream
or a caller's force refresh says so.

Two fetches for the same id racing each other are not deduplicated; the
one resolving last wins the slot.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached resource value."""

    key: str
    value: V
    fetched_at: float = field(default_factory=time.monotonic)
    hits: int = 0

    def touch(self):
        """Count a read."""
        self.hits += 1

    @property
    def age(self) -> float:
        """Seconds since the value was stored."""
        return time.monotonic() - self.fetched_at


class ResourceCache(Generic[V]):
    """
    In-memory cache keyed by resource id.

    Only ever touched from the event loop thread, so no locking.

    Example:
        cache = ResourceCache("node-content")
        cache.set("n1", content)
        cache.get("n1")      # -> content
        cache.evict("n1")
        cache.get("n1")      # -> None
    """

    def __init__(self, name: str):
        """
        Initialize an empty cache.

        Args:
            name: Label used in log messages and stats
        """
        self.name = name
        self._entries: Dict[str, CacheEntry[V]] = {}

        # Statistics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[V]:
        """Cached value for key, or None."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        entry.touch()
        self.hits += 1
        return entry.value

    def entry(self, key: str) -> Optional[CacheEntry[V]]:
        """Full entry (with timestamps) for key, without counting a hit."""
        return self._entries.get(key)

    def set(self, key: str, value: V):
        """Store value, replacing any previous entry for key."""
        self._entries[key] = CacheEntry(key=key, value=value)
        logger.debug(f"[{self.name}] cached {key}")

    def evict(self, key: str) -> bool:
        """Drop the entry for key. Returns True if one was present."""
        if key in self._entries:
            del self._entries[key]
            self.evictions += 1
            logger.debug(f"[{self.name}] evicted {key}")
            return True
        return False

    def clear(self):
        """Drop every entry."""
        count = len(self._entries)
        self._entries.clear()
        logger.debug(f"[{self.name}] cleared {count} entries")

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def items(self) -> Iterator[Tuple[str, V]]:
        for key, entry in list(self._entries.items()):
            yield key, entry.value

    def find(self, predicate: Callable[[V], bool]) -> List[str]:
        """Ids whose cached value satisfies predicate."""
        return [key for key, value in self.items() if predicate(value)]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        """Cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def stats(self) -> Dict[str, Any]:
        """Cache statistics."""
        return {
            "name": self.name,
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }
