"""
NeuroNote - Narrative Response Cache
====================================

Bounded TTL cache of parsed provider responses, keyed by a SHA-256 hash of
the prompt. One instance is injected into the provider chain; it is safe to
share across concurrent pipeline runs:

- ``get`` is a pure lookup (expired entries read as misses)
- ``put`` is an idempotent upsert
- when full, the oldest entry is evicted first

Usage:
    cache = ResponseCache(ttl_seconds=3600, capacity=100)
    key = cache.make_key(prompt)
    narrative = cache.get(key)
    if narrative is None:
        cache.put(key, generated)
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from src.narrative.models import Narrative

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cache entry with expiry on the cache clock."""
    value: Narrative
    expires_at: float


class ResponseCache:
    """Thread-safe TTL cache with oldest-first eviction."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        capacity: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize response cache.

        Args:
            ttl_seconds: Time to live in seconds
            capacity: Maximum number of entries
            clock: Monotonic time source (injectable for tests)
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def make_key(prompt: str, namespace: str = "") -> str:
        """SHA-256 content hash of the prompt."""
        return hashlib.sha256(f"{namespace}\x00{prompt}".encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[Narrative]:
        """Cached narrative, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                self._hits += 1
                logger.debug(f"Narrative cache HIT: {key[:16]}")
                return entry.value
            self._misses += 1

        logger.debug(f"Narrative cache MISS: {key[:16]}")
        return None

    def put(self, key: str, value: Narrative) -> None:
        """Insert or replace an entry, evicting expired then oldest entries."""
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            else:
                self._evict_expired(now)
                while len(self._entries) >= self.capacity:
                    self._entries.popitem(last=False)
                    self._evictions += 1
            self._entries[key] = CacheEntry(value=value, expires_at=now + self.ttl_seconds)

    def _evict_expired(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        return len(expired)

    def clear(self) -> None:
        """Clear all cached items."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def hit_rate(self) -> float:
        """Cache hit rate."""
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            size = len(self._entries)
        return {
            "capacity": self.capacity,
            "size": size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self.hit_rate,
        }
