from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry(Generic[V]):
    key: str
    value: V
    expires_at: float
    last_accessed: float


class ProfileCache(Generic[V]):
    """In-memory TTL cache keyed by ``platform:username``.

    Expired entries are evicted lazily on read; :meth:`sweep` may be called
    opportunistically to drop everything past its expiry in one pass.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1000,
        now: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = max(ttl_seconds, 0.0)
        self.max_entries = max(1, max_entries)
        self._now = now
        self._entries: Dict[str, CacheEntry[V]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        now = self._now()
        if now >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        entry.last_accessed = now
        self.hits += 1
        return entry.value

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        ttl_seconds = self.ttl_seconds if ttl is None else max(ttl, 0.0)
        now = self._now()
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_oldest()
        self._entries[key] = CacheEntry(
            key=key, value=value, expires_at=now + ttl_seconds, last_accessed=now
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        now = self._now()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def _evict_oldest(self) -> None:
        if self.sweep():
            return
        oldest = min(self._entries.values(), key=lambda entry: entry.last_accessed)
        del self._entries[oldest.key]

    def stats(self) -> Dict[str, object]:
        lookups = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0.0,
        }


__all__ = ["CacheEntry", "ProfileCache"]
