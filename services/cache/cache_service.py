import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

@dataclass
class CacheEntry:
    data: Any
    created_at: float
    ttl_seconds: float
    last_access: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) >= self.ttl_seconds

class CacheService:
    """In-memory TTL cache with LRU trimming and hit/miss metrics"""

    def __init__(self, default_ttl_seconds: float = 3600, max_entries: int = 5000,
                 clock: Callable[[], float] = time.monotonic, name: str = "cache"):
        self._cache: Dict[Hashable, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.name = name

        # Configuration
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries

        # Performance metrics
        self._metrics = {
            "total_requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "expired": 0,
            "evictions": 0
        }

    async def get(self, key: Hashable) -> Optional[Any]:
        """Get cached data, dropping it once expired"""
        async with self._lock:
            self._metrics["total_requests"] += 1
            now = self._clock()

            entry = self._cache.get(key)
            if entry is not None:
                if not entry.is_expired(now):
                    entry.last_access = now
                    self._metrics["cache_hits"] += 1
                    logger.debug(f"✅ {self.name} hit: {key} (age: {entry.age(now):.1f}s)")
                    return entry.data

                self._remove_entry(key)
                self._metrics["expired"] += 1
                logger.debug(f"⏰ {self.name} expired: {key} (age: {entry.age(now):.1f}s)")

            self._metrics["cache_misses"] += 1
            return None

    async def set(self, key: Hashable, data: Any, ttl_seconds: Optional[float] = None) -> None:
        async with self._lock:
            now = self._clock()
            self._cache[key] = CacheEntry(
                data=data,
                created_at=now,
                ttl_seconds=ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds,
                last_access=now
            )
            self._cleanup_if_needed()

    async def delete(self, key: Hashable) -> bool:
        async with self._lock:
            return self._remove_entry(key)

    async def get_status(self) -> Dict[str, Any]:
        async with self._lock:
            now = self._clock()
            ages = [entry.age(now) for entry in self._cache.values()]
            total_requests = max(self._metrics["total_requests"], 1)
            return {
                "name": self.name,
                "entries": len(self._cache),
                "max_entries": self.max_entries,
                "ttl_seconds": self.default_ttl_seconds,
                "oldest_entry_age_seconds": round(max(ages), 1) if ages else None,
                "hit_rate_percentage": round((self._metrics["cache_hits"] / total_requests) * 100, 1),
                "metrics": self._metrics.copy()
            }

    def _cleanup_if_needed(self) -> None:
        """Evict least recently used entries beyond max_entries"""
        if len(self._cache) <= self.max_entries:
            return

        sorted_by_access = sorted(self._cache.items(), key=lambda item: item[1].last_access)
        to_remove = len(self._cache) - self.max_entries
        for key, _ in sorted_by_access[:to_remove]:
            self._remove_entry(key)
        self._metrics["evictions"] += to_remove
        logger.debug(f"🧹 Evicted {to_remove} {self.name} entries")

    def _remove_entry(self, key: Hashable) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False
