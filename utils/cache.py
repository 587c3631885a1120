"""Caching utilities for the Research Engine."""

import hashlib
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Cache configuration
CACHE_TTL_SECONDS = 3600  # 1 hour
CACHE_MAX_ENTRIES = 1000


def get_cache_key(namespace: str, **params) -> str:
    """Generate cache key from a namespace and parameters."""
    param_str = json.dumps(params, sort_keys=True, default=str)
    return hashlib.md5(f"{namespace}:{param_str}".encode()).hexdigest()


class TTLCache:
    """
    In-memory cache with per-entry expiry.

    Expired entries are dropped lazily on read; when the cache is full the
    entry closest to expiry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Retrieve cached value if not expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        expires_at, value = entry
        if time.time() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store value with an expiry timestamp."""
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (time.time() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached values."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def _evict(self) -> None:
        now = time.time()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
            logger.debug(f"Cache full, evicted {oldest}")

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 3) if total else 0.0,
        }
