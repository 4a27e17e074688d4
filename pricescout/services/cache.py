"""
In-process response cache.

TTL cache for search responses plus the pure key function used to address
them. Identical requests always map to the same key.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from pricescout.utils.logger import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def generate_search_key(
    product: str,
    country: Optional[str] = None,
    max_results: Optional[int] = None,
    countries: Optional[list[str]] = None,
) -> str:
    """
    Deterministic cache key for a search.

    ``search:{product}:{country}:{max_results or 10}`` for country searches,
    ``search:{product}:global:{max_results or 20}`` otherwise. A global
    search restricted to specific countries appends them sorted.

    Example:
        >>> generate_search_key("Taladro  Bosch", "pe")
        'search:taladro_bosch:PE:10'
    """
    normalized = _WHITESPACE.sub("_", product.strip().lower())
    base = f"search:{normalized}"

    if country:
        return f"{base}:{country.upper()}:{max_results or 10}"

    key = f"{base}:global:{max_results or 20}"
    codes = sorted({c.upper() for c in (countries or []) if c})
    if codes and "ALL" not in codes:
        key += ":" + ",".join(codes)
    return key


@dataclass
class CacheEntry:
    """Cache entry with TTL tracking."""
    data: Any
    created_at: datetime
    ttl_seconds: int
    hits: int = 0

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return datetime.utcnow() - self.created_at > timedelta(seconds=self.ttl_seconds)

    def get(self) -> Any:
        """Get cached data and increment hit counter."""
        self.hits += 1
        return self.data


class SearchCache:
    """Async-safe TTL cache with oldest-first eviction."""

    def __init__(self, max_size: int = 500, default_ttl: int = 1800):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        """Get cached value if it exists and has not expired."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            return entry.get()

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set cache value with optional custom TTL."""
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_size:
                evict_count = max(1, len(self._cache) // 4)
                oldest = sorted(self._cache.items(), key=lambda x: x[1].created_at)[:evict_count]
                for k, _ in oldest:
                    del self._cache[k]

            self._cache[key] = CacheEntry(
                data=value,
                created_at=datetime.utcnow(),
                ttl_seconds=ttl or self.default_ttl,
            )

    async def delete(self, key: str) -> bool:
        """Remove a key; returns whether it was present."""
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all cached entries."""
        async with self._lock:
            self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "total_hits": sum(e.hits for e in self._cache.values()),
            "expired_entries": sum(1 for e in self._cache.values() if e.is_expired()),
        }


__all__ = ["SearchCache", "CacheEntry", "generate_search_key"]
