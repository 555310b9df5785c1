"""
StudyCare Backend — In-Process TTL Cache
==========================================

What:  A small expiring key → value store used to memoize expensive reads
       (e.g. per-class activity stats that fan out into one query per student).
Why:   The stats page is polled by dashboards; recomputing it every time
       multiplies database load by roster size.
How:   Dict of key → (value, expires_at). Reads drop expired entries lazily;
       `cleanup()` sweeps the rest and is run periodically by a task started
       in the application lifespan (`run_cleanup_loop`).

Lifecycle:
    One instance per application, created in create_app() and stored on
    app.state.cache. Routes reach it through the `get_cache` dependency, so
    tests can swap in their own instance.

Concurrency:
    No lock. Every method runs without an await, so under asyncio no other
    task can interleave inside a call. A thread-pool deployment would need
    a threading.Lock around `_store`.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Tuple

from fastapi import Request

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory dict with expiry timestamps and eviction of the soonest-expiring entry."""

    MAX_ENTRIES = 1000

    def __init__(self, default_ttl: int = 300, max_entries: Optional[int] = None):
        self.default_ttl = default_ttl
        self.max_entries = max_entries or self.MAX_ENTRIES
        self._store: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.time() > expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if key not in self._store and len(self._store) >= self.max_entries:
            self._evict_oldest()
        ttl = self.default_ttl if ttl is None else ttl
        self._store[key] = (value, time.time() + ttl)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """Invalidate every key starting with `prefix`. Returns count removed."""
        keys = [key for key in self._store if key.startswith(prefix)]
        for key in keys:
            del self._store[key]
        return len(keys)

    def clear(self) -> None:
        self._store.clear()

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = time.time()
        expired = [key for key, (_, expires_at) in self._store.items() if now > expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)

    def _evict_oldest(self) -> None:
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k][1])
        del self._store[oldest_key]

    @staticmethod
    def make_key(*parts: Any) -> str:
        """Builds `a:b:c` keys from route/method/parameter parts."""
        return ":".join(str(part) for part in parts)

    async def run_cleanup_loop(self, interval: float) -> None:
        """Sweep expired entries every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            removed = self.cleanup()
            if removed:
                logger.debug("Cache cleanup removed %d expired entries", removed)


def get_cache(request: Request) -> TTLCache:
    """FastAPI dependency: the application's cache instance."""
    return request.app.state.cache
