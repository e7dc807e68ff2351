"""
franchise_platform/cache.py
===========================
Process-scoped query cache for server resources. It is injected into the
stores and the sync client rather than living as module state.

Keys are built deterministically from resource type + plan id, so
invalidation can target one plan's derived outputs without touching others.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, ...]
T = TypeVar("T")


def plan_key(plan_id: str) -> CacheKey:
    return (f"/api/plans/{plan_id}",)


def plan_outputs_key(plan_id: str) -> CacheKey:
    return ("/api/plans", plan_id, "outputs")


def startup_costs_key(plan_id: str) -> CacheKey:
    return ("/api/plans", plan_id, "startup-costs")


@dataclass
class CacheEntry:
    value: Any
    stale: bool = False
    updated_at: Optional[datetime] = None


class QueryCache:
    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._generations: Dict[CacheKey, int] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def get(self, key: CacheKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return default if entry is None else entry.value

    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stale=False, updated_at=datetime.now(timezone.utc))

    def remove(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def invalidate(self, key: CacheKey) -> bool:
        """Mark an entry stale so the next read refetches it."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.stale = True
        logger.debug("Invalidated %s", key)
        return True

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def cancel(self, key: CacheKey) -> None:
        """Fetches already in flight for `key` will not write their result."""
        self._generations[key] = self._generations.get(key, 0) + 1

    async def fetch(self, key: CacheKey, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the fresh cached value, or load, store and return it."""
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.value
        generation = self._generations.get(key, 0)
        value = await loader()
        if self._generations.get(key, 0) != generation:
            logger.debug("Dropping canceled fetch result for %s", key)
            return self.get(key, value)
        self.set(key, value)
        return value
