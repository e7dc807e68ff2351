"""
franchise_platform/sync.py
==========================
Optimistic update protocol for server-authoritative resources.

  1. mutate   → cancel in-flight fetches for the key, snapshot, apply the
                optimistic value to the cache
  2. success  → cache ← server response, dependent keys invalidated
  3. failure  → cache ← snapshot, SyncError raised, no automatic retry

At most one mutation per key is live. A newer mutation supersedes the older
one, which still resolves for its own caller:

  - older succeeds, newer in flight  → its result becomes the newer rollback target
  - older succeeds, newer rolled back → cache ← its result (what the server holds)
  - older succeeds, newer accepted   → key marked stale, next fetch settles it
  - older fails                      → SyncError, no rollback

The cache only ever holds the pre-mutation snapshot, a live optimistic value,
or a value the server accepted.
"""
from __future__ import annotations
import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set, TypeVar, Union

from .cache import CacheKey, QueryCache

logger = logging.getLogger(__name__)

T = TypeVar("T")
Optimistic = Union[None, Any, Callable[[Any], Any]]


class SyncError(Exception):
    """A mutation the server did not accept; the cache was rolled back."""

    retryable = True

    def __init__(self, key: CacheKey, cause: BaseException):
        super().__init__(f"Save failed for {'/'.join(key)}: {cause}")
        self.key = key
        self.cause = cause


class ConflictError(SyncError):
    """The server copy changed since it was loaded; saving again cannot succeed until reload."""

    retryable = False


@dataclass
class _PendingMutation:
    token: int
    snapshot: Any
    had_snapshot: bool


class OptimisticSyncClient:
    def __init__(self, cache: QueryCache):
        self.cache = cache
        self._pending: Dict[CacheKey, _PendingMutation] = {}
        self._errors: Dict[CacheKey, BaseException] = {}
        self._rolled_back: Set[CacheKey] = set()
        self._tokens = itertools.count(1)

    def is_pending(self, key: CacheKey) -> bool:
        return key in self._pending

    def last_error(self, key: CacheKey) -> Optional[BaseException]:
        return self._errors.get(key)

    async def mutate(
        self,
        key: CacheKey,
        optimistic: Optimistic,
        request: Callable[[], Awaitable[T]],
        invalidates: Iterable[CacheKey] = (),
    ) -> T:
        """
        `optimistic` is the value to show right away, or a function of the
        cached value returning it; None (or a function returning None) skips
        the optimistic step, e.g. for server-side resets.
        """
        dependents = list(invalidates)
        self.cache.cancel(key)
        self._rolled_back.discard(key)

        previous = self._pending.get(key)
        if previous is not None:
            # still unconfirmed: roll back to what the older mutation started from
            snapshot, had_snapshot = previous.snapshot, previous.had_snapshot
        else:
            snapshot, had_snapshot = self.cache.get(key), key in self.cache
        token = next(self._tokens)
        self._pending[key] = _PendingMutation(token, snapshot, had_snapshot)

        value = optimistic(self.cache.get(key)) if callable(optimistic) else optimistic
        if value is not None:
            self.cache.set(key, value)

        try:
            result = await request()
        except (Exception, asyncio.CancelledError) as exc:
            if self._owns(key, token):
                # the snapshot may have moved on to a superseded save the server accepted
                pending = self._pending.pop(key)
                self._rollback(key, pending.snapshot, pending.had_snapshot)
                self._rolled_back.add(key)
                self._errors[key] = exc
                logger.warning("Rolled back %s after failed save: %s", key, exc)
            if isinstance(exc, asyncio.CancelledError):
                raise
            raise SyncError(key, exc) from exc

        if self._owns(key, token):
            del self._pending[key]
            self._rolled_back.discard(key)
            self._errors.pop(key, None)
            self.cache.set(key, result)
        else:
            current = self._pending.get(key)
            if current is not None:
                # the server accepted this one, so it is the newer rollback target
                current.snapshot, current.had_snapshot = result, True
            elif key in self._rolled_back:
                # the newer save failed and restored an older snapshot; this is what the server holds
                self._rolled_back.discard(key)
                self.cache.set(key, result)
            else:
                # server order between this and the newer accepted save is unknown
                self.cache.invalidate(key)
            logger.debug("Superseded save for %s completed", key)
        for dep in dependents:
            self.cache.invalidate(dep)
        return result

    def _owns(self, key: CacheKey, token: int) -> bool:
        pending = self._pending.get(key)
        return pending is not None and pending.token == token

    def _rollback(self, key: CacheKey, snapshot: Any, had_snapshot: bool) -> None:
        if had_snapshot:
            self.cache.set(key, snapshot)
        else:
            self.cache.remove(key)
