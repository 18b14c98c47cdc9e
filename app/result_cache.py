from __future__ import annotations

import json
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from . import metrics
from .cache import CacheBackend, MemoryBackend, build_backend
from .query import FilterCriteria

log = logging.getLogger(__name__)

DEFAULT_TTL = 300.0


def cache_key(criteria: FilterCriteria, namespace: str = "advocates") -> str:
    """Deterministic cache key for a search.

    Every criteria field is always present (absent -> null) and keys are sorted,
    so field-wise equal criteria map to the same string regardless of how they
    were built.
    """
    canonical = json.dumps(criteria.as_dict(), sort_keys=True, separators=(",", ":"))
    return f"{namespace}:search:{canonical}"


class ResultCache:
    """Best-effort cache of search results keyed by normalized criteria.

    Stores `{"advocates": [...], "total": n}` values under `<namespace>:search:*`.
    Backend failures are logged and counted, then treated as a miss (get) or a
    no-op (set/delete/invalidate); they never reach the caller.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttl: float = DEFAULT_TTL,
        namespace: str = "advocates",
    ) -> None:
        self._backend = backend if backend is not None else MemoryBackend()
        self._ttl = float(ttl)
        self._namespace = namespace
        # fill locks live only while some task holds or waits on them
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @property
    def backend_name(self) -> str:
        return getattr(self._backend, "name", type(self._backend).__name__)

    @property
    def generation(self) -> int:
        """Incremented by every `invalidate_all`."""
        return self._generation

    def key(self, criteria: FilterCriteria) -> str:
        return cache_key(criteria, self._namespace)

    def _failed(self, op: str, exc: BaseException) -> None:
        self._errors += 1
        metrics.record_cache_error(op, cache=self.backend_name)
        log.warning("cache.%s failed backend=%s err=%r", op, self.backend_name, exc)

    async def get(self, criteria: FilterCriteria) -> Optional[Dict[str, Any]]:
        """Return the cached value, or None on miss, expiry or backend failure."""
        key = self.key(criteria)
        try:
            value = await self._backend.get(key)
        except Exception as exc:
            self._failed("get", exc)
            value = None
        if value is None:
            self._misses += 1
            metrics.record_cache_lookup(hit=False)
            return None
        self._hits += 1
        metrics.record_cache_lookup(hit=True)
        return value

    async def set(
        self,
        criteria: FilterCriteria,
        value: Dict[str, Any],
        ttl: Optional[float] = None,
        generation: Optional[int] = None,
    ) -> None:
        """Store `value`, replacing any entry under the same key.

        When `generation` is given (read from `self.generation` before the value
        was loaded), the store is skipped if an invalidation happened since, and
        undone if one lands while the write is in flight.
        """
        key = self.key(criteria)
        if generation is not None and generation != self._generation:
            log.debug("cache.set skipped_stale key=%s", key)
            return
        try:
            await self._backend.set(key, value, self._ttl if ttl is None else ttl)
        except Exception as exc:
            self._failed("set", exc)
            return
        if generation is not None and generation != self._generation:
            log.debug("cache.set dropped_stale key=%s", key)
            await self._delete_key(key)

    async def _delete_key(self, key: str) -> None:
        try:
            await self._backend.delete(key)
        except Exception as exc:
            self._failed("delete", exc)

    async def delete(self, criteria: FilterCriteria) -> None:
        await self._delete_key(self.key(criteria))

    async def invalidate_all(self) -> None:
        """Drop every entry in this cache's namespace."""
        # bumped even when the clear fails, so in-flight fills are not stored
        self._generation += 1
        try:
            removed = await self._backend.clear(f"{self._namespace}:")
        except Exception as exc:
            self._failed("invalidate", exc)
            return
        metrics.record_cache_invalidation()
        log.info("cache.invalidate_all backend=%s removed=%s", self.backend_name, removed)

    @asynccontextmanager
    async def singleflight(self, key: str) -> AsyncIterator[None]:
        """Hold the fill lock for `key` so concurrent misses query the DB once.

        The lock is shared by every task that holds or awaits it and is
        discarded when the last one leaves, so distinct keys do not accumulate.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.pop(key) - 1
            if users:
                self._lock_users[key] = users
            else:
                del self._locks[key]

    async def ping(self) -> bool:
        try:
            return await self._backend.ping()
        except Exception as exc:
            log.debug("cache.ping failed backend=%s err=%r", self.backend_name, exc)
            return False

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception as exc:
            log.debug("cache.close failed backend=%s err=%r", self.backend_name, exc)

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend_name,
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "ttl_seconds": self._ttl,
        }


def build_cache(settings) -> ResultCache:
    """Build the ResultCache described by application settings."""
    backend = build_backend(
        settings.CACHE_BACKEND,
        redis_url=settings.REDIS_URL,
        maxsize=settings.CACHE_MAXSIZE,
    )
    return ResultCache(
        backend,
        ttl=settings.CACHE_TTL_SECONDS,
        namespace=settings.CACHE_NAMESPACE,
    )
