"""Backing stores for the search result cache.

Two interchangeable backends:

* `MemoryBackend` – per-process, on `cachetools.TLRUCache` (per-entry TTL + LRU).
* `RedisBackend`  – shared across instances, on `redis.asyncio`.

Backends raise on failure. Absorbing failures is `ResultCache`'s job, so a
backend can stay a thin adapter over its store.
"""

from __future__ import annotations

import copy
import json
import time
import logging
from typing import Any, Callable, NamedTuple, Optional, Protocol

from cachetools import TLRUCache
from redis.asyncio import Redis

log = logging.getLogger(__name__)


class CacheBackend(Protocol):
    name: str

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: float) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self, prefix: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class _Entry(NamedTuple):
    value: Any
    ttl: float


def _expires_at(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class MemoryBackend:
    """In-process TTL+LRU store. Values are deep-copied in and out."""

    name = "memory"

    def __init__(
        self, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic
    ) -> None:
        self._store: TLRUCache = TLRUCache(
            maxsize=maxsize, ttu=_expires_at, timer=timer
        )

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._store[key] = _Entry(copy.deepcopy(value), float(ttl))

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self, prefix: str) -> int:
        doomed = [k for k in list(self._store.keys()) if k.startswith(prefix)]
        for k in doomed:
            self._store.pop(k, None)
        return len(doomed)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class RedisBackend:
    """Redis store; values are JSON documents written with `SET key value EX ttl`."""

    name = "redis"

    def __init__(self, client: Redis, scan_count: int = 500) -> None:
        self._client = client
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            health_check_interval=30,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: float) -> None:
        # EX takes whole seconds; never round a positive TTL down to "no expiry"
        await self._client.set(key, json.dumps(value), ex=max(1, int(round(ttl))))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def clear(self, prefix: str) -> int:
        """Delete every key under `prefix` (SCAN + DEL, not FLUSHDB)."""
        removed = 0
        batch = []
        async for key in self._client.scan_iter(match=f"{prefix}*", count=self._scan_count):
            batch.append(key)
            if len(batch) >= self._scan_count:
                removed += await self._client.delete(*batch)
                batch = []
        if batch:
            removed += await self._client.delete(*batch)
        return removed

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def build_backend(kind: str, *, redis_url: str, maxsize: int) -> CacheBackend:
    """Construct the backend named by `kind` ("memory" or "redis")."""
    kind = (kind or "memory").lower()
    if kind == "redis":
        log.info("cache.backend redis")
        return RedisBackend.from_url(redis_url)
    if kind != "memory":
        raise ValueError(f"Unknown CACHE_BACKEND: {kind!r}")
    log.info("cache.backend memory maxsize=%d", maxsize)
    return MemoryBackend(maxsize=maxsize)
