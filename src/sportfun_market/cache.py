"""Two-tier TTL cache with single-flight loading.

The memory tier is a bounded LRU map with per-entry expiry. The optional
Redis tier stores JSON values with a TTL so several processes share results.
Concurrent `get_or_load` calls for one key await the same in-flight loader.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ENTRIES = 50_000
DEFAULT_KEY_PREFIX = "sportfun:"
DEFAULT_SHARED_TTL_SECONDS = 24 * 60 * 60


@dataclass
class _Entry:
    value: Any
    expires_at: float | None


class TtlCache:
    """Memory LRU plus optional Redis tier.

    `ttl_seconds=None` means the entry never expires in memory (it may still be
    evicted when the map is full); in Redis it lives for `shared_ttl_seconds`.
    Only JSON-serializable values are written to Redis; anything else stays
    memory-only.
    """

    def __init__(
        self,
        *,
        redis: Redis | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        shared_ttl_seconds: int = DEFAULT_SHARED_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis = redis
        self._max_entries = max_entries
        self._key_prefix = key_prefix
        self._shared_ttl = shared_ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Return a live memory-tier value, or None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None) -> None:
        """Store a value in the memory tier, evicting least-recently-used entries."""
        expires_at = None if ttl_seconds is None else self._clock() + max(1.0, ttl_seconds)
        self._entries[key] = _Entry(value=value, expires_at=expires_at)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def _get_shared(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(f"{self._key_prefix}{key}")
        except Exception as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding undecodable cache value for %s: %s", key, e)
            return None

    async def _set_shared(self, key: str, value: Any, ttl_seconds: float | None) -> None:
        if self._redis is None:
            return
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError):
            return
        try:
            ex = self._shared_ttl if ttl_seconds is None else max(1, int(ttl_seconds))
            await self._redis.set(f"{self._key_prefix}{key}", payload, ex=ex)
        except Exception as e:
            logger.warning("Cache set failed for %s: %s", key, e)

    async def get_or_load(
        self,
        key: str,
        ttl_seconds: float | None,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value for `key`, else run `loader` once and cache it.

        Args:
            key: Cache key.
            ttl_seconds: Lifetime of the loaded value, None for no expiry.
            loader: Coroutine factory producing the value on a miss.

        Returns:
            The cached or freshly loaded value. Loader exceptions propagate to
            every waiter and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, ttl_seconds, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        return await asyncio.shield(task)  # type: ignore[no-any-return]

    async def _load(
        self,
        key: str,
        ttl_seconds: float | None,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        shared = await self._get_shared(key)
        if shared is not None:
            logger.debug("Shared cache hit for %s", key)
            self.set(key, shared, ttl_seconds)
            return shared  # type: ignore[no-any-return]

        value = await loader()
        if value is not None:
            self.set(key, value, ttl_seconds)
            await self._set_shared(key, value, ttl_seconds)
        return value
