"""Expiring key/value cache backends.

Every backend exposes the same three async operations:

``get_or_set(key, loader, ttl_seconds)``
    Read-through lookup.  On a miss the zero-argument ``loader`` is called
    (it may be a plain function or return an awaitable), its result is stored
    with a fresh TTL and returned.  Concurrent misses may each call the
    loader; the last writer wins.
``get(key)``
    The cached value, or ``None`` when the key is missing or expired.
``set(key, value, ttl_seconds)``
    Unconditional overwrite with a new TTL.

Two implementations are provided:

- :class:`MemoryCache` keeps entries in-process in a ``cachetools.TLRUCache``
  with a per-entry expiry.  Values are deep-copied on the way in and out so
  callers cannot mutate the cached copy by accident.
- :class:`RedisCache` stores JSON-encoded values in Redis with ``SETEX``.
"""

from __future__ import annotations

import copy
import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from cachetools import TLRUCache

logger = logging.getLogger(__name__)


def _validate(key: str, ttl_seconds: int | None = None) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError("cache key must be a non-empty string")
    if ttl_seconds is not None:
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds!r}")


class CacheBackend(ABC):
    """Abstract expiring key/value store used by the gallery cache."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or ``None`` if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds`` seconds."""

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl_seconds: int,
    ) -> Any:
        """Return the cached value, loading and storing it on a miss.

        Args:
            key: Non-empty cache key.
            loader: Zero-argument callable producing the authoritative value.
                Coroutine functions are awaited.
            ttl_seconds: Positive lifetime for a freshly loaded value.

        Returns:
            The cached or freshly loaded value.
        """
        _validate(key, ttl_seconds)

        cached = await self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"Cache miss: {key}")
        value = loader()
        if inspect.isawaitable(value):
            value = await value

        await self.set(key, value, ttl_seconds)
        return value

    async def close(self) -> None:
        """Release backend resources.  No-op by default."""


class MemoryCache(CacheBackend):
    """In-process cache with per-entry time-to-live.

    Entries are stored as ``(ttl_seconds, value)`` pairs so the TLRU
    time-to-use function can compute each entry's own expiry.

    Args:
        maxsize: Maximum number of keys kept before least-recently-used
            eviction.
        timer: Monotonic clock in seconds.  Tests pass a fake clock.
    """

    def __init__(self, maxsize: int = 128, timer: Callable[[], float] = time.monotonic):
        self._entries: TLRUCache = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, entry, now: now + entry[0],
            timer=timer,
        )

    async def get(self, key: str) -> Any | None:
        _validate(key)
        entry = self._entries.get(key)
        if entry is None:
            return None
        return copy.deepcopy(entry[1])

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        _validate(key, ttl_seconds)
        self._entries[key] = (ttl_seconds, copy.deepcopy(value))

    async def close(self) -> None:
        self._entries.clear()


class RedisCache(CacheBackend):
    """Redis-backed cache storing JSON-encoded values.

    Args:
        redis_url: Connection URL, e.g. ``redis://localhost:6379/0``.
        client: Pre-built ``redis.asyncio.Redis`` client.  When omitted a
            client is created from ``redis_url``.
    """

    def __init__(self, redis_url: str, client: redis.Redis | None = None):
        self.redis_url = redis_url
        self.redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    async def get(self, key: str) -> Any | None:
        _validate(key)
        raw = await self.redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        _validate(key, ttl_seconds)
        await self.redis.setex(key, ttl_seconds, json.dumps(value))

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis cache connection closed")
