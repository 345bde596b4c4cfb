from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from slidegen.services.trace import sha1_json


logger = logging.getLogger("slidegen.analysis")

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


def cache_key(*parts: Any) -> str:
    """Deterministic key for JSON-serialisable inputs."""
    return sha1_json(list(parts))


class TTLCache(Generic[T]):
    """In-process cache; expired entries are evicted on the next lookup."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic, max_entries: int = 512):
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(entry.value)

    def set(self, key: str, value: T, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else max(0.0, float(ttl_seconds))
        if key not in self._entries and len(self._entries) >= self.max_entries:
            # Oldest insertion goes first.
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = CacheEntry(value=copy.deepcopy(value), expires_at=self._clock() + ttl)

    def clear(self) -> None:
        self._entries.clear()


class RequestDeduplicator(Generic[T]):
    """Coalesces concurrent identical requests onto one pending future."""

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[T]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("dedup_join key=%s", key[:12])
            return await asyncio.shield(pending)

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so a future nobody joined does not warn.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)


class CachedCaller(Generic[T]):
    """TTL cache in front of a deduplicated async producer."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.cache: TTLCache[T] = TTLCache(ttl_seconds, clock=clock)
        self.dedup: RequestDeduplicator[T] = RequestDeduplicator()

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("cache_hit key=%s", key[:12])
            return cached

        async def produce() -> T:
            value = await factory()
            self.cache.set(key, value)
            return value

        return await self.dedup.run(key, produce)
