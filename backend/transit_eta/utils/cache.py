"""
Process-wide in-memory caches with TTL support and single-flight loading.
"""

import asyncio
import functools
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional

import structlog

logger = structlog.get_logger()

Clock = Callable[[], float]


class TTLCache:
    """Simple in-memory cache with TTL support and an injectable clock."""

    def __init__(self, default_ttl: Optional[float] = None, clock: Clock = time.time):
        self._cache: Dict[Hashable, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.default_ttl = default_ttl

    async def get(self, key: Hashable) -> Optional[Any]:
        """Get value from cache."""
        async with self._lock:
            if key in self._cache:
                entry = self._cache[key]
                if entry["expires_at"] is None or entry["expires_at"] > self._clock():
                    return entry["value"]
                # Expired, remove it
                del self._cache[key]
            return None

    async def set(self, key: Hashable, value: Any, ex: Optional[float] = None) -> bool:
        """Set value in cache with optional expiration (falls back to default TTL)."""
        ttl = self.default_ttl if ex is None else ex
        async with self._lock:
            expires_at = None
            if ttl is not None:
                expires_at = self._clock() + ttl

            self._cache[key] = {
                "value": value,
                "expires_at": expires_at,
            }
            return True

    async def delete(self, key: Hashable) -> int:
        """Delete key from cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return 1
            return 0

    async def ttl(self, key: Hashable) -> float:
        """Get time to live for key."""
        async with self._lock:
            if key in self._cache:
                entry = self._cache[key]
                if entry["expires_at"] is None:
                    return -1  # No expiration
                remaining = entry["expires_at"] - self._clock()
                return remaining if remaining > 0 else -2
            return -2  # Key doesn't exist

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()


class SingleFlight:
    """
    Coalesces concurrent loads of the same key into one in-flight task.

    Callers arriving while a load is running await that load's result. A
    failed load is forgotten, so the next caller starts a fresh one.
    """

    def __init__(self):
        self._inflight: Dict[Hashable, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def do(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(loader())
                self._inflight[key] = task
                task.add_done_callback(functools.partial(self._forget, key))
            else:
                logger.debug("Joining in-flight load", key=str(key))

        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Abandoned failures must not surface as "exception never retrieved"
        if not task.cancelled():
            task.exception()

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight


class LoadingCache:
    """TTLCache whose misses are filled through a SingleFlight."""

    def __init__(self, default_ttl: float, clock: Clock = time.time):
        self.cache = TTLCache(default_ttl=default_ttl, clock=clock)
        self.flights = SingleFlight()

    async def get(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
        force: bool = False,
        ttl: Optional[float] = None,
    ) -> Any:
        if not force:
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

        async def load_and_store():
            value = await loader()
            await self.cache.set(key, value, ex=ttl)
            return value

        return await self.flights.do(key, load_and_store)

    async def invalidate(self, key: Hashable) -> None:
        await self.cache.delete(key)
