"""Result cache shielding the aggregation pipeline from recomputation."""

import asyncio
import copy
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ANALYTICS_PREFIX = "analytics:"


class ResultCache(Protocol):
    """Key/value store with explicit TTLs."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def invalidate(self, prefix: str) -> int: ...


@dataclass
class _Entry:
    value: Any
    expires_at: float


class InMemoryResultCache:
    """Process-local TTL cache.

    Usage:
        cache = InMemoryResultCache()
        await cache.set("analytics:graphs:...", payload, ttl_seconds=1800)
        payload = await cache.get("analytics:graphs:...")
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 1024):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict()
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    async def invalidate(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns how many went."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def _evict(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._max_entries:
            # Oldest insertion goes first
            oldest = next(iter(self._entries))
            del self._entries[oldest]


class SingleFlight:
    """Collapses concurrent computations for the same key onto one task.

    The caller that starts the task gets its result; callers that join get a
    deep copy.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        future = self._inflight.get(key)
        if future is not None:
            logger.debug("single_flight_joined", key=key)
            return copy.deepcopy(await asyncio.shield(future))

        future = asyncio.ensure_future(fn())
        self._inflight[key] = future
        try:
            return await asyncio.shield(future)
        finally:
            if future.done():
                self._inflight.pop(key, None)
            else:
                future.add_done_callback(lambda _: self._inflight.pop(key, None))


async def safe_cache_get(cache: ResultCache | None, key: str) -> Any | None:
    """Cache read that degrades to a miss on failure."""
    if cache is None:
        return None
    try:
        return await cache.get(key)
    except Exception as e:
        logger.warning("cache_get_failed", key=key, error=str(e))
        return None


async def safe_cache_set(cache: ResultCache | None, key: str, value: Any, ttl_seconds: int) -> None:
    """Cache write that never fails the request."""
    if cache is None:
        return
    try:
        await cache.set(key, value, ttl_seconds)
    except Exception as e:
        logger.warning("cache_set_failed", key=key, error=str(e))
