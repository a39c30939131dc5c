"""Process-lifetime memoization with stale-on-error fallback."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class CacheLookup(Generic[T]):
    """A cached value and whether it is past its nominal expiry."""

    value: T
    stale: bool


class ResultCache:
    """In-memory cache keyed by logical query name.

    With ``retain_stale`` (the default) expired entries are kept so that a
    failed refresh can still serve the last good value; each key holds at most
    one value, so this only suits a fixed set of keys. Caches keyed by caller
    input should pass ``retain_stale=False``: expired entries are then evicted
    on access and swept on every ``set``.

    ``get`` only returns fresh values; ``lookup`` also returns stale ones and
    says so. Nothing is persisted across restarts.

    Safe for concurrent use from one event loop: entries are replaced whole,
    and ``get_or_load`` allows one loader per key at a time.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        name: str = "cache",
        retain_stale: bool = True,
    ) -> None:
        self.name = name
        self.retain_stale = retain_stale
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            if not self.retain_stale:
                self._entries.pop(key, None)
            return None
        return entry.value

    def lookup(self, key: str) -> CacheLookup[Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stale = entry.is_expired(self._clock())
        if stale and not self.retain_stale:
            self._entries.pop(key, None)
            return None
        return CacheLookup(value=entry.value, stale=stale)

    def set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        if not self.retain_stale:
            self.prune(now)
        self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)

    def prune(self, now: float | None = None) -> int:
        """Drop every expired entry; returns how many were removed."""

        now = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug("{} pruned {} expired entries", self.name, len(expired))
        return len(expired)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        # An empty cache is still a cache.
        return True

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        *,
        ttl: float,
        serve_stale_on_error: bool = True,
        serve_stale_while_loading: bool = True,
    ) -> T:
        """Return the fresh value for ``key``, loading it on a miss.

        While another caller is already loading ``key``, an older value is
        returned straight away (when ``serve_stale_while_loading``) instead of
        waiting for that load. If the loader raises and an older value exists,
        that value is returned instead (when ``serve_stale_on_error``);
        otherwise the error propagates.
        """

        cached = self.get(key)
        if cached is not None:
            logger.debug("{} hit key={}", self.name, key)
            return cached

        lock = self._lock_for(key)
        if serve_stale_while_loading and lock.locked():
            previous = self.lookup(key)
            if previous is not None:
                logger.info(
                    "{} refresh in progress key={}; serving last cached value", self.name, key
                )
                return previous.value

        async with lock:
            cached = self.get(key)
            if cached is not None:
                return cached
            logger.info("{} miss key={}; refreshing", self.name, key)
            try:
                value = await loader()
            except Exception as exc:
                previous = self.lookup(key)
                if serve_stale_on_error and previous is not None:
                    logger.warning(
                        "{} refresh failed key={} error={}; serving last cached value",
                        self.name,
                        key,
                        exc,
                    )
                    return previous.value
                raise
            self.set(key, value, ttl)
            return value
