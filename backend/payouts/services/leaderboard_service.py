"""Cached leaderboard queries."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from payouts.domain import LeaderboardEntry

from .cache import ResultCache
from .leaderboard import LeaderboardAggregator


class LeaderboardService:
    """Serve the merged leaderboard from cache, rebuilding it on a miss.

    A failed rebuild falls back to the last cached table even if it has
    expired; only when nothing was ever cached does the error reach the caller.
    Requests that arrive while a rebuild is running get that same older table
    rather than waiting on the rebuild.
    Configuration faults are raised before any rebuild is attempted.
    """

    def __init__(
        self,
        aggregator: LeaderboardAggregator,
        cache: ResultCache,
        *,
        cache_key: str = "leaderboard_v7",
        ttl: float = 3600.0,
        timeout: float = 120.0,
        preflight: Callable[[], None] | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._cache = cache
        self.cache_key = cache_key
        self.ttl = ttl
        self.timeout = timeout
        self._preflight = preflight

    async def get_leaderboard(self) -> list[LeaderboardEntry]:
        cached = self._cache.get(self.cache_key)
        if cached is not None:
            logger.info("Serving leaderboard from cache")
            return cached

        if self._preflight is not None:
            self._preflight()
        return await self._cache.get_or_load(self.cache_key, self._rebuild, ttl=self.ttl)

    async def _rebuild(self) -> list[LeaderboardEntry]:
        logger.info("Starting leaderboard fetch")
        async with asyncio.timeout(self.timeout):
            entries = await self._aggregator.aggregate()
        logger.info("Cached leaderboard with {} entries", len(entries))
        return entries
