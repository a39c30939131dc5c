"""Claimable-winnings queries: discovery followed by verification."""

from __future__ import annotations

import asyncio

from loguru import logger

from ledger.client import checksum_wallet
from payouts.domain import ClaimEligibility, ParticipationRecord, WinningsReport

from .cache import ResultCache
from .claims import ClaimabilityVerifier
from .discovery import ParticipationDiscovery


class WinningsService:
    """Answer "what can this wallet claim right now".

    Normally live. The whole pipeline runs under one wall-clock budget; when it
    runs out, whatever was discovered and verified so far is returned with
    ``partial`` set instead of an error.
    """

    def __init__(
        self,
        discovery: ParticipationDiscovery,
        verifier: ClaimabilityVerifier,
        *,
        timeout: float = 25.0,
        cache: ResultCache | None = None,
        cache_ttl: float = 0.0,
        cache_version: str = "v7",
    ) -> None:
        self._discovery = discovery
        self._verifier = verifier
        self.timeout = timeout
        self._cache = cache
        self.cache_ttl = cache_ttl
        self.cache_version = cache_version

    def _cache_key(self, wallet: str) -> str:
        return f"winnings_{self.cache_version}:{wallet.lower()}"

    async def get_claimable_winnings(self, wallet: str) -> WinningsReport:
        wallet = checksum_wallet(wallet)
        use_cache = self._cache is not None and self.cache_ttl > 0
        if use_cache:
            cached = self._cache.get(self._cache_key(wallet))
            if cached is not None:
                logger.info("Serving claimable winnings for {} from cache", wallet)
                return cached

        report = await self._run(wallet)
        if use_cache and not report.partial:
            self._cache.set(self._cache_key(wallet), report, self.cache_ttl)
        return report

    async def _run(self, wallet: str) -> WinningsReport:
        logger.info("Claimable winnings discovery start wallet={}", wallet)
        records: list[ParticipationRecord] = []
        winnings: list[ClaimEligibility] = []
        partial = False
        try:
            async with asyncio.timeout(self.timeout):
                markets = await self._discovery.discover(wallet, collector=records)
                logger.info("Markets for {}: {}", wallet, [market.market_id for market in markets])
                await self._verifier.verify(wallet, markets, sink=winnings)
        except TimeoutError:
            partial = True
            logger.warning(
                "Claimable winnings for {} exceeded {:.0f}s; returning partial results "
                "({} markets, {} claimable)",
                wallet,
                self.timeout,
                len(records),
                len(winnings),
            )

        report = WinningsReport(
            wallet=wallet,
            participated=sorted({record.market for record in records}),
            winnings=sorted(winnings, key=lambda item: item.market),
            partial=partial,
        )
        logger.info(
            "Claimable markets for {}: {} of {}",
            wallet,
            len(report.winnings),
            len(report.participated),
        )
        return report
