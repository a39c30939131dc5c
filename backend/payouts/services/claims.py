"""Decide which of a wallet's markets hold unclaimed winnings."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from functools import partial

from loguru import logger

from ledger.client import LedgerReader
from payouts.core.errors import ConfigurationError, LedgerRevert, RemoteFault
from payouts.domain import ClaimEligibility, MarketHandle, PositionSnapshot

from .retry import ResilientCaller

# Revert reasons that mean "nothing to claim" rather than "not yet".
NOT_CLAIMABLE_REASONS = frozenset({"alreadyclaimed", "nowinningshares"})


def _reason_key(reason: str) -> str:
    return "".join(ch for ch in reason.lower() if ch.isalnum())


def is_nothing_to_claim(exc: LedgerRevert) -> bool:
    key = _reason_key(exc.reason)
    return any(reason in key for reason in NOT_CLAIMABLE_REASONS)


class ClaimabilityVerifier:
    """Verify claimability market by market with a dry-run of ``claimWinnings``.

    "Already claimed" is not observable through any view function, so the
    settlement call itself is simulated from the wallet. A market that fails
    any check, or errors while being checked, is left out of the result.
    """

    def __init__(
        self,
        ledger: LedgerReader,
        caller: ResilientCaller,
        *,
        concurrency: int = 4,
        default_payout_per_share: int = 100 * 10**18,
        share_scale: int = 10**18,
    ) -> None:
        self._ledger = ledger
        self._caller = caller
        self.concurrency = concurrency
        self.default_payout_per_share = default_payout_per_share
        self.share_scale = share_scale

    async def read_payout_per_share(self) -> int:
        try:
            return await self._caller.call(
                self._ledger.read_payout_per_share, label="PAYOUT_PER_SHARE"
            )
        except RemoteFault as exc:
            logger.warning(
                "PAYOUT_PER_SHARE unavailable ({}); using default {}",
                exc,
                self.default_payout_per_share,
            )
            return self.default_payout_per_share

    async def verify(
        self,
        wallet: str,
        markets: Iterable[MarketHandle],
        *,
        sink: list[ClaimEligibility] | None = None,
    ) -> list[ClaimEligibility]:
        """Return claimable positions sorted by market.

        Records are appended to ``sink`` as they are confirmed, so a caller that
        cancels this coroutine still holds whatever finished.
        """

        results = sink if sink is not None else []
        candidates = list(markets)
        if not candidates:
            return results

        payout_per_share = await self.read_payout_per_share()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def check(market: MarketHandle) -> None:
            async with semaphore:
                try:
                    eligibility = await self.verify_market(wallet, market, payout_per_share)
                except ConfigurationError:
                    raise
                except Exception as exc:  # noqa: BLE001 - one market never fails the batch
                    logger.warning("Skipping market {} for {}: {}", market.market_id, wallet, exc)
                    return
            if eligibility is not None:
                results.append(eligibility)

        await asyncio.gather(*(check(market) for market in candidates))
        results.sort(key=lambda item: item.market)
        return results

    async def verify_market(
        self, wallet: str, market: MarketHandle, payout_per_share: int
    ) -> ClaimEligibility | None:
        market_id = market.market_id
        status = await self._caller.call(
            partial(self._ledger.read_market_status, market_id),
            label=f"getMarketBasicInfo({market_id})",
        )
        if not status.resolved or status.invalidated:
            return None

        meta = await self._caller.call(
            partial(self._ledger.read_resolution_meta, market_id),
            label=f"getMarketExtendedMeta({market_id})",
        )
        if meta.disputed:
            return None

        shares = await self._caller.call(
            partial(
                self._ledger.read_option_share_balance, market_id, meta.winning_option, wallet
            ),
            label=f"getMarketOptionUserShares({market_id},{meta.winning_option})",
        )
        position = PositionSnapshot(
            market=market,
            option_index=meta.winning_option,
            wallet=wallet,
            share_amount=shares,
        )
        if position.share_amount <= 0:
            return None

        if not await self._simulate_claim(wallet, market):
            return None

        amount = position.share_amount * payout_per_share // self.share_scale
        if amount <= 0:
            return None
        return ClaimEligibility(market=market, wallet=wallet, amount=amount, claimable=True)

    async def _simulate_claim(self, wallet: str, market: MarketHandle) -> bool:
        try:
            await self._caller.call(
                partial(self._ledger.simulate_claim, market.market_id, wallet),
                label=f"claimWinnings({market.market_id}) dry run",
            )
        except LedgerRevert as exc:
            if is_nothing_to_claim(exc):
                logger.debug("Market {} has nothing to claim for {} ({})", market.market_id, wallet, exc.reason)
            else:
                logger.debug(
                    "Claim dry run for market {} reverted ({}); not claimable yet",
                    market.market_id,
                    exc.reason,
                )
            return False
        except RemoteFault as exc:
            logger.warning(
                "Claim dry run for market {} failed ({}); treating as not claimable",
                market.market_id,
                exc,
            )
            return False
        return True
