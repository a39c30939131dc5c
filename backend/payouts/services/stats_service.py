"""Per-wallet statistics and market counts."""

from __future__ import annotations

import asyncio
from functools import partial

from loguru import logger

from ledger.client import LedgerReader, checksum_wallet
from payouts.core.errors import ConfigurationError, RemoteFault
from payouts.domain import MarketCounts, WalletStats

from .retry import ResilientCaller

VOTE_HISTORY_PAGE_SIZE = 50

# Generation-1 outcome codes.
OUTCOME_UNRESOLVED = 0
OUTCOME_OPTION_A = 1
OUTCOME_OPTION_B = 2
OUTCOME_CANCELLED = 3


class StatsService:
    def __init__(self, ledger: LedgerReader, caller: ResilientCaller) -> None:
        self._ledger = ledger
        self._caller = caller

    async def wallet_stats(self, wallet: str) -> WalletStats:
        """Win/loss record of a wallet on the generation-1 contract.

        Unresolved and cancelled markets count as neither a win nor a loss.
        """

        wallet = checksum_wallet(wallet)
        decimals = await self._caller.call(self._ledger.read_token_decimals, label="decimals")
        net_winnings = await self._caller.call(
            partial(self._ledger.read_v1_total_winnings, wallet), label="totalWinnings"
        )
        vote_count = await self._caller.call(
            partial(self._ledger.read_vote_history_count, wallet), label="getVoteHistoryCount"
        )
        if vote_count == 0:
            return WalletStats(
                wallet=wallet,
                total_votes=0,
                wins=0,
                losses=0,
                win_rate=0.0,
                total_invested=0,
                net_winnings=net_winnings,
                token_decimals=decimals,
            )

        votes = []
        for start in range(0, vote_count, VOTE_HISTORY_PAGE_SIZE):
            votes.extend(
                await self._caller.call(
                    partial(
                        self._ledger.read_vote_history, wallet, start, VOTE_HISTORY_PAGE_SIZE
                    ),
                    label=f"getVoteHistory({start})",
                )
            )

        market_ids = sorted({vote.market_id for vote in votes})
        outcomes = {
            row.market_id: row
            for row in await self._caller.call(
                partial(self._ledger.read_v1_market_info_batch, market_ids),
                label="getMarketInfoBatch",
            )
        }

        wins = losses = 0
        for vote in votes:
            market = outcomes.get(vote.market_id)
            if market is None or not market.resolved:
                continue
            won = (vote.is_option_a and market.outcome == OUTCOME_OPTION_A) or (
                not vote.is_option_a and market.outcome == OUTCOME_OPTION_B
            )
            if won:
                wins += 1
            elif market.outcome not in (OUTCOME_UNRESOLVED, OUTCOME_CANCELLED):
                losses += 1

        decided = wins + losses
        return WalletStats(
            wallet=wallet,
            total_votes=decided,
            wins=wins,
            losses=losses,
            win_rate=(wins / decided) * 100 if decided else 0.0,
            total_invested=sum(vote.amount for vote in votes),
            net_winnings=net_winnings,
            token_decimals=decimals,
        )

    async def market_counts(self) -> MarketCounts:
        try:
            v1_count, v2_count = await asyncio.gather(
                self._caller.call(self._ledger.read_v1_market_count, label="V1 getMarketCount"),
                self._caller.call(self._ledger.read_market_count, label="V2 marketCount"),
            )
            return MarketCounts(v1_count=v1_count, v2_count=v2_count)
        except (RemoteFault, ConfigurationError) as exc:
            logger.warning("Error fetching market counts ({}); falling back to V1 only", exc)

        try:
            v1_count = await self._caller.call(
                self._ledger.read_v1_market_count, label="V1 getMarketCount"
            )
        except (RemoteFault, ConfigurationError) as exc:
            logger.error("Error fetching V1 market count: {}", exc)
            return MarketCounts(v1_count=0, v2_count=0)
        return MarketCounts(v1_count=v1_count, v2_count=0)
