"""Merge realized winnings from both contract generations into one ranking."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from functools import partial

from loguru import logger

from ledger.client import LedgerReader
from payouts.core.errors import RemoteFault
from payouts.domain import LeaderboardEntry, WinningsTotals, to_display_amount

from .identity import IdentityEnricher
from .retry import ResilientCaller
from .sequences import AbsentEntrySignalsEnd


def merge_generations(*sources: Iterable[WinningsTotals]) -> dict[str, WinningsTotals]:
    """Key rows by lower-case wallet and sum every counter across sources.

    A wallet missing from a source simply contributes nothing from it.
    """

    merged: dict[str, WinningsTotals] = {}
    for rows in sources:
        for row in rows:
            key = row.wallet.lower()
            normalized = WinningsTotals(
                wallet=key, total_winnings=row.total_winnings, trade_count=row.trade_count
            )
            existing = merged.get(key)
            merged[key] = normalized if existing is None else existing.combine(normalized)
    return merged


class LeaderboardAggregator:
    """Build the top-N winnings table from scratch.

    Generation 1 exposes a paged leaderboard. Generation 2 only exposes a
    participants array and per-wallet portfolios, so its participants are read
    by index in concurrent batches and each portfolio is fetched separately.
    Generation-2 read failures never fail the table: a failed participant read
    ends the index and a failed portfolio read drops that wallet, so at worst
    the result is the generation-1 table alone.
    """

    def __init__(
        self,
        ledger: LedgerReader,
        caller: ResilientCaller,
        enricher: IdentityEnricher,
        *,
        v1_page_size: int = 100,
        v2_batch_size: int = 100,
        max_index: int = 10_000,
        portfolio_concurrency: int = 10,
        top_n: int = 10,
    ) -> None:
        self._ledger = ledger
        self._caller = caller
        self._enricher = enricher
        # Any absent read in a batch ends the participant index, faults included.
        self._participants = AbsentEntrySignalsEnd(faults_end_sequence=True)
        # A page read past the end of the V1 table reverts; faults still propagate.
        self._pages = AbsentEntrySignalsEnd()
        self.v1_page_size = v1_page_size
        self.v2_batch_size = v2_batch_size
        self.max_index = max_index
        self.portfolio_concurrency = portfolio_concurrency
        self.top_n = top_n

    async def aggregate(self) -> list[LeaderboardEntry]:
        decimals = await self._caller.call(self._ledger.read_token_decimals, label="decimals")
        logger.info("Payment token decimals: {}", decimals)

        v1_rows = await self.fetch_v1()
        logger.info("Fetched {} V1 leaderboard entries", len(v1_rows))
        v2_rows = await self.fetch_v2()
        logger.info("Fetched {} V2 leaderboard entries", len(v2_rows))

        ranked = self.rank(merge_generations(v1_rows, v2_rows).values(), decimals)
        identities = await self._enricher.enrich([entry.wallet for entry in ranked])
        for entry in ranked:
            entry.identity = identities.get(entry.wallet)
        return ranked

    def rank(self, totals: Iterable[WinningsTotals], decimals: int) -> list[LeaderboardEntry]:
        winners = [row for row in totals if row.total_winnings > 0]
        winners.sort(key=lambda row: (-row.total_winnings, row.wallet))
        return [
            LeaderboardEntry(
                wallet=row.wallet,
                total_winnings=to_display_amount(row.total_winnings, decimals),
                trade_count=row.trade_count,
            )
            for row in winners[: self.top_n]
        ]

    async def fetch_v1(self) -> list[WinningsTotals]:
        rows: list[WinningsTotals] = []
        offset = 0
        while offset < self.max_index:
            read = partial(self._ledger.read_leaderboard_page, offset, self.v1_page_size)
            label = f"getLeaderboard({offset},{self.v1_page_size})"
            if offset == 0:
                page = await self._caller.call(read, label=label)
            else:
                page = await self._pages.read(self._caller, read, label=label)
                if page is None:
                    break
            rows.extend(page)
            if len(page) < self.v1_page_size:
                break
            offset += self.v1_page_size
        return rows

    async def fetch_v2(self) -> list[WinningsTotals]:
        participants = await self.fetch_v2_participants()
        logger.info("Found {} V2 participants", len(participants))
        return await self._fetch_portfolios(participants)

    async def fetch_v2_participants(self) -> list[str]:
        participants: list[str] = []
        start = 0
        while start < self.max_index:
            indexes = range(start, min(start + self.v2_batch_size, self.max_index))
            batch = await asyncio.gather(
                *(
                    self._participants.read(
                        self._caller,
                        partial(self._ledger.read_participant_at_index, index),
                        label=f"allParticipants[{index}]",
                    )
                    for index in indexes
                )
            )
            if None not in batch:
                participants.extend(batch)
                start += self.v2_batch_size
                continue

            end = batch.index(None)
            participants.extend(batch[:end])
            trailing = [wallet for wallet in batch[end + 1 :] if wallet is not None]
            if trailing:
                logger.warning(
                    "Participant index gap at {} with {} later entries in the same batch; "
                    "ignoring entries after the gap",
                    indexes[end],
                    len(trailing),
                )
            break
        return participants

    async def _fetch_portfolios(self, participants: list[str]) -> list[WinningsTotals]:
        semaphore = asyncio.Semaphore(self.portfolio_concurrency)

        async def fetch(wallet: str) -> WinningsTotals | None:
            async with semaphore:
                try:
                    portfolio = await self._caller.call(
                        partial(self._ledger.read_portfolio, wallet),
                        label=f"userPortfolios({wallet})",
                    )
                except RemoteFault as exc:
                    logger.warning("Failed to fetch V2 portfolio for {}: {}", wallet, exc)
                    return None
            if portfolio.total_winnings <= 0:
                return None
            return WinningsTotals(
                wallet=wallet,
                total_winnings=portfolio.total_winnings,
                trade_count=portfolio.trade_count,
            )

        rows = await asyncio.gather(*(fetch(wallet) for wallet in participants))
        return [row for row in rows if row is not None]
