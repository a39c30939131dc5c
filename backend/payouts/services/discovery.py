"""Find the markets a wallet has traded in."""

from __future__ import annotations

from functools import partial

from loguru import logger

from ledger.client import LedgerReader
from payouts.core.errors import RemoteFault
from payouts.domain import ContractGeneration, MarketHandle, ParticipationRecord

from .retry import ResilientCaller
from .sequences import AbsentEntrySignalsEnd

TRADE_HISTORY = "trade_history"
BALANCE_SCAN = "balance_scan"


class ParticipationDiscovery:
    """Reconstruct the wallet -> markets index the ledger does not expose.

    The trade history is read index by index until an absent entry. Only when
    that yields nothing are resolved markets scanned for nonzero option
    balances, which costs one read per option per market.
    """

    def __init__(
        self,
        ledger: LedgerReader,
        caller: ResilientCaller,
        *,
        max_trade_index: int = 100,
        max_scan_markets: int = 300,
    ) -> None:
        self._ledger = ledger
        self._caller = caller
        self._sequence = AbsentEntrySignalsEnd()
        self.max_trade_index = max_trade_index
        self.max_scan_markets = max_scan_markets

    async def discover(
        self,
        wallet: str,
        *,
        collector: list[ParticipationRecord] | None = None,
    ) -> list[MarketHandle]:
        """Return participated markets, deduplicated, in ascending handle order."""

        records = await self.discover_participation(wallet, collector=collector)
        return sorted({record.market for record in records})

    async def discover_participation(
        self,
        wallet: str,
        *,
        collector: list[ParticipationRecord] | None = None,
    ) -> list[ParticipationRecord]:
        records = collector if collector is not None else []
        await self._from_trade_history(wallet, records)
        logger.info("Discovered {} trade-history entries for {}", len(records), wallet)
        if not records:
            logger.info("No markets via trade history for {}; running balance scan", wallet)
            await self._from_balance_scan(wallet, records)
            logger.info("Balance scan found {} markets for {}", len(records), wallet)
        return records

    async def _from_trade_history(self, wallet: str, records: list[ParticipationRecord]) -> None:
        for index in range(self.max_trade_index):
            trade = await self._sequence.read(
                self._caller,
                partial(self._ledger.read_trade_history_entry, wallet, index),
                label=f"userTradeHistory[{index}]",
            )
            if trade is None:
                logger.debug("Reached end of trade history for {} at index {}", wallet, index)
                return
            records.append(
                ParticipationRecord(
                    wallet=wallet,
                    market=MarketHandle(ContractGeneration.V2, trade.market_id),
                    source=TRADE_HISTORY,
                )
            )
        logger.warning(
            "Trade history for {} reached the {}-entry cap; later entries were not read",
            wallet,
            self.max_trade_index,
        )

    async def _from_balance_scan(self, wallet: str, records: list[ParticipationRecord]) -> None:
        try:
            market_count = await self._caller.call(self._ledger.read_market_count, label="marketCount")
        except RemoteFault as exc:
            logger.warning("Balance scan for {} aborted; market count unavailable: {}", wallet, exc)
            return

        for market_id in range(min(market_count, self.max_scan_markets)):
            try:
                if await self._holds_any_option(wallet, market_id):
                    records.append(
                        ParticipationRecord(
                            wallet=wallet,
                            market=MarketHandle(ContractGeneration.V2, market_id),
                            source=BALANCE_SCAN,
                        )
                    )
            except RemoteFault as exc:
                logger.warning("Skipping market {} during balance scan: {}", market_id, exc)

    async def _holds_any_option(self, wallet: str, market_id: int) -> bool:
        status = await self._caller.call(
            partial(self._ledger.read_market_status, market_id),
            label=f"getMarketBasicInfo({market_id})",
        )
        if not status.resolved:
            return False
        for option in range(status.option_count):
            shares = await self._caller.call(
                partial(self._ledger.read_option_share_balance, market_id, option, wallet),
                label=f"getMarketOptionUserShares({market_id},{option})",
            )
            if shares > 0:
                return True
        return False
