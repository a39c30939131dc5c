from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from payouts.core.config import Settings
from payouts.core.errors import LedgerRevert
from payouts.domain import (
    Identity,
    MarketStatus,
    Portfolio,
    ResolutionMeta,
    TradeRecord,
    V1MarketOutcome,
    Vote,
    WinningsTotals,
)
from payouts.services.retry import ResilientCaller

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20


def wallet_n(n: int) -> str:
    return "0x" + f"{n:040x}"


@dataclass
class FakeMarket:
    option_count: int = 2
    resolved: bool = True
    invalidated: bool = False
    winning_option: int = 0
    disputed: bool = False


@dataclass
class FakeLedger:
    """In-memory LedgerReader. Out-of-range reads revert like the contracts do."""

    trade_history: dict[str, list[int]] = field(default_factory=dict)
    markets: dict[int, FakeMarket] = field(default_factory=dict)
    balances: dict[tuple[int, int, str], int] = field(default_factory=dict)
    claim_reverts: dict[tuple[int, str], str] = field(default_factory=dict)
    payout_per_share: int = 100 * 10**18
    decimals: int = 18
    v1_rows: list[WinningsTotals] = field(default_factory=list)
    # Revert on a page starting past the last row, like a bounds-checked getLeaderboard.
    strict_leaderboard_paging: bool = False
    participants: list[str] = field(default_factory=list)
    portfolios: dict[str, Portfolio] = field(default_factory=dict)
    v1_total_winnings: dict[str, int] = field(default_factory=dict)
    votes: dict[str, list[Vote]] = field(default_factory=dict)
    v1_outcomes: dict[int, V1MarketOutcome] = field(default_factory=dict)
    v1_market_count: int = 0
    # method name -> exception raised on every call, or a list consumed one call at a time
    failures: dict[str, object] = field(default_factory=dict)
    # (method name, first arg) -> exception
    keyed_failures: dict[tuple[str, object], Exception] = field(default_factory=dict)
    claim_delay: float = 0.0
    calls: list[tuple] = field(default_factory=list)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        keyed = self.keyed_failures.get((name, args[0] if args else None))
        if keyed is not None:
            raise keyed
        failure = self.failures.get(name)
        if failure is None:
            return
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
            return
        raise failure  # type: ignore[misc]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _market(self, market_id: int) -> FakeMarket:
        market = self.markets.get(market_id)
        if market is None:
            raise LedgerRevert("MarketNotFound")
        return market

    async def read_market_count(self) -> int:
        self._record("read_market_count")
        return len(self.markets)

    async def read_market_status(self, market_id: int) -> MarketStatus:
        self._record("read_market_status", market_id)
        market = self._market(market_id)
        return MarketStatus(
            market_id=market_id,
            option_count=market.option_count,
            resolved=market.resolved,
            invalidated=market.invalidated,
        )

    async def read_resolution_meta(self, market_id: int) -> ResolutionMeta:
        self._record("read_resolution_meta", market_id)
        market = self._market(market_id)
        return ResolutionMeta(
            market_id=market_id, winning_option=market.winning_option, disputed=market.disputed
        )

    async def read_option_share_balance(self, market_id: int, option: int, wallet: str) -> int:
        self._record("read_option_share_balance", market_id, option, wallet)
        return self.balances.get((market_id, option, wallet.lower()), 0)

    async def read_trade_history_entry(self, wallet: str, index: int) -> TradeRecord | None:
        self._record("read_trade_history_entry", wallet, index)
        history = self.trade_history.get(wallet.lower(), [])
        if index >= len(history):
            raise LedgerRevert("execution reverted")
        return TradeRecord(
            market_id=history[index], option_id=0, is_buy=True, price=0, quantity=1, timestamp=0
        )

    async def read_leaderboard_page(self, offset: int, size: int) -> list[WinningsTotals]:
        self._record("read_leaderboard_page", offset, size)
        if self.strict_leaderboard_paging and offset >= len(self.v1_rows):
            raise LedgerRevert("execution reverted: start out of range")
        return list(self.v1_rows[offset : offset + size])

    async def read_participant_at_index(self, index: int) -> str | None:
        self._record("read_participant_at_index", index)
        if index >= len(self.participants):
            raise LedgerRevert("execution reverted")
        return self.participants[index]

    async def read_portfolio(self, wallet: str) -> Portfolio:
        self._record("read_portfolio", wallet)
        return self.portfolios.get(
            wallet.lower(),
            Portfolio(
                wallet=wallet,
                total_invested=0,
                total_winnings=0,
                unrealized_pnl=0,
                realized_pnl=0,
                trade_count=0,
            ),
        )

    async def read_payout_per_share(self) -> int:
        self._record("read_payout_per_share")
        return self.payout_per_share

    async def read_token_decimals(self) -> int:
        self._record("read_token_decimals")
        return self.decimals

    async def simulate_claim(self, market_id: int, wallet: str) -> None:
        self._record("simulate_claim", market_id, wallet)
        if self.claim_delay:
            await asyncio.sleep(self.claim_delay)
        reason = self.claim_reverts.get((market_id, wallet.lower()))
        if reason is not None:
            raise LedgerRevert(reason)

    async def read_v1_market_count(self) -> int:
        self._record("read_v1_market_count")
        return self.v1_market_count

    async def read_v1_total_winnings(self, wallet: str) -> int:
        self._record("read_v1_total_winnings", wallet)
        return self.v1_total_winnings.get(wallet.lower(), 0)

    async def read_vote_history_count(self, wallet: str) -> int:
        self._record("read_vote_history_count", wallet)
        return len(self.votes.get(wallet.lower(), []))

    async def read_vote_history(self, wallet: str, start: int, count: int) -> list[Vote]:
        self._record("read_vote_history", wallet, start, count)
        return list(self.votes.get(wallet.lower(), [])[start : start + count])

    async def read_v1_market_info_batch(self, market_ids: Sequence[int]) -> list[V1MarketOutcome]:
        self._record("read_v1_market_info_batch", tuple(market_ids))
        return [
            self.v1_outcomes.get(market_id, V1MarketOutcome(market_id, 0, False))
            for market_id in market_ids
        ]


class FakeIdentityLookup:
    def __init__(
        self,
        identities: dict[str, Identity] | None = None,
        *,
        failing_addresses: set[str] | None = None,
    ) -> None:
        self.identities = {key.lower(): value for key, value in (identities or {}).items()}
        self.failing_addresses = {address.lower() for address in failing_addresses or set()}
        self.requests: list[list[str]] = []

    async def lookup_identities_by_address(self, addresses: Sequence[str]) -> dict[str, Identity]:
        from payouts.core.errors import TransientRemoteError

        self.requests.append(list(addresses))
        if self.failing_addresses.intersection(address.lower() for address in addresses):
            raise TransientRemoteError("identity service unavailable")
        return {
            address.lower(): self.identities[address.lower()]
            for address in addresses
            if address.lower() in self.identities
        }


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def caller(sleeps) -> ResilientCaller:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return ResilientCaller(
        max_attempts=3, base_delay=0.0, rate_limit_floor=0.0, jitter=0.0, sleep=fake_sleep
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        _env_file=None,
        trade_history_max_index=10,
        fallback_scan_max_markets=20,
        v1_leaderboard_page_size=2,
        v2_participant_batch_size=3,
        v2_participant_max_index=50,
        identity_batch_size=2,
        neynar_api_key="test-key",
        remote_retry_base_delay_seconds=0.0,
        rate_limit_min_delay_seconds=0.0,
        retry_jitter_seconds=0.0,
    )
    monkeypatch.setattr("payouts.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("payouts.core.config.settings", settings)
    return settings
