"""Typed domain representations shared by the ledger client, services, and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class ContractGeneration(str, Enum):
    """The two independently deployed market contracts."""

    V1 = "v1"
    V2 = "v2"


@dataclass(frozen=True, slots=True, order=True)
class MarketHandle:
    """Identifier assigned by one contract generation. Never reused."""

    generation: ContractGeneration
    market_id: int


@dataclass(frozen=True, slots=True)
class ParticipationRecord:
    """The wallet held nonzero shares of some option in the market at some point."""

    wallet: str
    market: MarketHandle
    source: str


@dataclass(frozen=True, slots=True)
class PositionSnapshot:
    """Point-in-time share balance; the ledger may have moved on since."""

    market: MarketHandle
    option_index: int
    wallet: str
    share_amount: int


@dataclass(frozen=True, slots=True)
class ClaimEligibility:
    """Claimability derived at the ledger head it was computed against."""

    market: MarketHandle
    wallet: str
    amount: int
    claimable: bool


@dataclass(frozen=True, slots=True)
class TradeRecord:
    market_id: int
    option_id: int
    is_buy: bool
    price: int
    quantity: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class MarketStatus:
    market_id: int
    option_count: int
    resolved: bool
    invalidated: bool


@dataclass(frozen=True, slots=True)
class ResolutionMeta:
    market_id: int
    winning_option: int
    disputed: bool


@dataclass(frozen=True, slots=True)
class Portfolio:
    wallet: str
    total_invested: int
    total_winnings: int
    unrealized_pnl: int
    realized_pnl: int
    trade_count: int


@dataclass(frozen=True, slots=True)
class WinningsTotals:
    """Per-wallet raw totals from one generation, combined field by field."""

    wallet: str
    total_winnings: int
    trade_count: int

    def combine(self, other: WinningsTotals) -> WinningsTotals:
        return WinningsTotals(
            wallet=self.wallet,
            total_winnings=self.total_winnings + other.total_winnings,
            trade_count=self.trade_count + other.trade_count,
        )


@dataclass(frozen=True, slots=True)
class Identity:
    display_name: str
    numeric_id: str
    avatar_url: str | None = None


def short_address(wallet: str) -> str:
    return f"{wallet[:6]}...{wallet[-4:]}"


def to_display_amount(raw: int, decimals: int) -> float:
    """Fixed-point token amount to a display number."""
    return float(Decimal(raw).scaleb(-decimals))


@dataclass(slots=True)
class LeaderboardEntry:
    """Display-scale aggregate across both generations for one wallet."""

    wallet: str
    total_winnings: float
    trade_count: int
    identity: Identity | None = None

    @property
    def display_name(self) -> str:
        if self.identity and self.identity.display_name:
            return self.identity.display_name
        return short_address(self.wallet)


@dataclass(slots=True)
class WinningsReport:
    wallet: str
    participated: list[MarketHandle] = field(default_factory=list)
    winnings: list[ClaimEligibility] = field(default_factory=list)
    partial: bool = False


@dataclass(frozen=True, slots=True)
class Vote:
    market_id: int
    is_option_a: bool
    amount: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class V1MarketOutcome:
    market_id: int
    outcome: int
    resolved: bool


@dataclass(slots=True)
class WalletStats:
    wallet: str
    total_votes: int
    wins: int
    losses: int
    win_rate: float
    total_invested: int
    net_winnings: int
    token_decimals: int


@dataclass(frozen=True, slots=True)
class MarketCounts:
    v1_count: int
    v2_count: int

    @property
    def total(self) -> int:
        return self.v1_count + self.v2_count
