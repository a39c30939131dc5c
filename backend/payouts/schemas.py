from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator
from web3 import Web3

from payouts.domain import (
    ClaimEligibility,
    LeaderboardEntry,
    MarketCounts,
    WalletStats,
    WinningsReport,
    to_display_amount,
)


class WalletRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_address: str = Field(validation_alias=AliasChoices("user_address", "userAddress"))

    @field_validator("user_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        candidate = value.strip()
        if not Web3.is_address(candidate):
            raise ValueError("user_address must be a 20-byte hex address")
        return Web3.to_checksum_address(candidate)


class ClaimableMarket(BaseModel):
    market_id: int
    generation: str
    amount: int
    claimable: bool

    @field_serializer("amount")
    def _amount_as_string(self, value: int) -> str:
        return str(value)

    @classmethod
    def from_domain(cls, item: ClaimEligibility) -> "ClaimableMarket":
        return cls(
            market_id=item.market.market_id,
            generation=item.market.generation.value,
            amount=item.amount,
            claimable=item.claimable,
        )


class ClaimableWinnings(BaseModel):
    participated_markets: list[int]
    winnings: list[ClaimableMarket]
    total_markets: int
    claimable_markets: int
    partial: bool = False

    @classmethod
    def from_report(cls, report: WinningsReport) -> "ClaimableWinnings":
        return cls(
            participated_markets=[market.market_id for market in report.participated],
            winnings=[ClaimableMarket.from_domain(item) for item in report.winnings],
            total_markets=len(report.participated),
            claimable_markets=len(report.winnings),
            partial=report.partial,
        )


class LeaderboardRow(BaseModel):
    address: str
    username: str
    fid: str | None = None
    pfp_url: str | None = None
    winnings: float
    trade_count: int

    @classmethod
    def from_domain(cls, entry: LeaderboardEntry) -> "LeaderboardRow":
        identity = entry.identity
        return cls(
            address=entry.wallet.lower(),
            username=entry.display_name,
            fid=identity.numeric_id if identity else None,
            pfp_url=identity.avatar_url if identity else None,
            winnings=entry.total_winnings,
            trade_count=entry.trade_count,
        )


class WalletStatsResponse(BaseModel):
    address: str
    total_votes: int
    wins: int
    losses: int
    win_rate: float
    total_invested: int
    net_winnings: int
    total_invested_display: float
    net_winnings_display: float

    @field_serializer("total_invested", "net_winnings")
    def _raw_as_string(self, value: int) -> str:
        return str(value)

    @classmethod
    def from_domain(cls, stats: WalletStats) -> "WalletStatsResponse":
        return cls(
            address=stats.wallet,
            total_votes=stats.total_votes,
            wins=stats.wins,
            losses=stats.losses,
            win_rate=round(stats.win_rate, 2),
            total_invested=stats.total_invested,
            net_winnings=stats.net_winnings,
            total_invested_display=to_display_amount(stats.total_invested, stats.token_decimals),
            net_winnings_display=to_display_amount(stats.net_winnings, stats.token_decimals),
        )


class MarketCountsResponse(BaseModel):
    v1_count: int
    v2_count: int
    total: int

    @classmethod
    def from_domain(cls, counts: MarketCounts) -> "MarketCountsResponse":
        return cls(v1_count=counts.v1_count, v2_count=counts.v2_count, total=counts.total)
