"""Domain models for market participation, claims, and leaderboards."""

from .models import (
    ClaimEligibility,
    ContractGeneration,
    Identity,
    LeaderboardEntry,
    MarketCounts,
    MarketHandle,
    MarketStatus,
    ParticipationRecord,
    Portfolio,
    PositionSnapshot,
    ResolutionMeta,
    TradeRecord,
    V1MarketOutcome,
    Vote,
    WalletStats,
    WinningsReport,
    WinningsTotals,
    short_address,
    to_display_amount,
)

__all__ = [
    "ClaimEligibility",
    "ContractGeneration",
    "Identity",
    "LeaderboardEntry",
    "MarketCounts",
    "MarketHandle",
    "MarketStatus",
    "ParticipationRecord",
    "Portfolio",
    "PositionSnapshot",
    "ResolutionMeta",
    "TradeRecord",
    "V1MarketOutcome",
    "Vote",
    "WalletStats",
    "WinningsReport",
    "WinningsTotals",
    "short_address",
    "to_display_amount",
]
