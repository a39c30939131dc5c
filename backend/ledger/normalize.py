from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from payouts.domain import (
    MarketStatus,
    Portfolio,
    ResolutionMeta,
    TradeRecord,
    V1MarketOutcome,
    Vote,
    WinningsTotals,
)

ZERO_ADDRESS = "0x" + "0" * 40


def to_int(value: Any, default: int = 0) -> int:
    """Coerce ABI return values (ints, numeric strings, bools) to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value, 0)
        except ValueError:
            return default
    return default


def _field(raw: Any, name: str, index: int) -> Any:
    """Read a struct member by name or by tuple position."""
    if isinstance(raw, Mapping):
        return raw.get(name)
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return raw[index] if index < len(raw) else None
    return getattr(raw, name, None)


def is_absent_address(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return True
    return value.lower() == ZERO_ADDRESS


def normalize_trade(raw: Any) -> TradeRecord | None:
    if raw is None:
        return None
    market_id = _field(raw, "marketId", 0)
    if market_id is None:
        return None
    return TradeRecord(
        market_id=to_int(market_id),
        option_id=to_int(_field(raw, "optionId", 1)),
        is_buy=bool(_field(raw, "isBuy", 2)),
        price=to_int(_field(raw, "price", 3)),
        quantity=to_int(_field(raw, "quantity", 4)),
        timestamp=to_int(_field(raw, "timestamp", 5)),
    )


def normalize_market_status(market_id: int, raw: Any) -> MarketStatus:
    # getMarketBasicInfo: question, description, endTime, category, optionCount,
    # resolved, marketType, invalidated, totalVolume
    return MarketStatus(
        market_id=market_id,
        option_count=to_int(_field(raw, "optionCount", 4)),
        resolved=bool(_field(raw, "resolved", 5)),
        invalidated=bool(_field(raw, "invalidated", 7)),
    )


def normalize_resolution_meta(market_id: int, raw: Any) -> ResolutionMeta:
    return ResolutionMeta(
        market_id=market_id,
        winning_option=to_int(_field(raw, "winningOptionId", 0)),
        disputed=bool(_field(raw, "disputed", 1)),
    )


def normalize_portfolio(wallet: str, raw: Any) -> Portfolio:
    return Portfolio(
        wallet=wallet,
        total_invested=to_int(_field(raw, "totalInvested", 0)),
        total_winnings=to_int(_field(raw, "totalWinnings", 1)),
        unrealized_pnl=to_int(_field(raw, "unrealizedPnL", 2)),
        realized_pnl=to_int(_field(raw, "realizedPnL", 3)),
        trade_count=to_int(_field(raw, "tradeCount", 4)),
    )


def normalize_leaderboard_row(raw: Any) -> WinningsTotals | None:
    user = _field(raw, "user", 0)
    if is_absent_address(user):
        return None
    return WinningsTotals(
        wallet=str(user),
        total_winnings=to_int(_field(raw, "totalWinnings", 1)),
        trade_count=to_int(_field(raw, "voteCount", 2)),
    )


def normalize_vote(raw: Any) -> Vote:
    return Vote(
        market_id=to_int(_field(raw, "marketId", 0)),
        is_option_a=bool(_field(raw, "isOptionA", 1)),
        amount=to_int(_field(raw, "amount", 2)),
        timestamp=to_int(_field(raw, "timestamp", 3)),
    )


def normalize_market_info_batch(market_ids: Sequence[int], raw: Any) -> list[V1MarketOutcome]:
    """Zip the column-oriented getMarketInfoBatch result back into rows."""

    outcomes = _field(raw, "outcomes", 4) or []
    resolved = _field(raw, "resolvedArray", 7) or []
    rows: list[V1MarketOutcome] = []
    for index, market_id in enumerate(market_ids):
        if index >= len(outcomes) or index >= len(resolved):
            break
        rows.append(
            V1MarketOutcome(
                market_id=market_id,
                outcome=to_int(outcomes[index]),
                resolved=bool(resolved[index]),
            )
        )
    return rows
