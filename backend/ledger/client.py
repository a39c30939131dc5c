from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import aiohttp
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from payouts.core.config import settings
from payouts.core.errors import (
    ConfigurationError,
    LedgerRevert,
    RateLimitedError,
    TransientRemoteError,
)
from payouts.domain import (
    MarketStatus,
    Portfolio,
    ResolutionMeta,
    TradeRecord,
    V1MarketOutcome,
    Vote,
    WinningsTotals,
)

from .abi import ERC20_ABI, V1_MARKET_ABI, V2_ERROR_NAMES, V2_MARKET_ABI
from .normalize import (
    is_absent_address,
    normalize_leaderboard_row,
    normalize_market_info_batch,
    normalize_market_status,
    normalize_portfolio,
    normalize_resolution_meta,
    normalize_trade,
    normalize_vote,
    to_int,
)

_RATE_LIMIT_HINTS = ("rate limit", "too many requests", "429", "exceeded")


def _selector(error_name: str) -> str:
    return "0x" + bytes(Web3.keccak(text=f"{error_name}()")[:4]).hex()


ERROR_SELECTORS: dict[str, str] = {_selector(name): name for name in V2_ERROR_NAMES}


def checksum_wallet(wallet: str) -> str:
    if not Web3.is_address(wallet):
        raise ValueError(f"'{wallet}' is not a valid wallet address")
    return Web3.to_checksum_address(wallet)


def _revert_from(exc: ContractLogicError) -> LedgerRevert:
    data = exc.data if isinstance(exc.data, str) else None
    if data:
        name = ERROR_SELECTORS.get(data[:10].lower())
        if name:
            return LedgerRevert(name, data=data)
    message = getattr(exc, "message", None) or str(exc)
    return LedgerRevert(str(message), data=data)


def _looks_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(hint in lowered for hint in _RATE_LIMIT_HINTS)


class LedgerReader(Protocol):
    """Point-in-time reads against both market contract generations."""

    async def read_market_count(self) -> int: ...

    async def read_market_status(self, market_id: int) -> MarketStatus: ...

    async def read_resolution_meta(self, market_id: int) -> ResolutionMeta: ...

    async def read_option_share_balance(self, market_id: int, option: int, wallet: str) -> int: ...

    async def read_trade_history_entry(self, wallet: str, index: int) -> TradeRecord | None: ...

    async def read_leaderboard_page(self, offset: int, size: int) -> list[WinningsTotals]: ...

    async def read_participant_at_index(self, index: int) -> str | None: ...

    async def read_portfolio(self, wallet: str) -> Portfolio: ...

    async def read_payout_per_share(self) -> int: ...

    async def read_token_decimals(self) -> int: ...

    async def simulate_claim(self, market_id: int, wallet: str) -> None: ...

    async def read_v1_market_count(self) -> int: ...

    async def read_v1_total_winnings(self, wallet: str) -> int: ...

    async def read_vote_history_count(self, wallet: str) -> int: ...

    async def read_vote_history(self, wallet: str, start: int, count: int) -> list[Vote]: ...

    async def read_v1_market_info_batch(self, market_ids: Sequence[int]) -> list[V1MarketOutcome]: ...


class Web3LedgerClient:
    """LedgerReader over JSON-RPC ``eth_call``.

    Every web3/aiohttp failure is translated into the ``payouts.core.errors``
    taxonomy here. Provider-level retries are disabled; retrying is the
    caller's job.
    """

    def __init__(
        self,
        *,
        rpc_url: str | None = None,
        v1_address: str | None = None,
        v2_address: str | None = None,
        token_address: str | None = None,
        timeout: float | None = None,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        self.rpc_url = rpc_url or str(settings.rpc_url)
        self.v1_address = v1_address if v1_address is not None else settings.v1_contract_address
        self.v2_address = v2_address if v2_address is not None else settings.v2_contract_address
        self.token_address = (
            token_address if token_address is not None else settings.token_address
        )
        self.timeout = timeout or settings.rpc_timeout_seconds
        self.w3 = web3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout)},
                exception_retry_configuration=None,
            )
        )
        self._contracts: dict[str, Any] = {}

    def _contract(self, label: str, address: str | None, abi: list[dict[str, Any]]):
        if not address:
            raise ConfigurationError(f"{label.upper()} address is not configured")
        contract = self._contracts.get(label)
        if contract is None:
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
            self._contracts[label] = contract
        return contract

    @property
    def v1(self):
        return self._contract("v1_contract", self.v1_address, V1_MARKET_ABI)

    @property
    def v2(self):
        return self._contract("v2_contract", self.v2_address, V2_MARKET_ABI)

    @property
    def token(self):
        return self._contract("token", self.token_address, ERC20_ABI)

    async def _call(self, label: str, function: Any, transaction: dict[str, Any] | None = None) -> Any:
        try:
            if transaction is None:
                return await function.call()
            return await function.call(transaction)
        except ContractLogicError as exc:
            raise _revert_from(exc) from exc
        except BadFunctionCallOutput as exc:
            raise LedgerRevert(f"{label} returned no data", data=None) from exc
        except aiohttp.ClientResponseError as exc:
            if exc.status == 429:
                raise RateLimitedError(f"{label}: RPC rate limited") from exc
            raise TransientRemoteError(f"{label}: RPC HTTP {exc.status}") from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TransientRemoteError(f"{label}: {exc.__class__.__name__} {exc}") from exc
        except Web3Exception as exc:
            message = str(exc)
            if _looks_rate_limited(message):
                raise RateLimitedError(f"{label}: {message}") from exc
            raise TransientRemoteError(f"{label}: {message}") from exc

    async def read_market_count(self) -> int:
        return to_int(await self._call("marketCount", self.v2.functions.marketCount()))

    async def read_market_status(self, market_id: int) -> MarketStatus:
        raw = await self._call(
            "getMarketBasicInfo", self.v2.functions.getMarketBasicInfo(market_id)
        )
        return normalize_market_status(market_id, raw)

    async def read_resolution_meta(self, market_id: int) -> ResolutionMeta:
        raw = await self._call(
            "getMarketExtendedMeta", self.v2.functions.getMarketExtendedMeta(market_id)
        )
        return normalize_resolution_meta(market_id, raw)

    async def read_option_share_balance(self, market_id: int, option: int, wallet: str) -> int:
        raw = await self._call(
            "getMarketOptionUserShares",
            self.v2.functions.getMarketOptionUserShares(
                market_id, option, checksum_wallet(wallet)
            ),
        )
        return to_int(raw)

    async def read_trade_history_entry(self, wallet: str, index: int) -> TradeRecord | None:
        raw = await self._call(
            "userTradeHistory",
            self.v2.functions.userTradeHistory(checksum_wallet(wallet), index),
        )
        return normalize_trade(raw)

    async def read_leaderboard_page(self, offset: int, size: int) -> list[WinningsTotals]:
        raw = await self._call("getLeaderboard", self.v1.functions.getLeaderboard(offset, size))
        rows: list[WinningsTotals] = []
        for item in raw or []:
            row = normalize_leaderboard_row(item)
            if row is not None:
                rows.append(row)
        return rows

    async def read_participant_at_index(self, index: int) -> str | None:
        raw = await self._call("allParticipants", self.v2.functions.allParticipants(index))
        if is_absent_address(raw):
            return None
        return str(raw)

    async def read_portfolio(self, wallet: str) -> Portfolio:
        raw = await self._call(
            "userPortfolios", self.v2.functions.userPortfolios(checksum_wallet(wallet))
        )
        return normalize_portfolio(wallet, raw)

    async def read_payout_per_share(self) -> int:
        return to_int(await self._call("PAYOUT_PER_SHARE", self.v2.functions.PAYOUT_PER_SHARE()))

    async def read_token_decimals(self) -> int:
        return to_int(await self._call("decimals", self.token.functions.decimals()))

    async def simulate_claim(self, market_id: int, wallet: str) -> None:
        """Dry-run ``claimWinnings`` from ``wallet``; raises LedgerRevert when it would fail."""

        await self._call(
            "claimWinnings",
            self.v2.functions.claimWinnings(market_id),
            {"from": checksum_wallet(wallet)},
        )

    async def read_v1_market_count(self) -> int:
        return to_int(await self._call("getMarketCount", self.v1.functions.getMarketCount()))

    async def read_v1_total_winnings(self, wallet: str) -> int:
        return to_int(
            await self._call("totalWinnings", self.v1.functions.totalWinnings(checksum_wallet(wallet)))
        )

    async def read_vote_history_count(self, wallet: str) -> int:
        return to_int(
            await self._call(
                "getVoteHistoryCount",
                self.v1.functions.getVoteHistoryCount(checksum_wallet(wallet)),
            )
        )

    async def read_vote_history(self, wallet: str, start: int, count: int) -> list[Vote]:
        raw = await self._call(
            "getVoteHistory",
            self.v1.functions.getVoteHistory(checksum_wallet(wallet), start, count),
        )
        return [normalize_vote(item) for item in raw or []]

    async def read_v1_market_info_batch(self, market_ids: Sequence[int]) -> list[V1MarketOutcome]:
        ids = list(market_ids)
        if not ids:
            return []
        raw = await self._call(
            "getMarketInfoBatch", self.v1.functions.getMarketInfoBatch(ids)
        )
        return normalize_market_info_batch(ids, raw)

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is None:
            return
        try:
            await disconnect()
        except Web3Exception as exc:
            logger.warning("Failed to close RPC session cleanly: {}", exc)

    async def __aenter__(self) -> "Web3LedgerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
