"""Minimal ABIs for the contract functions the service reads or dry-runs."""

from __future__ import annotations


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": arg, "type": kind} for arg, kind in inputs],
        "outputs": outputs,
        "stateMutability": mutability,
    }


def _out(*fields):
    return [{"name": name, "type": kind} for name, kind in fields]


def _error(name):
    return {"type": "error", "name": name, "inputs": []}


V2_ERROR_NAMES = (
    "AlreadyClaimed",
    "NoWinningShares",
    "MarketNotReady",
    "MarketNotResolved",
    "MarketDisputed",
    "MarketInvalidated",
)

V2_MARKET_ABI = [
    _fn("marketCount", [], _out(("", "uint256"))),
    _fn("PAYOUT_PER_SHARE", [], _out(("", "uint256"))),
    _fn(
        "getMarketBasicInfo",
        [("_marketId", "uint256")],
        _out(
            ("question", "string"),
            ("description", "string"),
            ("endTime", "uint256"),
            ("category", "uint8"),
            ("optionCount", "uint256"),
            ("resolved", "bool"),
            ("marketType", "uint8"),
            ("invalidated", "bool"),
            ("totalVolume", "uint256"),
        ),
    ),
    _fn(
        "getMarketExtendedMeta",
        [("_marketId", "uint256")],
        _out(
            ("winningOptionId", "uint256"),
            ("disputed", "bool"),
            ("validated", "bool"),
            ("creator", "address"),
            ("earlyResolutionAllowed", "bool"),
        ),
    ),
    _fn(
        "getMarketOptionUserShares",
        [("_marketId", "uint256"), ("_optionId", "uint256"), ("_user", "address")],
        _out(("", "uint256")),
    ),
    _fn(
        "userTradeHistory",
        [("", "address"), ("", "uint256")],
        _out(
            ("marketId", "uint256"),
            ("optionId", "uint256"),
            ("isBuy", "bool"),
            ("price", "uint256"),
            ("quantity", "uint256"),
            ("timestamp", "uint256"),
        ),
    ),
    _fn("allParticipants", [("", "uint256")], _out(("", "address"))),
    _fn(
        "userPortfolios",
        [("", "address")],
        _out(
            ("totalInvested", "uint256"),
            ("totalWinnings", "uint256"),
            ("unrealizedPnL", "int256"),
            ("realizedPnL", "int256"),
            ("tradeCount", "uint256"),
        ),
    ),
    _fn("claimWinnings", [("_marketId", "uint256")], [], mutability="nonpayable"),
    *[_error(name) for name in V2_ERROR_NAMES],
]

V1_MARKET_ABI = [
    _fn("getMarketCount", [], _out(("", "uint256"))),
    _fn(
        "getLeaderboard",
        [("start", "uint256"), ("count", "uint256")],
        [
            {
                "name": "",
                "type": "tuple[]",
                "components": _out(
                    ("user", "address"),
                    ("totalWinnings", "uint256"),
                    ("voteCount", "uint256"),
                ),
            }
        ],
    ),
    _fn("totalWinnings", [("", "address")], _out(("", "uint256"))),
    _fn("getVoteHistoryCount", [("_user", "address")], _out(("", "uint256"))),
    _fn(
        "getVoteHistory",
        [("_user", "address"), ("_start", "uint256"), ("_count", "uint256")],
        [
            {
                "name": "",
                "type": "tuple[]",
                "components": _out(
                    ("marketId", "uint256"),
                    ("isOptionA", "bool"),
                    ("amount", "uint256"),
                    ("timestamp", "uint256"),
                ),
            }
        ],
    ),
    _fn(
        "getMarketInfoBatch",
        [("_marketIds", "uint256[]")],
        _out(
            ("questions", "string[]"),
            ("optionAs", "string[]"),
            ("optionBs", "string[]"),
            ("endTimes", "uint256[]"),
            ("outcomes", "uint8[]"),
            ("totalOptionASharesArray", "uint256[]"),
            ("totalOptionBSharesArray", "uint256[]"),
            ("resolvedArray", "bool[]"),
        ),
    ),
]

ERC20_ABI = [
    _fn("decimals", [], _out(("", "uint8"))),
]

__all__ = ["ERC20_ABI", "V1_MARKET_ABI", "V2_ERROR_NAMES", "V2_MARKET_ABI"]
