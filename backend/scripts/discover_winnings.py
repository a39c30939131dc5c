import argparse
import asyncio
import json

from loguru import logger

from payouts.core.config import get_settings
from payouts.schemas import ClaimableWinnings
from payouts.services.registry import build_services


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List markets a wallet can claim winnings from")
    parser.add_argument("wallet", help="Wallet address (0x...)")
    parser.add_argument(
        "--max-index",
        type=int,
        default=None,
        help="Override the trade-history index cap",
    )
    parser.add_argument(
        "--scan-cap",
        type=int,
        default=None,
        help="Override the number of markets inspected by the fallback balance scan",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Wall-clock budget in seconds before partial results are returned",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> ClaimableWinnings:
    overrides = {
        "trade_history_max_index": args.max_index,
        "fallback_scan_max_markets": args.scan_cap,
        "winnings_timeout_seconds": args.timeout,
    }
    settings = get_settings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )
    services = build_services(settings)
    try:
        report = await services.winnings.get_claimable_winnings(args.wallet)
    finally:
        await services.close()
    if report.partial:
        logger.warning("Timed out; report for {} is partial", report.wallet)
    return ClaimableWinnings.from_report(report)


def main() -> None:
    args = parse_args()
    result = asyncio.run(_run(args))
    print(json.dumps(result.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    main()
