import argparse
import asyncio
import json

from loguru import logger

from payouts.core.config import get_settings
from payouts.schemas import LeaderboardRow
from payouts.services.registry import build_services


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the merged V1+V2 leaderboard once")
    parser.add_argument("--top", type=int, default=None, help="Number of rows to keep")
    return parser.parse_args()


async def _run(top: int | None) -> list[LeaderboardRow]:
    settings = get_settings()
    if top is not None:
        settings = settings.model_copy(update={"leaderboard_top_n": top})
    services = build_services(settings)
    try:
        entries = await services.leaderboard.get_leaderboard()
    finally:
        await services.close()
    logger.info("Leaderboard has {} rows", len(entries))
    return [LeaderboardRow.from_domain(entry) for entry in entries]


def main() -> None:
    args = parse_args()
    rows = asyncio.run(_run(args.top))
    print(json.dumps([row.model_dump(mode="json") for row in rows], indent=2))


if __name__ == "__main__":
    main()
