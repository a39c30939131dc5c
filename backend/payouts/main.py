from __future__ import annotations

from typing import NoReturn

from fastapi import Depends, FastAPI, HTTPException, Request
from loguru import logger

from . import schemas
from .core.config import settings
from .core.errors import ConfigurationError, RemoteFault
from .services.leaderboard_service import LeaderboardService
from .services.registry import ServiceRegistry, build_services
from .services.stats_service import StatsService
from .services.winnings_service import WinningsService

app = FastAPI(title="Payouts API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
async def on_startup() -> None:
    """Build the process-lifetime service registry (clients and caches)."""

    app.state.services = build_services(settings)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    services: ServiceRegistry | None = getattr(app.state, "services", None)
    if services is not None:
        await services.close()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness check consumed by infrastructure monitors."""

    return {"status": "ok"}


def _services(request: Request) -> ServiceRegistry:
    services: ServiceRegistry | None = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(settings)
        request.app.state.services = services
    return services


def _winnings_service(services: ServiceRegistry = Depends(_services)) -> WinningsService:
    return services.winnings


def _leaderboard_service(services: ServiceRegistry = Depends(_services)) -> LeaderboardService:
    return services.leaderboard


def _stats_service(services: ServiceRegistry = Depends(_services)) -> StatsService:
    return services.stats


def _raise_http(exc: Exception, action: str) -> NoReturn:
    """Map service failures onto the two user-visible error kinds."""

    if isinstance(exc, ConfigurationError):
        logger.error("{} failed: configuration error: {}", action, exc)
        raise HTTPException(status_code=500, detail=f"Server configuration error: {exc}") from exc
    logger.error("{} failed: {}", action, exc)
    raise HTTPException(
        status_code=503, detail=f"Failed to {action}. Please try again later."
    ) from exc


@app.post("/winnings/discover", response_model=schemas.ClaimableWinnings, tags=["winnings"])
async def discover_winnings(
    payload: schemas.WalletRequest,
    service: WinningsService = Depends(_winnings_service),
):
    """Discover the wallet's markets and list the positions it can claim now."""

    try:
        report = await service.get_claimable_winnings(payload.user_address)
    except (ConfigurationError, RemoteFault) as exc:
        _raise_http(exc, "auto-discover user markets")
    return schemas.ClaimableWinnings.from_report(report)


@app.get("/leaderboard", response_model=list[schemas.LeaderboardRow], tags=["leaderboard"])
async def get_leaderboard(service: LeaderboardService = Depends(_leaderboard_service)):
    """Top winners across both contract generations, cached."""

    try:
        entries = await service.get_leaderboard()
    except (ConfigurationError, RemoteFault, TimeoutError) as exc:
        _raise_http(exc, "fetch leaderboard")
    return [schemas.LeaderboardRow.from_domain(entry) for entry in entries]


@app.get(
    "/wallets/{address}/stats",
    response_model=schemas.WalletStatsResponse,
    tags=["wallets"],
)
async def wallet_stats(address: str, service: StatsService = Depends(_stats_service)):
    """Win/loss record of a wallet on the legacy contract."""

    try:
        stats = await service.wallet_stats(address)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ConfigurationError, RemoteFault) as exc:
        _raise_http(exc, "fetch user stats")
    return schemas.WalletStatsResponse.from_domain(stats)


@app.get("/markets/count", response_model=schemas.MarketCountsResponse, tags=["markets"])
async def market_counts(service: StatsService = Depends(_stats_service)):
    """Number of markets created on each contract generation."""

    counts = await service.market_counts()
    return schemas.MarketCountsResponse.from_domain(counts)


def run() -> None:
    """Serve the API with uvicorn.

    Caches and identity lookups live in the process, so the server runs a
    single worker.
    """

    import uvicorn

    logger.info("Starting API on {}:{}", settings.api_host, settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, timeout_keep_alive=30)


if __name__ == "__main__":
    run()
