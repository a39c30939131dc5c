"""Process-lifetime wiring of the ledger client, caches, and services."""

from __future__ import annotations

from dataclasses import dataclass

from ledger.client import LedgerReader, Web3LedgerClient
from payouts.core.config import Settings

from .cache import ResultCache
from .claims import ClaimabilityVerifier
from .discovery import ParticipationDiscovery
from .identity import IdentityEnricher, IdentityLookup, NeynarIdentityClient
from .leaderboard import LeaderboardAggregator
from .leaderboard_service import LeaderboardService
from .retry import ResilientCaller
from .stats_service import StatsService
from .winnings_service import WinningsService


@dataclass(slots=True)
class ServiceRegistry:
    """Everything a request handler needs, built once per process.

    The caches live as long as the registry; nothing survives a restart.
    """

    ledger: LedgerReader
    identity_client: IdentityLookup
    result_cache: ResultCache
    winnings_cache: ResultCache
    identity_cache: ResultCache
    winnings: WinningsService
    leaderboard: LeaderboardService
    stats: StatsService

    async def close(self) -> None:
        for resource in (self.ledger, self.identity_client):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


def build_services(
    config: Settings,
    *,
    ledger: LedgerReader | None = None,
    identity_client: IdentityLookup | None = None,
    caller: ResilientCaller | None = None,
) -> ServiceRegistry:
    ledger = ledger or Web3LedgerClient(
        rpc_url=str(config.rpc_url),
        v1_address=config.v1_contract_address,
        v2_address=config.v2_contract_address,
        token_address=config.token_address,
        timeout=config.rpc_timeout_seconds,
    )
    identity_client = identity_client or NeynarIdentityClient(
        api_key=config.neynar_api_key,
        base_url=str(config.neynar_base_url),
        timeout=config.identity_timeout_seconds,
    )
    caller = caller or ResilientCaller.from_settings(config)
    result_cache = ResultCache(name="result cache")
    # Keyed by caller-supplied wallets, so expired entries must not pile up.
    winnings_cache = ResultCache(name="winnings cache", retain_stale=False)
    identity_cache = ResultCache(name="identity cache", retain_stale=False)

    discovery = ParticipationDiscovery(
        ledger,
        caller,
        max_trade_index=config.trade_history_max_index,
        max_scan_markets=config.fallback_scan_max_markets,
    )
    verifier = ClaimabilityVerifier(
        ledger,
        caller,
        concurrency=config.claim_verify_concurrency,
        default_payout_per_share=config.default_payout_per_share,
        share_scale=config.share_scale,
    )
    enricher = IdentityEnricher(
        identity_client,
        caller,
        identity_cache,
        batch_size=config.identity_batch_size,
        concurrency=config.identity_concurrency,
        ttl=config.identity_cache_ttl_seconds,
        key_prefix=config.identity_cache_prefix,
    )
    aggregator = LeaderboardAggregator(
        ledger,
        caller,
        enricher,
        v1_page_size=config.v1_leaderboard_page_size,
        v2_batch_size=config.v2_participant_batch_size,
        max_index=config.v2_participant_max_index,
        portfolio_concurrency=config.portfolio_fetch_concurrency,
        top_n=config.leaderboard_top_n,
    )
    preflight = getattr(identity_client, "ensure_configured", None)

    return ServiceRegistry(
        ledger=ledger,
        identity_client=identity_client,
        result_cache=result_cache,
        winnings_cache=winnings_cache,
        identity_cache=identity_cache,
        winnings=WinningsService(
            discovery,
            verifier,
            timeout=config.winnings_timeout_seconds,
            cache=winnings_cache,
            cache_ttl=config.winnings_cache_ttl_seconds,
            cache_version=config.cache_key_version,
        ),
        leaderboard=LeaderboardService(
            aggregator,
            result_cache,
            cache_key=config.leaderboard_cache_key,
            ttl=config.leaderboard_cache_ttl_seconds,
            timeout=config.leaderboard_timeout_seconds,
            preflight=preflight,
        ),
        stats=StatsService(ledger, caller),
    )
