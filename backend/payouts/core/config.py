from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3


def _normalize_address(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{field_name.upper()} must be a hex string")
    candidate = value.strip()
    if not candidate:
        return None
    if not Web3.is_address(candidate):
        raise ValueError(f"{field_name.upper()} must be a 20-byte hex address (0x...)")
    return Web3.to_checksum_address(candidate)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    api_host: str = Field(default="0.0.0.0", description="Interface the API server binds to")
    api_port: int = Field(default=8000, description="Port the API server listens on", gt=0)
    rpc_url: AnyUrl | str = Field(
        default="https://mainnet.base.org",
        description="JSON-RPC endpoint used for contract reads and claim dry runs",
    )
    rpc_timeout_seconds: float = Field(
        default=10.0,
        description="Per-request timeout applied to JSON-RPC calls",
        gt=0,
    )
    v1_contract_address: str | None = Field(
        default=None,
        description="Legacy binary-outcome market contract",
    )
    v2_contract_address: str | None = Field(
        default=None,
        description="Multi-option market contract",
    )
    token_address: str | None = Field(
        default=None,
        description="Payment token (ERC-20) whose decimals scale leaderboard amounts",
    )
    neynar_api_key: str | None = Field(
        default=None,
        description="API key for the Neynar identity lookup service",
    )
    neynar_base_url: AnyUrl | str = Field(
        default="https://api.neynar.com",
        description="Base URL for the Neynar API",
    )
    identity_timeout_seconds: float = Field(default=10.0, gt=0)
    remote_retry_attempts: int = Field(
        default=3,
        description="Total attempts for a single remote read before the last error is surfaced",
        ge=1,
    )
    remote_retry_base_delay_seconds: float = Field(
        default=2.0,
        description="Base delay of the exponential backoff schedule (base * 2**attempt)",
        ge=0,
    )
    rate_limit_min_delay_seconds: float = Field(
        default=10.0,
        description="Minimum delay enforced after a rate-limited response",
        ge=0,
    )
    retry_jitter_seconds: float = Field(
        default=0.5,
        description="Upper bound of the random jitter added to every backoff delay",
        ge=0,
    )
    trade_history_max_index: int = Field(
        default=100,
        description="Highest trade-history index read per wallet",
    )
    fallback_scan_max_markets: int = Field(
        default=300,
        description="Number of markets inspected by the share-balance fallback scan",
    )
    v2_participant_max_index: int = Field(
        default=10_000,
        description="Safety limit on the generation-2 participant index",
    )
    claim_verify_concurrency: int = Field(
        default=4,
        description="Markets verified concurrently for one wallet",
    )
    default_payout_per_share: int = Field(
        default=100 * 10**18,
        description="Payout per winning share used when PAYOUT_PER_SHARE cannot be read",
    )
    share_scale: int = Field(
        default=10**18,
        description="Fixed-point scale of share balances",
    )
    winnings_timeout_seconds: float = Field(
        default=25.0,
        description="Wall-clock budget for one claimable-winnings request",
        gt=0,
    )
    winnings_cache_ttl_seconds: float = Field(
        default=0.0,
        description="Cache claimable-winnings reports per wallet for this long (0 disables)",
        ge=0,
    )
    v1_leaderboard_page_size: int = Field(default=100)
    v2_participant_batch_size: int = Field(default=100)
    portfolio_fetch_concurrency: int = Field(default=10)
    leaderboard_top_n: int = Field(default=10)
    leaderboard_cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    leaderboard_timeout_seconds: float = Field(default=120.0, gt=0)
    cache_key_version: str = Field(
        default="v7",
        description="Suffix appended to cache keys; bump when the cached payload changes shape",
    )
    identity_batch_size: int = Field(default=25)
    identity_concurrency: int = Field(default=2)
    identity_cache_ttl_seconds: float = Field(default=86_400.0, gt=0)

    @field_validator("v1_contract_address", "v2_contract_address", "token_address", mode="before")
    @classmethod
    def _validate_address(cls, value: Any, info) -> str | None:
        return _normalize_address(value, info.field_name)

    @field_validator("neynar_api_key", mode="before")
    @classmethod
    def _blank_key_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "trade_history_max_index",
        "fallback_scan_max_markets",
        "v2_participant_max_index",
        "claim_verify_concurrency",
        "v1_leaderboard_page_size",
        "v2_participant_batch_size",
        "portfolio_fetch_concurrency",
        "leaderboard_top_n",
        "identity_batch_size",
        "identity_concurrency",
        "default_payout_per_share",
        "share_scale",
    )
    @classmethod
    def _require_positive(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name.upper()} must be a positive integer")
        return value

    @field_validator("cache_key_version")
    @classmethod
    def _validate_cache_version(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate:
            raise ValueError("CACHE_KEY_VERSION must not be blank")
        return candidate

    @property
    def leaderboard_cache_key(self) -> str:
        return f"leaderboard_{self.cache_key_version}"

    @property
    def identity_cache_prefix(self) -> str:
        return f"neynar_users_{self.cache_key_version}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
