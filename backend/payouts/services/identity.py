"""Wallet address -> social identity lookups (Neynar), batched and cached."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from functools import partial
from typing import Any, Protocol

import httpx
from loguru import logger

from payouts.core.config import settings
from payouts.core.errors import (
    ConfigurationError,
    IdentityServiceError,
    RateLimitedError,
    RemoteFault,
    TransientRemoteError,
)
from payouts.domain import Identity

from .cache import ResultCache
from .retry import ResilientCaller

BULK_BY_ADDRESS_PATH = "/v2/farcaster/user/bulk-by-address"
ADDRESS_TYPES = "custody_address,verified_address"


class IdentityLookup(Protocol):
    async def lookup_identities_by_address(self, addresses: Sequence[str]) -> dict[str, Identity]:
        """Return identities keyed by lower-case address; unknown addresses are omitted."""


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _identity_from_user(user: Any) -> Identity | None:
    if not isinstance(user, dict):
        return None
    username = user.get("username")
    fid = user.get("fid")
    if not username or fid is None:
        return None
    return Identity(
        display_name=str(username),
        numeric_id=str(fid),
        avatar_url=user.get("pfp_url") or None,
    )


class NeynarIdentityClient:
    """Thin async wrapper around Neynar's bulk-by-address endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.neynar_api_key
        self.base_url = base_url or str(settings.neynar_base_url)
        self.timeout = timeout or settings.identity_timeout_seconds
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("NEYNAR_API_KEY is not set")

    async def lookup_identities_by_address(self, addresses: Sequence[str]) -> dict[str, Identity]:
        if not addresses:
            return {}
        self.ensure_configured()
        params = {"addresses": ",".join(addresses), "address_types": ADDRESS_TYPES}
        try:
            response = await self.client.get(
                BULK_BY_ADDRESS_PATH,
                params=params,
                headers={"x-api-key": str(self.api_key), "accept": "application/json"},
            )
        except httpx.TimeoutException as exc:
            raise TransientRemoteError(f"Neynar request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientRemoteError(f"Neynar transport error: {exc}") from exc

        if response.status_code == 404:
            # Neynar answers 404 when none of the addresses has a user.
            return {}
        if response.status_code == 429:
            raise RateLimitedError(
                "Neynar rate limit exceeded",
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )
        if response.status_code >= 500:
            raise TransientRemoteError(f"Neynar HTTP {response.status_code}")
        if response.status_code >= 400:
            raise IdentityServiceError(
                f"Neynar rejected lookup HTTP {response.status_code}: {response.text[:200]}"
            )

        payload = response.json()
        identities: dict[str, Identity] = {}
        if not isinstance(payload, dict):
            return identities
        for address, users in payload.items():
            if not isinstance(users, list) or not users:
                continue
            identity = _identity_from_user(users[0])
            if identity is not None:
                identities[address.lower()] = identity
        return identities

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "NeynarIdentityClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class IdentityEnricher:
    """Resolve identities for many wallets without ever blocking on them.

    Lookups go out in fixed-size chunks, a few at a time, each chunk retried by
    the caller. Hits are cached per address for a long TTL in their own cache;
    misses are not cached. A chunk that still fails leaves its wallets as
    ``None``.
    """

    def __init__(
        self,
        lookup: IdentityLookup,
        caller: ResilientCaller,
        cache: ResultCache,
        *,
        batch_size: int = 25,
        concurrency: int = 2,
        ttl: float = 86_400.0,
        key_prefix: str = "neynar_users",
    ) -> None:
        self._lookup = lookup
        self._caller = caller
        self._cache = cache
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.ttl = ttl
        self.key_prefix = key_prefix

    def _key(self, wallet: str) -> str:
        return f"{self.key_prefix}:{wallet}"

    async def enrich(self, wallets: Sequence[str]) -> dict[str, Identity | None]:
        ordered = list(dict.fromkeys(wallet.lower() for wallet in wallets))
        identities: dict[str, Identity | None] = {}
        missing: list[str] = []
        for wallet in ordered:
            cached = self._cache.get(self._key(wallet))
            if cached is not None:
                identities[wallet] = cached
            else:
                missing.append(wallet)

        if missing:
            logger.info(
                "Requesting identities for {} addresses ({} cached)",
                len(missing),
                len(ordered) - len(missing),
            )
            resolved = await self._fetch(missing)
            logger.info("Identity service matched {} of {} addresses", len(resolved), len(missing))
            for wallet in missing:
                identities[wallet] = resolved.get(wallet)
        return identities

    async def _fetch(self, wallets: list[str]) -> dict[str, Identity]:
        chunks = [
            wallets[start : start + self.batch_size]
            for start in range(0, len(wallets), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.concurrency)
        resolved: dict[str, Identity] = {}

        async def fetch_chunk(number: int, chunk: list[str]) -> None:
            async with semaphore:
                try:
                    found = await self._caller.call(
                        partial(self._lookup.lookup_identities_by_address, chunk),
                        label=f"identity batch {number}",
                    )
                except RemoteFault as exc:
                    logger.error("Failed to fetch identity batch {}: {}", number, exc)
                    return
            for address, identity in found.items():
                key = address.lower()
                self._cache.set(self._key(key), identity, self.ttl)
                resolved[key] = identity

        await asyncio.gather(
            *(fetch_chunk(number, chunk) for number, chunk in enumerate(chunks, start=1))
        )
        return resolved
