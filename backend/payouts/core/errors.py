"""Failure taxonomy shared by the ledger client, identity client and services."""

from __future__ import annotations


class RemoteFault(Exception):
    """Base class for failures reported by a remote collaborator."""


class TransientRemoteError(RemoteFault):
    """Timeout, connection reset or 5xx-equivalent; safe to retry."""


class RateLimitedError(TransientRemoteError):
    """The remote asked us to slow down (HTTP 429 or provider equivalent)."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LedgerRevert(RemoteFault):
    """A contract call reverted. Deterministic for a given ledger state, never retried."""

    def __init__(self, reason: str, *, data: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.data = data


class IdentityServiceError(RemoteFault):
    """Non-retryable rejection from the identity lookup service."""


class ConfigurationError(RuntimeError):
    """A required address or credential is missing; the request cannot proceed."""


__all__ = [
    "ConfigurationError",
    "IdentityServiceError",
    "LedgerRevert",
    "RateLimitedError",
    "RemoteFault",
    "TransientRemoteError",
]
