"""Retry with exponential backoff for single remote reads."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from payouts.core.config import Settings, settings as default_settings
from payouts.core.errors import (
    ConfigurationError,
    IdentityServiceError,
    LedgerRevert,
    RateLimitedError,
)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

_NEVER_RETRY = (LedgerRevert, IdentityServiceError, ConfigurationError)


def _should_retry_exception(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not isinstance(exc, _NEVER_RETRY)


def _summary(exc: BaseException) -> str:
    message = str(exc)
    return f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__


class ResilientCaller:
    """Invoke one remote operation, retrying transient failures.

    Attempt ``n`` (0-based) that fails is followed by a sleep of
    ``base_delay * 2**n`` plus up to ``jitter`` seconds. Rate-limited failures
    sleep at least ``rate_limit_floor`` (or the server's ``retry_after`` when
    larger). Reverts, configuration faults and identity-service rejections are
    raised immediately. When attempts run out the last error is raised.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        rate_limit_floor: float = 10.0,
        jitter: float = 0.5,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.rate_limit_floor = rate_limit_floor
        self.jitter = jitter
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, config: Settings | None = None, **overrides) -> "ResilientCaller":
        config = config or default_settings
        options = {
            "max_attempts": config.remote_retry_attempts,
            "base_delay": config.remote_retry_base_delay_seconds,
            "rate_limit_floor": config.rate_limit_min_delay_seconds,
            "jitter": config.retry_jitter_seconds,
        }
        options.update(overrides)
        return cls(**options)

    def delay_for(
        self, attempt: int, exc: BaseException, *, base_delay: float | None = None
    ) -> float:
        base = self.base_delay if base_delay is None else base_delay
        delay = base * (2**attempt)
        if self.jitter:
            delay += self._rng.uniform(0.0, self.jitter)
        if isinstance(exc, RateLimitedError):
            floor = self.rate_limit_floor
            if exc.retry_after is not None:
                floor = max(floor, exc.retry_after)
            delay = max(delay, floor)
        return delay

    async def call(
        self,
        op: Callable[[], Awaitable[T]],
        *,
        label: str = "remote call",
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        attempts = max_attempts or self.max_attempts
        for attempt in range(attempts):
            try:
                return await op()
            except Exception as exc:  # noqa: BLE001 - classified below
                retryable = _should_retry_exception(exc) and attempt + 1 < attempts
                if not retryable:
                    raise
                delay = self.delay_for(attempt, exc, base_delay=base_delay)
                if isinstance(exc, RateLimitedError):
                    logger.warning(
                        "Rate limit hit on {} attempt={}/{}; waiting {:.1f}s",
                        label,
                        attempt + 1,
                        attempts,
                        delay,
                    )
                else:
                    logger.warning(
                        "{} failed attempt={}/{} error={}; retrying in {:.1f}s",
                        label,
                        attempt + 1,
                        attempts,
                        _summary(exc),
                        delay,
                    )
                await self._sleep(delay)
        raise RuntimeError(f"{label} exhausted retries without raising")  # pragma: no cover
