from __future__ import annotations

import random

import pytest

from payouts.core.errors import (
    ConfigurationError,
    IdentityServiceError,
    LedgerRevert,
    RateLimitedError,
    TransientRemoteError,
)
from payouts.services.retry import ResilientCaller


class Flaky:
    """Fails with the queued errors, then returns ``value``."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def _caller(sleeps: list[float], **kwargs) -> ResilientCaller:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    options = {"max_attempts": 3, "base_delay": 2.0, "rate_limit_floor": 10.0, "jitter": 0.0}
    options.update(kwargs)
    return ResilientCaller(sleep=fake_sleep, **options)


@pytest.mark.asyncio
async def test_transient_failures_back_off_exponentially() -> None:
    sleeps: list[float] = []
    op = Flaky([TransientRemoteError("boom"), TransientRemoteError("boom")])

    result = await _caller(sleeps).call(op, label="read")

    assert result == "ok"
    assert op.calls == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_rate_limited_failures_wait_at_least_the_floor() -> None:
    sleeps: list[float] = []
    op = Flaky([RateLimitedError("429"), RateLimitedError("429", retry_after=30)])

    await _caller(sleeps, base_delay=1.0).call(op)

    assert sleeps == [10.0, 30.0]


@pytest.mark.asyncio
async def test_exhausted_retries_surface_last_error() -> None:
    sleeps: list[float] = []
    op = Flaky([TransientRemoteError("first"), TransientRemoteError("second")], value=None)

    with pytest.raises(TransientRemoteError, match="second"):
        await _caller(sleeps, max_attempts=2).call(op)

    assert op.calls == 2
    assert sleeps == [2.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [LedgerRevert("AlreadyClaimed"), ConfigurationError("missing"), IdentityServiceError("401")],
)
async def test_non_retryable_errors_raise_immediately(error: Exception) -> None:
    sleeps: list[float] = []
    op = Flaky([error])

    with pytest.raises(type(error)):
        await _caller(sleeps).call(op)

    assert op.calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_per_call_overrides_do_not_leak() -> None:
    sleeps: list[float] = []
    caller = _caller(sleeps)

    await caller.call(Flaky([TransientRemoteError("x")]), base_delay=0.5)
    await caller.call(Flaky([TransientRemoteError("x")]))

    assert sleeps == [0.5, 2.0]
    assert caller.base_delay == 2.0


def test_jitter_stays_within_bound() -> None:
    caller = ResilientCaller(base_delay=1.0, jitter=0.5, rng=random.Random(7))

    delays = [caller.delay_for(1, TransientRemoteError("x")) for _ in range(50)]

    assert all(2.0 <= delay <= 2.5 for delay in delays)


def test_from_settings_reads_retry_fields(test_settings) -> None:
    caller = ResilientCaller.from_settings(test_settings, max_attempts=5)

    assert caller.max_attempts == 5
    assert caller.base_delay == test_settings.remote_retry_base_delay_seconds
    assert caller.rate_limit_floor == test_settings.rate_limit_min_delay_seconds


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        ResilientCaller(max_attempts=0)
