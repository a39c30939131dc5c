"""Reading index-addressed on-chain sequences that have no length accessor."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from payouts.core.errors import LedgerRevert, RemoteFault

from .retry import ResilientCaller

T = TypeVar("T")


class AbsentEntrySignalsEnd:
    """Termination rule: an absent entry at index ``i`` ends the sequence.

    The contracts revert when a public array getter is read past its end, so a
    revert (or an empty/zero entry) is an expected boundary, not a fault. It is
    logged at debug level and reported as ``None``.

    With ``faults_end_sequence`` a remote fault that survived retries is also
    read as the end. That conflates a flaky read with a real end and can
    truncate the sequence; it is only enabled where the caller accepts that.
    """

    def __init__(self, *, faults_end_sequence: bool = False) -> None:
        self.faults_end_sequence = faults_end_sequence

    async def read(
        self,
        caller: ResilientCaller,
        op: Callable[[], Awaitable[T | None]],
        *,
        label: str,
    ) -> T | None:
        try:
            return await caller.call(op, label=label)
        except LedgerRevert as exc:
            logger.debug("{} reverted ({}); end of sequence", label, exc.reason)
            return None
        except RemoteFault as exc:
            if not self.faults_end_sequence:
                raise
            logger.warning("{} failed after retries ({}); treating as end of sequence", label, exc)
            return None
