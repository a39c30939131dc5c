from __future__ import annotations

import pytest

from ledger.client import Web3LedgerClient
from payouts.core.config import settings
from payouts.core.errors import RemoteFault


@pytest.mark.network
@pytest.mark.asyncio
async def test_ledger_client_live_reads_market_count():
    if not settings.v2_contract_address:
        pytest.skip("V2_CONTRACT_ADDRESS is not configured")

    async with Web3LedgerClient() as client:
        try:
            count = await client.read_market_count()
            status = await client.read_market_status(0) if count else None
        except RemoteFault as exc:
            pytest.skip(f"RPC endpoint unavailable: {exc}")

    assert count >= 0
    if status is not None:
        assert status.market_id == 0
        assert status.option_count >= 2
