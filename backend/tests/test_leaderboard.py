from __future__ import annotations

import pytest

from conftest import FakeIdentityLookup, wallet_n
from payouts.core.errors import LedgerRevert, TransientRemoteError
from payouts.domain import Identity, Portfolio, WinningsTotals
from payouts.services.cache import ResultCache
from payouts.services.identity import IdentityEnricher
from payouts.services.leaderboard import LeaderboardAggregator, merge_generations

TOKEN = 10**18


def _portfolio(wallet: str, winnings: int, trades: int) -> Portfolio:
    return Portfolio(
        wallet=wallet,
        total_invested=0,
        total_winnings=winnings,
        unrealized_pnl=0,
        realized_pnl=0,
        trade_count=trades,
    )


def _aggregator(ledger, caller, lookup=None, **kwargs) -> LeaderboardAggregator:
    enricher = IdentityEnricher(lookup or FakeIdentityLookup(), caller, ResultCache())
    options = {"v1_page_size": 2, "v2_batch_size": 3, "max_index": 50, "top_n": 10}
    options.update(kwargs)
    return LeaderboardAggregator(ledger, caller, enricher, **options)


def test_merge_sums_both_generations_case_insensitively() -> None:
    wallet = "0xAbCdEf0000000000000000000000000000000001"
    merged = merge_generations(
        [WinningsTotals(wallet, 100, 4)],
        [WinningsTotals(wallet.lower(), 50, 3), WinningsTotals(wallet_n(2), 10, 1)],
    )

    assert merged[wallet.lower()] == WinningsTotals(wallet.lower(), 150, 7)
    assert merged[wallet_n(2)].total_winnings == 10


@pytest.mark.asyncio
async def test_wallet_in_both_generations_is_summed(ledger, caller) -> None:
    wallet = "0x" + "ab" * 20
    ledger.v1_rows = [WinningsTotals("0x" + "AB" * 20, 100 * TOKEN, 4)]
    ledger.participants = [wallet]
    ledger.portfolios[wallet] = _portfolio(wallet, 50 * TOKEN, 3)

    entries = await _aggregator(ledger, caller).aggregate()

    assert len(entries) == 1
    assert entries[0].wallet == wallet
    assert entries[0].total_winnings == 150.0
    assert entries[0].trade_count == 7


@pytest.mark.asyncio
async def test_v1_pages_until_a_short_page(ledger, caller) -> None:
    ledger.v1_rows = [WinningsTotals(wallet_n(i), i * TOKEN, 1) for i in range(1, 6)]

    rows = await _aggregator(ledger, caller).fetch_v1()

    assert len(rows) == 5
    assert [call[1] for call in ledger.calls if call[0] == "read_leaderboard_page"] == [0, 2, 4]


@pytest.mark.asyncio
async def test_v1_revert_after_full_last_page_ends_the_table(ledger, caller, sleeps) -> None:
    ledger.strict_leaderboard_paging = True
    ledger.v1_rows = [WinningsTotals(wallet_n(i), i * TOKEN, 1) for i in range(1, 5)]

    entries = await _aggregator(ledger, caller).aggregate()

    assert len(entries) == 4
    assert [call[1] for call in ledger.calls if call[0] == "read_leaderboard_page"] == [0, 2, 4]
    assert sleeps == []


@pytest.mark.asyncio
async def test_v1_revert_on_first_page_propagates(ledger, caller) -> None:
    ledger.strict_leaderboard_paging = True

    with pytest.raises(LedgerRevert):
        await _aggregator(ledger, caller).fetch_v1()


@pytest.mark.asyncio
async def test_participant_index_ends_at_first_revert(ledger, caller) -> None:
    ledger.participants = [wallet_n(i) for i in range(1, 5)]

    participants = await _aggregator(ledger, caller).fetch_v2_participants()

    assert participants == ledger.participants
    # Two full batches of three; the second one hits the revert at index 4.
    assert ledger.count("read_participant_at_index") == 6


@pytest.mark.asyncio
async def test_failed_participant_read_ends_the_index(ledger, caller) -> None:
    """A read that still fails after retries is taken as the end of the index.

    Participants after it, even ones read successfully in the same batch, are
    dropped. The table can therefore be missing wallets while the RPC is flaky;
    this pins that trade-off so a change to it is deliberate.
    """

    ledger.participants = [wallet_n(i) for i in range(1, 7)]
    ledger.keyed_failures[("read_participant_at_index", 1)] = TransientRemoteError("timeout")

    participants = await _aggregator(ledger, caller).fetch_v2_participants()

    assert participants == [wallet_n(1)]


@pytest.mark.asyncio
async def test_participant_index_respects_safety_limit(ledger, caller) -> None:
    ledger.participants = [wallet_n(i) for i in range(1, 20)]

    participants = await _aggregator(ledger, caller, max_index=5).fetch_v2_participants()

    assert participants == ledger.participants[:5]


@pytest.mark.asyncio
async def test_generation_2_failures_leave_generation_1_table(ledger, caller) -> None:
    ledger.v1_rows = [WinningsTotals(wallet_n(1), 5 * TOKEN, 2)]
    ledger.participants = [wallet_n(2)]
    ledger.failures["read_participant_at_index"] = TransientRemoteError("rpc down")

    entries = await _aggregator(ledger, caller).aggregate()

    assert [(entry.wallet, entry.total_winnings) for entry in entries] == [(wallet_n(1), 5.0)]


@pytest.mark.asyncio
async def test_failed_portfolio_drops_only_that_wallet(ledger, caller) -> None:
    ledger.participants = [wallet_n(1), wallet_n(2)]
    ledger.portfolios[wallet_n(1)] = _portfolio(wallet_n(1), 3 * TOKEN, 1)
    ledger.portfolios[wallet_n(2)] = _portfolio(wallet_n(2), 9 * TOKEN, 1)
    ledger.keyed_failures[("read_portfolio", wallet_n(2))] = TransientRemoteError("timeout")

    entries = await _aggregator(ledger, caller).aggregate()

    assert [entry.wallet for entry in entries] == [wallet_n(1)]


@pytest.mark.asyncio
async def test_ranking_filters_zero_and_keeps_top_n(ledger, caller) -> None:
    ledger.v1_rows = [
        WinningsTotals(wallet_n(1), 0, 9),
        WinningsTotals(wallet_n(2), 2 * TOKEN, 1),
        WinningsTotals(wallet_n(3), 7 * TOKEN, 1),
        WinningsTotals(wallet_n(4), 5 * TOKEN, 1),
    ]
    ledger.v1_rows.append(WinningsTotals(wallet_n(5), 1 * TOKEN, 1))

    entries = await _aggregator(ledger, caller, top_n=2).aggregate()

    assert [entry.wallet for entry in entries] == [wallet_n(3), wallet_n(4)]
    assert [entry.total_winnings for entry in entries] == [7.0, 5.0]


@pytest.mark.asyncio
async def test_amounts_are_scaled_by_token_decimals(ledger, caller) -> None:
    ledger.decimals = 6
    ledger.v1_rows = [WinningsTotals(wallet_n(1), 1_500_000, 1)]

    entries = await _aggregator(ledger, caller).aggregate()

    assert entries[0].total_winnings == 1.5


@pytest.mark.asyncio
async def test_entries_carry_identity_or_short_address(ledger, caller) -> None:
    ledger.v1_rows = [
        WinningsTotals(wallet_n(1), 2 * TOKEN, 1),
        WinningsTotals(wallet_n(2), 1 * TOKEN, 1),
    ]
    lookup = FakeIdentityLookup({wallet_n(1): Identity("alice", "42", "https://img/alice.png")})

    entries = await _aggregator(ledger, caller, lookup).aggregate()

    assert entries[0].display_name == "alice"
    assert entries[0].identity.numeric_id == "42"
    assert entries[1].identity is None
    assert entries[1].display_name == f"{wallet_n(2)[:6]}...{wallet_n(2)[-4:]}"


@pytest.mark.asyncio
async def test_identity_outage_never_fails_the_leaderboard(ledger, caller) -> None:
    ledger.v1_rows = [WinningsTotals(wallet_n(1), 2 * TOKEN, 1)]
    lookup = FakeIdentityLookup(failing_addresses={wallet_n(1)})

    entries = await _aggregator(ledger, caller, lookup).aggregate()

    assert entries[0].identity is None
