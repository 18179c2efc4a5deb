import asyncio
import threading
from decimal import Decimal

import pytest

from conftest import CALLER, CHAIN_ID, CONTEST, E18, FakeLedger, make_contest
from contestview.engine.records import ContestLineupRecord
from contestview.engine.state import ContestState
from contestview.services.contest_view import (
    ContestDataLoader,
    build_prediction_view,
    collect_entry_ids,
    load_payouts,
    preview_purchase,
)
from contestview.services.lineups import add_provisional_lineup
from contestview.services.reader import read_contest_snapshot


def lineup(lineup_id: str, entry_id, user_id: str = "u1") -> ContestLineupRecord:
    return ContestLineupRecord(
        id=lineup_id, contest_id="contest-1", tournament_lineup_id=f"t-{lineup_id}", user_id=user_id,
        entry_id=entry_id, lineup_name=f"Lineup {lineup_id}", position=0, score=0, status="ACTIVE",
    )


@pytest.fixture
def lineups():
    return [lineup("a", "1"), lineup("b", "2"), lineup("c", "bogus")]


@pytest.fixture
def market(ledger: FakeLedger) -> FakeLedger:
    ledger.set("state", value=int(ContestState.OPEN))
    ledger.set("totalSpectatorCollateral", value=1000 * E18)
    ledger.set("calculateEntryPrice", 1, value=2_000_000)
    ledger.set("netPosition", 1, value=100 * E18)
    ledger.set("balanceOf", CALLER, 1, value=50 * E18)
    return ledger


def test_collect_entry_ids_skips_provisional_and_malformed(lineups):
    with_placeholder = add_provisional_lineup(lineups, "contest-1", "t-new", now_ms=5)
    assert collect_entry_ids(with_placeholder) == [1, 2]


@pytest.mark.asyncio
async def test_build_prediction_view(market: FakeLedger, lineups):
    snapshot = await read_contest_snapshot(market, CONTEST, CHAIN_ID, [1, 2], CALLER)
    view = build_prediction_view(make_contest(), lineups, snapshot)

    assert view["state"] is ContestState.OPEN
    assert view["capabilities"]["can_predict"] is True
    assert [e["lineup_id"] for e in view["entries"]] == ["a", "b"]
    first = view["entries"][0]["metrics"]
    assert first["ownership_percent"] == Decimal(50)
    assert first["implied_winnings"] == 500 * E18
    assert view["pool_total"] == Decimal(1000)
    assert view["read_errors"] == []


@pytest.mark.asyncio
async def test_view_reports_read_errors(market: FakeLedger, lineups):
    market.set("netPosition", 2, value=RuntimeError("reverted"))
    snapshot = await read_contest_snapshot(market, CONTEST, CHAIN_ID, [1, 2], CALLER)
    view = build_prediction_view(make_contest(), lineups, snapshot)
    assert view["read_errors"] == ["supply[2]: reverted"]
    assert view["entries"][1]["metrics"]["total_supply"] == 0


@pytest.mark.asyncio
async def test_failed_state_read_allows_nothing(market: FakeLedger, lineups):
    market.set("state", value=RuntimeError("timeout"))
    snapshot = await read_contest_snapshot(market, CONTEST, CHAIN_ID, [1, 2])
    view = build_prediction_view(make_contest(status="OPEN"), lineups, snapshot)
    assert view["state"] is None
    assert not any(view["capabilities"].values())


@pytest.mark.asyncio
async def test_preview_purchase(market: FakeLedger, lineups):
    market.set("totalSpectatorCollateral", value=500 * E18)
    snapshot = await read_contest_snapshot(market, CONTEST, CHAIN_ID, [1, 2], CALLER)
    view = build_prediction_view(make_contest(), lineups, snapshot)

    proj = preview_purchase(view, snapshot, 1, "10")
    assert proj["tokens_received"] == Decimal("4.25")
    assert proj["is_estimate"] is True

    first = preview_purchase(view, snapshot, 2, "10")
    assert first["is_first_purchase"] is True
    assert first["projected_return"] == Decimal("508.5")


@pytest.mark.parametrize("text", ["", "abc", "-3", "0", "1e999999999"])
@pytest.mark.asyncio
async def test_preview_purchase_bad_amount_is_zero(market: FakeLedger, lineups, text: str):
    snapshot = await read_contest_snapshot(market, CONTEST, CHAIN_ID, [1, 2], CALLER)
    view = build_prediction_view(make_contest(), lineups, snapshot)
    proj = preview_purchase(view, snapshot, 1, text)
    assert proj["tokens_received"] == 0
    assert proj["projected_return"] == 0


class GatedLedger(FakeLedger):
    """Holds reads at a gate until released, so refreshes can be interleaved."""

    def __init__(self, base: FakeLedger):
        super().__init__(base.values)
        self.gate: asyncio.Event | None = None
        self.waiting = 0

    async def call(self, request):
        gate = self.gate
        if gate is not None:
            self.waiting += 1
            await gate.wait()
        return await super().call(request)


async def wait_until(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached in time"
        await asyncio.sleep(0.001)


@pytest.mark.asyncio
async def test_loader_drops_superseded_refresh(market: FakeLedger, lineups, cache):
    gated = GatedLedger(market)
    contest = make_contest()
    loader = ContestDataLoader(gated, cache, lambda _id: contest, lambda _id: lineups)

    gated.gate = asyncio.Event()
    stale = asyncio.create_task(loader.refresh("contest-1", CALLER))
    # state, collateral, bonus, then price, supply and balance for entries 1 and 2
    await wait_until(lambda: gated.waiting == 9)
    assert loader.is_loading_ledger is True
    held_gate = gated.gate

    gated.gate = None
    gated.set("state", value=int(ContestState.LOCKED))
    fresh = await loader.refresh("contest-1", CALLER)
    assert fresh is not None
    assert fresh["state"] is ContestState.LOCKED

    held_gate.set()
    assert await stale is None
    assert loader.view is fresh
    assert loader.is_loading is False


@pytest.mark.asyncio
async def test_loader_drops_refresh_superseded_while_loading_metadata(market: FakeLedger, lineups, cache):
    contest = make_contest()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def fetch_contest(contest_id: str):
        calls.append(contest_id)
        if len(calls) == 1:
            started.set()
            release.wait(timeout=5)
        return contest

    loader = ContestDataLoader(market, cache, fetch_contest, lambda _id: lineups)
    stale = asyncio.create_task(loader.refresh("contest-1", CALLER))
    # the event loop stays free while the backend call blocks
    await asyncio.to_thread(started.wait, 5)
    assert loader.is_loading_metadata is True

    fresh = await loader.refresh("contest-1", CALLER)
    assert fresh is not None

    release.set()
    assert await stale is None
    assert loader.view is fresh
    assert loader.is_loading is False
    assert market.count("state") == 1


@pytest.mark.asyncio
async def test_loader_unknown_contest(market: FakeLedger, cache):
    loader = ContestDataLoader(market, cache, lambda _id: None, lambda _id: [])
    assert await loader.refresh("missing") is None
    assert loader.view is None
    assert market.calls == []


@pytest.mark.asyncio
async def test_load_payouts_counts_confirmed_lineups(ledger: FakeLedger, lineups, cache):
    ledger.set("primaryPrizePool", value=90 * E18)
    ledger.set("totalPrimaryPositionSubsidies", value=10 * E18)
    ledger.set("secondaryPrizePool", value=50 * E18)
    placeholders = lineups
    for i in range(8):
        placeholders = add_provisional_lineup(placeholders, "contest-1", f"t{i}", now_ms=i)

    breakdown = await load_payouts(ledger, make_contest(), placeholders, cache)
    assert breakdown["primary_total"] == Decimal(100)
    assert breakdown["total"] == Decimal(150)
    assert [p["percentage"] for p in breakdown["places"]] == [100]

    confirmed = [lineup(str(i), str(i)) for i in range(10)]
    breakdown = await load_payouts(ledger, make_contest(), confirmed, cache)
    assert [p["amount"] for p in breakdown["places"]] == [Decimal(70), Decimal(20), Decimal(10)]
    assert ledger.count("primaryPrizePool") == 1
