import pytest

from conftest import CALLER, FakeLedger, make_contest
from contestview.engine.records import ContestLineupRecord, ContestResults, DetailedResult
from contestview.engine.state import ContestState
from contestview.services.claims import load_settlement_claims


@pytest.fixture
def results() -> ContestResults:
    return ContestResults(
        winning_entries=[],
        payout_bps=[10000],
        detailed_results=[
            DetailedResult(entry_id="7", position=1, score=-12, payout_basis_points=10000,
                           username="me", lineup_name="Birdie Machine"),
            DetailedResult(entry_id="8", position=2, score=-4, payout_basis_points=0,
                           username="them", lineup_name="Bogey Train"),
        ],
    )


@pytest.fixture
def lineups():
    return [
        ContestLineupRecord(id="l7", contest_id="contest-1", tournament_lineup_id="t7", user_id="me",
                            entry_id="7", lineup_name="Birdie Machine", position=1, score=-12, status="ACTIVE"),
        ContestLineupRecord(id="l8", contest_id="contest-1", tournament_lineup_id="t8", user_id="them",
                            entry_id="8", lineup_name="Bogey Train", position=2, score=-4, status="ACTIVE"),
    ]


@pytest.fixture
def settled(ledger: FakeLedger) -> FakeLedger:
    ledger.set("state", value=int(ContestState.SETTLED))
    ledger.set("totalSpectatorCollateral", value=900)
    ledger.set("accumulatedPrizeBonus", value=100)
    ledger.set("primaryPrizePoolPayouts", 7, value=100)
    ledger.set("primaryPositionSubsidy", 7, value=20)
    ledger.set("netPosition", 7, value=40)
    ledger.set("balanceOf", CALLER, 7, value=10)
    return ledger


@pytest.mark.asyncio
async def test_claims_after_settlement(settled: FakeLedger, lineups, results):
    claims = await load_settlement_claims(settled, make_contest("SETTLED", results), lineups, "me", CALLER)
    assert claims["is_settled"] is True
    assert claims["is_contestant"] is True
    [primary] = claims["primary_claims"]
    assert (primary["entry_id"], primary["claimable_amount"], primary["can_claim"]) == (7, 120, True)
    assert primary["lineup_name"] == "Birdie Machine"
    assert claims["secondary_claim"]["claimable_amount"] == 250
    assert claims["total_claimable"] == 370


@pytest.mark.asyncio
async def test_second_load_reflects_completed_claim(settled: FakeLedger, lineups, results):
    contest = make_contest("SETTLED", results)
    await load_settlement_claims(settled, contest, lineups, "me", CALLER)

    settled.set("primaryPrizePoolPayouts", 7, value=0)
    settled.set("primaryPositionSubsidy", 7, value=0)
    claims = await load_settlement_claims(settled, contest, lineups, "me", CALLER)
    assert claims["primary_claims"][0]["claimable_amount"] == 0
    assert claims["primary_claims"][0]["can_claim"] is False
    assert settled.count("primaryPrizePoolPayouts") == 2


@pytest.mark.asyncio
async def test_not_settled_reads_no_claims(settled: FakeLedger, lineups, results):
    settled.set("state", value=int(ContestState.LOCKED))
    claims = await load_settlement_claims(settled, make_contest("LOCKED", results), lineups, "me", CALLER)
    assert claims["is_settled"] is False
    assert settled.count("primaryPrizePoolPayouts") == 0


@pytest.mark.asyncio
async def test_spectator_without_entries(settled: FakeLedger, lineups, results):
    claims = await load_settlement_claims(settled, make_contest("SETTLED", results), lineups, "spectator", CALLER)
    assert claims["is_contestant"] is False
    assert claims["primary_claims"] == []
    assert claims["secondary_claim"]["claimable_amount"] == 250


@pytest.mark.asyncio
async def test_no_secondary_claim_when_holding_losing_entry(settled: FakeLedger, lineups, results):
    settled.set("balanceOf", CALLER, 7, value=0)
    settled.set("balanceOf", CALLER, 8, value=50)
    claims = await load_settlement_claims(settled, make_contest("SETTLED", results), lineups, "spectator", CALLER)
    assert claims["secondary_claim"] is None
    assert claims["total_claimable"] == 0
