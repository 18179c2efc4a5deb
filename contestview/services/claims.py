import logging
from typing import Optional, Sequence

from contestview.engine.claims import (
    SettlementClaims, aggregate_settlement_claims, determine_winning_entry, not_settled_claims,
    select_held_entries
)
from contestview.engine.records import ContestLineupRecord, ContestRecord
from contestview.engine.state import ContestAggregate, get_capabilities
from .ledger import LedgerCaller
from .reader import (
    read_contest_snapshot, read_primary_claim_inputs, snapshot_is_loading, snapshot_state,
    to_contest_aggregate, to_price_snapshot
)

logger = logging.getLogger(__name__)

async def load_settlement_claims(
    ledger: LedgerCaller,
    contest: ContestRecord,
    lineups: Sequence[ContestLineupRecord],
    user_id: Optional[str],
    caller: Optional[str],
) -> SettlementClaims:
    """
    Everything the caller can claim from a settled contest. All reads bypass the cache so
    that a completed claim is reflected the next time this runs.
    """
    held = select_held_entries(lineups, user_id)
    winning_entry_id = determine_winning_entry(contest['results'])
    snapshot_ids = [winning_entry_id] if winning_entry_id is not None else []

    snapshot = await read_contest_snapshot(ledger, contest['address'], contest['chain_id'], snapshot_ids, caller)
    state = snapshot_state(snapshot)
    if not get_capabilities(state)['can_claim']:
        return not_settled_claims()

    payout_reads, subsidy_reads = await read_primary_claim_inputs(
        ledger, contest['address'], [h['entry_id'] for h in held]
    )

    winning_snapshot = to_price_snapshot(snapshot, winning_entry_id) if winning_entry_id is not None else None
    aggregate = to_contest_aggregate(snapshot) or ContestAggregate(
        total_spectator_collateral=0, accumulated_prize_bonus=0
    )

    claims = aggregate_settlement_claims(
        state, held, payout_reads, subsidy_reads, contest['results'],
        winning_snapshot, aggregate, is_loading=snapshot_is_loading(snapshot),
    )
    logger.info(f"Contest {contest['id']}: {len(claims['primary_claims'])} primary claims, "
                f"secondary claim {'present' if claims['secondary_claim'] else 'absent'}, "
                f"total claimable {claims['total_claimable']}")
    return claims
