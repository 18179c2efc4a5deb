import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from typing_extensions import TypedDict

from contestview.utils import PLATFORM_TOKEN_DECIMALS, format_units, non_negative, parse_entry_id
from .records import ContestLineupRecord, ContestResults
from .state import (
    ContestAggregate, ContestState, FieldRead, PriceSnapshot, field_value, get_capabilities
)

logger = logging.getLogger(__name__)

class HeldEntry(TypedDict):
    entry_id: int
    lineup_id: str
    lineup_name: str
    position: int
    score: int

class PrimaryClaim(TypedDict):
    entry_id: int
    lineup_id: str
    lineup_name: str
    payout: int
    bonus: int
    claimable_amount: int
    claimable_amount_formatted: Decimal
    payout_basis_points: int
    position: int
    score: int
    can_claim: bool
    is_loading: bool
    read_error: Optional[str]

class SecondaryClaim(TypedDict):
    entry_id: int
    balance: int
    total_supply: int
    claimable_amount: int
    claimable_amount_formatted: Decimal
    can_claim: bool

class SettlementClaims(TypedDict):
    is_settled: bool
    is_contestant: bool
    primary_claims: List[PrimaryClaim]
    secondary_claim: Optional[SecondaryClaim]
    total_claimable: int
    is_loading: bool

def select_held_entries(lineups: Sequence[ContestLineupRecord], user_id: Optional[str]) -> List[HeldEntry]:
    """
    Primary positions owned by `user_id`. Lineups without a ledger entry (including provisional
    ones) are not positions; a malformed entry id is skipped so the remaining claims still show.
    """
    if not user_id:
        return []

    held: List[HeldEntry] = []
    for lineup in lineups:
        if lineup.get('user_id') != user_id or not lineup.get('entry_id'):
            continue
        try:
            entry_id = parse_entry_id(lineup['entry_id'])
        except ValueError as e:
            logger.warning(f"Skipping lineup {lineup.get('id')} with invalid entry id: {e}")
            continue
        held.append(HeldEntry(
            entry_id=entry_id,
            lineup_id=lineup['id'],
            lineup_name=lineup.get('lineup_name') or 'Lineup',
            position=lineup.get('position') or 0,
            score=lineup.get('score') or 0,
        ))
    return held

def determine_winning_entry(results: Optional[ContestResults]) -> Optional[int]:
    """
    The single winning entry: the first declared winner, else the best finishing position.
    Rows without a positive position are unranked; when no row is ranked the backend's first
    row wins. Ties keep the backend's ordering.
    """
    if not results:
        return None

    raw_winner = None
    winning_entries = results.get('winning_entries') or []
    if winning_entries:
        raw_winner = winning_entries[0]
    else:
        detailed = results.get('detailed_results') or []
        ranked = [r for r in detailed if (r.get('position') or 0) > 0]
        if ranked:
            # min() keeps the first of equal positions
            raw_winner = min(ranked, key=lambda r: r['position'])['entry_id']
        elif detailed:
            raw_winner = detailed[0].get('entry_id')

    if raw_winner is None:
        return None
    try:
        return parse_entry_id(raw_winner)
    except ValueError as e:
        logger.warning(f"Cannot determine winning entry: {e}")
        return None

def aggregate_primary_claims(
    held: Sequence[HeldEntry],
    payout_reads: Sequence[FieldRead],
    subsidy_reads: Sequence[FieldRead],
    results: Optional[ContestResults] = None,
) -> List[PrimaryClaim]:
    """
    One claim per held entry. payout_reads[i] and subsidy_reads[i] belong to held[i].
    A claim is only actionable when both reads came back and their sum is positive.
    """
    if len(payout_reads) != len(held) or len(subsidy_reads) != len(held):
        raise ValueError(
            f"Read results are not aligned with held entries: "
            f"{len(held)} entries, {len(payout_reads)} payouts, {len(subsidy_reads)} subsidies"
        )

    by_entry = {}
    for result in (results or {}).get('detailed_results') or []:
        by_entry.setdefault(str(result.get('entry_id')), result)

    claims: List[PrimaryClaim] = []
    for entry, payout_read, subsidy_read in zip(held, payout_reads, subsidy_reads):
        payout = field_value(payout_read)
        bonus = field_value(subsidy_read)
        claimable = payout + bonus
        read_error = payout_read['error'] or subsidy_read['error']
        is_loading = payout_read['is_loading'] or subsidy_read['is_loading']
        result = by_entry.get(str(entry['entry_id']), {})

        claims.append(PrimaryClaim(
            entry_id=entry['entry_id'],
            lineup_id=entry['lineup_id'],
            lineup_name=entry['lineup_name'],
            payout=payout,
            bonus=bonus,
            claimable_amount=claimable,
            claimable_amount_formatted=format_units(claimable, PLATFORM_TOKEN_DECIMALS),
            payout_basis_points=result.get('payout_basis_points') or 0,
            position=result.get('position') or entry['position'],
            score=result.get('score') or entry['score'],
            can_claim=claimable > 0 and read_error is None and not is_loading,
            is_loading=is_loading,
            read_error=read_error,
        ))
    return claims

def total_secondary_funds(aggregate: ContestAggregate) -> int:
    """Everything the winning entry's holders split: spectator collateral plus the accumulated bonus."""
    return non_negative(aggregate['total_spectator_collateral']) + non_negative(aggregate['accumulated_prize_bonus'])

def aggregate_secondary_claim(
    winning_entry_id: Optional[int],
    winning_snapshot: Optional[PriceSnapshot],
    secondary_funds: int,
) -> Optional[SecondaryClaim]:
    """
    Winner-take-all: only a balance in the winning entry is worth anything, so there is no
    record at all for other entries, an unknown winner, or an empty winning supply.
    """
    if winning_entry_id is None or winning_snapshot is None:
        return None
    if winning_snapshot['entry_id'] != winning_entry_id:
        raise ValueError(f"Snapshot for entry {winning_snapshot['entry_id']} passed for winner {winning_entry_id}")

    balance = non_negative(winning_snapshot['caller_balance'])
    supply = non_negative(winning_snapshot['outstanding_supply'])
    if balance == 0 or supply == 0:
        return None

    claimable = balance * non_negative(secondary_funds) // supply
    return SecondaryClaim(
        entry_id=winning_entry_id,
        balance=balance,
        total_supply=supply,
        claimable_amount=claimable,
        claimable_amount_formatted=format_units(claimable, PLATFORM_TOKEN_DECIMALS),
        can_claim=claimable > 0,
    )

def not_settled_claims() -> SettlementClaims:
    return SettlementClaims(
        is_settled=False,
        is_contestant=False,
        primary_claims=[],
        secondary_claim=None,
        total_claimable=0,
        is_loading=False,
    )

def aggregate_settlement_claims(
    state: Optional[ContestState],
    held: Sequence[HeldEntry],
    payout_reads: Sequence[FieldRead],
    subsidy_reads: Sequence[FieldRead],
    results: Optional[ContestResults],
    winning_snapshot: Optional[PriceSnapshot],
    aggregate: ContestAggregate,
    is_loading: bool = False,
) -> SettlementClaims:
    if not get_capabilities(state)['can_claim']:
        return not_settled_claims()

    primary_claims = aggregate_primary_claims(held, payout_reads, subsidy_reads, results)
    winning_entry_id = determine_winning_entry(results)
    secondary_claim = aggregate_secondary_claim(winning_entry_id, winning_snapshot, total_secondary_funds(aggregate))

    total = sum(c['claimable_amount'] for c in primary_claims if c['can_claim'])
    if secondary_claim is not None and secondary_claim['can_claim']:
        total += secondary_claim['claimable_amount']

    return SettlementClaims(
        is_settled=True,
        is_contestant=len(held) > 0,
        primary_claims=primary_claims,
        secondary_claim=secondary_claim,
        total_claimable=total,
        is_loading=is_loading or any(c['is_loading'] for c in primary_claims),
    )
