import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from typing_extensions import TypedDict

from contestview.config import ChainContracts
from contestview.engine.operations import WalletBalances
from contestview.engine.payouts import PrizePoolReads
from contestview.engine.state import (
    ContestAggregate, ContestState, FieldRead, PriceSnapshot, failed_field, field_value,
    loading_field, ok_field, parse_contest_state
)
from contestview.utils import get_current_ms
from .cache import WALLET_BALANCES_GROUP, ReadCache, make_key
from .ledger import LedgerCaller, LedgerReadError, ReadRequest

logger = logging.getLogger(__name__)

SNAPSHOT_GROUP = 'snapshot'
PRIZE_POOL_GROUP = 'prize_pools'

class EntryReads(TypedDict):
    price: FieldRead
    supply: FieldRead
    balance: Optional[FieldRead]  # None when there is no caller

class ContestSnapshot(TypedDict):
    contest_address: str
    chain_id: int
    caller: Optional[str]
    state: FieldRead
    total_spectator_collateral: FieldRead
    accumulated_prize_bonus: FieldRead
    entries: Dict[int, EntryReads]
    fetched_at_ms: Optional[int]

def contest_read(field: str, address: str, function_name: str,
                 args: Optional[List] = None, entry_id: Optional[int] = None) -> ReadRequest:
    return ReadRequest(field=field, entry_id=entry_id, contract='contest', address=address,
                       function_name=function_name, args=args or [])

async def execute_reads(ledger: LedgerCaller, requests: Sequence[ReadRequest]) -> List[FieldRead]:
    """
    Run all requests concurrently. Result i always belongs to request i; a failing read
    becomes a failed FieldRead and never affects its neighbours.
    """
    if not requests:
        return []
    raw = await asyncio.gather(*(ledger.call(r) for r in requests), return_exceptions=True)
    now = get_current_ms()

    reads: List[FieldRead] = []
    for request, result in zip(requests, raw):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.error(f"Read {request['function_name']}{tuple(request['args'])} on {request['address']} failed: {result}")
            reads.append(failed_field(str(result) or type(result).__name__, now))
        else:
            reads.append(ok_field(int(result), now))
    return reads

def plan_snapshot_reads(contest_address: str, entry_ids: Sequence[int], caller: Optional[str]) -> List[ReadRequest]:
    requests = [
        contest_read('state', contest_address, 'state'),
        contest_read('total_spectator_collateral', contest_address, 'totalSpectatorCollateral'),
        contest_read('accumulated_prize_bonus', contest_address, 'accumulatedPrizeBonus'),
    ]
    requests += [contest_read('price', contest_address, 'calculateEntryPrice', [e], e) for e in entry_ids]
    requests += [contest_read('supply', contest_address, 'netPosition', [e], e) for e in entry_ids]
    if caller:
        requests += [contest_read('balance', contest_address, 'balanceOf', [caller, e], e) for e in entry_ids]
    return requests

def _has_errors(snapshot: ContestSnapshot) -> bool:
    reads = [snapshot['state'], snapshot['total_spectator_collateral'], snapshot['accumulated_prize_bonus']]
    for entry in snapshot['entries'].values():
        reads += [r for r in (entry['price'], entry['supply'], entry['balance']) if r is not None]
    return any(r['error'] is not None for r in reads)

def loading_snapshot(contest_address: str, chain_id: int, entry_ids: Sequence[int],
                     caller: Optional[str]) -> ContestSnapshot:
    return ContestSnapshot(
        contest_address=contest_address,
        chain_id=chain_id,
        caller=caller,
        state=loading_field(),
        total_spectator_collateral=loading_field(),
        accumulated_prize_bonus=loading_field(),
        entries={e: EntryReads(price=loading_field(), supply=loading_field(),
                               balance=loading_field() if caller else None) for e in entry_ids},
        fetched_at_ms=None,
    )

async def read_contest_snapshot(
    ledger: LedgerCaller,
    contest_address: str,
    chain_id: int,
    entry_ids: Sequence[int],
    caller: Optional[str] = None,
    cache: Optional[ReadCache] = None,
) -> ContestSnapshot:
    """
    Prices, supplies and (with a caller) balances for every entry, plus contest-level reads.
    Duplicate entry ids are read once. An empty entry set still reads the contest state.
    """
    entry_ids = list(dict.fromkeys(entry_ids))
    key = make_key(contest_address, chain_id, SNAPSHOT_GROUP, entry_ids, caller)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    requests = plan_snapshot_reads(contest_address, entry_ids, caller)
    reads = await execute_reads(ledger, requests)

    per_entry: Dict[int, Dict[str, FieldRead]] = {e: {} for e in entry_ids}
    contest_fields: Dict[str, FieldRead] = {}
    for request, read in zip(requests, reads):
        if request['entry_id'] is None:
            contest_fields[request['field']] = read
        else:
            per_entry[request['entry_id']][request['field']] = read

    snapshot = ContestSnapshot(
        contest_address=contest_address,
        chain_id=chain_id,
        caller=caller,
        state=contest_fields['state'],
        total_spectator_collateral=contest_fields['total_spectator_collateral'],
        accumulated_prize_bonus=contest_fields['accumulated_prize_bonus'],
        entries={e: EntryReads(price=f['price'], supply=f['supply'], balance=f.get('balance'))
                 for e, f in per_entry.items()},
        fetched_at_ms=get_current_ms(),
    )
    if cache is not None and not _has_errors(snapshot):
        cache.put(key, snapshot)
    return snapshot

def snapshot_state(snapshot: ContestSnapshot) -> Optional[ContestState]:
    """Lifecycle state, or None while unread, failed or out of range."""
    read = snapshot['state']
    if read['value'] is None:
        return None
    try:
        return parse_contest_state(read['value'])
    except ValueError as e:
        logger.warning(f"Contest {snapshot['contest_address']} reported {e}")
        return None

def to_price_snapshot(snapshot: ContestSnapshot, entry_id: int) -> PriceSnapshot:
    entry = snapshot['entries'][entry_id]
    balance = field_value(entry['balance'])
    return PriceSnapshot(
        entry_id=entry_id,
        price=field_value(entry['price']),
        outstanding_supply=field_value(entry['supply']),
        caller_balance=balance,
        has_position=balance > 0,
    )

def to_contest_aggregate(snapshot: ContestSnapshot) -> Optional[ContestAggregate]:
    """None when the collateral read is unavailable, so callers can fall back."""
    if snapshot['total_spectator_collateral']['value'] is None:
        return None
    return ContestAggregate(
        total_spectator_collateral=field_value(snapshot['total_spectator_collateral']),
        accumulated_prize_bonus=field_value(snapshot['accumulated_prize_bonus']),
    )

def snapshot_is_loading(snapshot: ContestSnapshot) -> bool:
    if snapshot['state']['is_loading'] or snapshot['total_spectator_collateral']['is_loading']:
        return True
    return any(
        r is not None and r['is_loading']
        for entry in snapshot['entries'].values()
        for r in (entry['price'], entry['supply'], entry['balance'])
    )

async def read_primary_claim_inputs(
    ledger: LedgerCaller,
    contest_address: str,
    entry_ids: Sequence[int],
) -> tuple[List[FieldRead], List[FieldRead]]:
    """
    Payout and position-subsidy reads for the given entries, index-aligned with entry_ids.
    Never cached: eligibility must reflect the ledger after every claim.
    """
    requests = [contest_read('payout', contest_address, 'primaryPrizePoolPayouts', [e], e) for e in entry_ids]
    requests += [contest_read('subsidy', contest_address, 'primaryPositionSubsidy', [e], e) for e in entry_ids]
    reads = await execute_reads(ledger, requests)
    n = len(entry_ids)
    return reads[:n], reads[n:]

PRIZE_POOL_FUNCTIONS = {
    'primary_prize_pool': 'primaryPrizePool',
    'primary_prize_pool_subsidy': 'primaryPrizePoolSubsidy',
    'total_primary_position_subsidies': 'totalPrimaryPositionSubsidies',
    'secondary_prize_pool': 'secondaryPrizePool',
    'secondary_prize_pool_subsidy': 'secondaryPrizePoolSubsidy',
}

async def read_prize_pools(
    ledger: LedgerCaller,
    contest_address: str,
    chain_id: int,
    cache: Optional[ReadCache] = None,
) -> PrizePoolReads:
    """Prize pool components; a failed component reads as zero."""
    key = make_key(contest_address, chain_id, PRIZE_POOL_GROUP)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    requests = [contest_read(field, contest_address, fn) for field, fn in PRIZE_POOL_FUNCTIONS.items()]
    reads = await execute_reads(ledger, requests)
    pools = PrizePoolReads(**{r['field']: field_value(read) for r, read in zip(requests, reads)})
    if cache is not None and all(read['error'] is None for read in reads):
        cache.put(key, pools)
    return pools

async def read_wallet_balances(
    ledger: LedgerCaller,
    contracts: ChainContracts,
    account: str,
    cache: Optional[ReadCache] = None,
) -> WalletBalances:
    """
    Payment and platform token balances of `account`. Both are needed to build a funded
    call list, so a failure here raises instead of degrading to zero.
    """
    key = make_key(account, contracts['chain_id'], WALLET_BALANCES_GROUP, (), account)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    requests = [
        ReadRequest(field='payment_balance', entry_id=None, contract='erc20',
                    address=contracts['payment_token_address'], function_name='balanceOf', args=[account]),
        ReadRequest(field='platform_balance', entry_id=None, contract='erc20',
                    address=contracts['platform_token_address'], function_name='balanceOf', args=[account]),
    ]
    payment, platform = await execute_reads(ledger, requests)
    for name, read in (('payment', payment), ('platform', platform)):
        if read['error'] is not None:
            raise LedgerReadError(f"Could not read {name} token balance of {account}: {read['error']}")

    balances = WalletBalances(payment_balance=field_value(payment), platform_balance=field_value(platform))
    if cache is not None:
        cache.put(key, balances)
    return balances
