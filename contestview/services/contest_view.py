import asyncio
import logging
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from typing_extensions import TypedDict

from contestview.config import ClientParams, get_default_client_params
from contestview.engine.payouts import PrizePoolBreakdown, prize_pool_breakdown
from contestview.engine.pricing import (
    EntryMetrics, PurchaseProjection, observed_metrics, project_purchase_for_entry,
    projection_pool_total, zero_projection
)
from contestview.engine.records import ContestLineupRecord, ContestRecord
from contestview.engine.state import (
    Capabilities, ContestAggregate, ContestState, get_capabilities, parse_contest_state
)
from contestview.utils import PAYMENT_TOKEN_DECIMALS, parse_entry_id, parse_units, format_units
from .cache import ReadCache
from .ledger import LedgerCaller
from .reader import (
    ContestSnapshot, read_contest_snapshot, read_prize_pools, snapshot_is_loading, snapshot_state,
    to_contest_aggregate, to_price_snapshot
)

logger = logging.getLogger(__name__)

class EntryView(TypedDict):
    lineup_id: str
    lineup_name: str
    user_id: str
    metrics: EntryMetrics

class PredictionView(TypedDict):
    contest_id: str
    contest_address: str
    chain_id: int
    state: Optional[ContestState]
    capabilities: Capabilities
    entries: List[EntryView]
    aggregate: Optional[ContestAggregate]
    pool_total: Decimal
    is_loading: bool
    read_errors: List[str]

def collect_entry_ids(lineups: Sequence[ContestLineupRecord]) -> List[int]:
    """Ledger entry ids of confirmed lineups, in list order. Provisional lineups have none."""
    ids: List[int] = []
    for lineup in lineups:
        if lineup.get('provisional') or not lineup.get('entry_id'):
            continue
        try:
            entry_id = parse_entry_id(lineup['entry_id'])
        except ValueError as e:
            logger.warning(f"Skipping lineup {lineup.get('id')} in reads: {e}")
            continue
        if entry_id not in ids:
            ids.append(entry_id)
    return ids

def _read_errors(snapshot: ContestSnapshot) -> List[str]:
    errors = []
    for name in ('state', 'total_spectator_collateral', 'accumulated_prize_bonus'):
        if snapshot[name]['error']:
            errors.append(f"{name}: {snapshot[name]['error']}")
    for entry_id, entry in snapshot['entries'].items():
        for name in ('price', 'supply', 'balance'):
            read = entry[name]
            if read is not None and read['error']:
                errors.append(f"{name}[{entry_id}]: {read['error']}")
    return errors

def build_prediction_view(
    contest: ContestRecord,
    lineups: Sequence[ContestLineupRecord],
    snapshot: ContestSnapshot,
) -> PredictionView:
    """
    Joins backend lineups with ledger reads. The ledger's state wins over the backend status;
    the backend status is only used until the ledger state has been read.
    """
    state = snapshot_state(snapshot)
    if state is None and not snapshot['state']['error']:
        try:
            state = parse_contest_state(contest['status'])
        except ValueError:
            state = None

    aggregate = to_contest_aggregate(snapshot)
    empty_aggregate = ContestAggregate(total_spectator_collateral=0, accumulated_prize_bonus=0)

    entries: List[EntryView] = []
    price_snapshots = []
    for lineup in lineups:
        if lineup.get('provisional') or not lineup.get('entry_id'):
            continue
        try:
            entry_id = parse_entry_id(lineup['entry_id'])
        except ValueError:
            continue
        if entry_id not in snapshot['entries']:
            continue
        price_snapshot = to_price_snapshot(snapshot, entry_id)
        price_snapshots.append(price_snapshot)
        entries.append(EntryView(
            lineup_id=lineup['id'],
            lineup_name=lineup.get('lineup_name') or '',
            user_id=lineup.get('user_id') or '',
            metrics=observed_metrics(price_snapshot, aggregate or empty_aggregate),
        ))

    return PredictionView(
        contest_id=contest['id'],
        contest_address=contest['address'],
        chain_id=contest['chain_id'],
        state=state,
        capabilities=get_capabilities(state),
        entries=entries,
        aggregate=aggregate,
        pool_total=projection_pool_total(aggregate, price_snapshots),
        is_loading=snapshot_is_loading(snapshot),
        read_errors=_read_errors(snapshot),
    )

def preview_purchase(view: PredictionView, snapshot: ContestSnapshot, entry_id: int,
                     amount_text: str, fee_rate: Optional[Decimal] = None) -> PurchaseProjection:
    """Projection for a typed-in amount; anything unparseable previews as zero."""
    if fee_rate is None:
        fee_rate = get_default_client_params()['secondary_fee_rate']
    try:
        amount = format_units(parse_units(amount_text, PAYMENT_TOKEN_DECIMALS), PAYMENT_TOKEN_DECIMALS)
    except ValueError:
        return zero_projection()
    if entry_id not in snapshot['entries']:
        return zero_projection(amount)
    return project_purchase_for_entry(amount, to_price_snapshot(snapshot, entry_id), view['pool_total'], fee_rate)

async def load_payouts(
    ledger: LedgerCaller,
    contest: ContestRecord,
    lineups: Sequence[ContestLineupRecord],
    cache: Optional[ReadCache] = None,
    params: Optional[ClientParams] = None,
) -> PrizePoolBreakdown:
    """Prize pools and per-place payouts; placeholders do not count towards the contest size."""
    params = params or get_default_client_params()
    pools = await read_prize_pools(ledger, contest['address'], contest['chain_id'], cache)
    entry_count = sum(1 for l in lineups if not l.get('provisional'))
    return prize_pool_breakdown(pools, entry_count, params['large_contest_threshold'])

class ContestDataLoader:
    """
    Loads a contest's view progressively: backend metadata first, then the ledger snapshot.
    Each refresh bumps a generation counter; a refresh that finishes after a newer one has
    started is dropped without touching the current view.
    """
    def __init__(
        self,
        ledger: LedgerCaller,
        cache: ReadCache,
        fetch_contest: Callable[[str], Optional[ContestRecord]],
        fetch_lineups: Callable[[str], List[ContestLineupRecord]],
    ):
        self.ledger = ledger
        self.cache = cache
        self.fetch_contest = fetch_contest
        self.fetch_lineups = fetch_lineups
        self.generation = 0
        self.contest: Optional[ContestRecord] = None
        self.lineups: List[ContestLineupRecord] = []
        self.snapshot: Optional[ContestSnapshot] = None
        self.view: Optional[PredictionView] = None
        self.is_loading_metadata = False
        self.is_loading_ledger = False

    @property
    def is_loading(self) -> bool:
        return self.is_loading_metadata or self.is_loading_ledger

    async def refresh(self, contest_id: str, caller: Optional[str] = None) -> Optional[PredictionView]:
        """Returns the new view, or None when the refresh was superseded or the contest is unknown."""
        self.generation += 1
        generation = self.generation

        self.is_loading_metadata = True
        try:
            # backend clients are synchronous; keep them off the event loop
            contest = await asyncio.to_thread(self.fetch_contest, contest_id)
            lineups = await asyncio.to_thread(self.fetch_lineups, contest_id) if contest else []
        finally:
            if generation == self.generation:
                self.is_loading_metadata = False
        if generation != self.generation:
            logger.info(f"Dropping superseded refresh {generation} for contest {contest_id} before ledger reads")
            return None
        if contest is None:
            logger.warning(f"Contest {contest_id} not found")
            self.contest, self.lineups, self.snapshot, self.view = None, [], None, None
            return None

        self.contest = contest
        self.lineups = lineups
        entry_ids = collect_entry_ids(lineups)

        self.is_loading_ledger = True
        try:
            snapshot = await read_contest_snapshot(
                self.ledger, contest['address'], contest['chain_id'], entry_ids, caller, self.cache
            )
        finally:
            if generation == self.generation:
                self.is_loading_ledger = False
        if generation != self.generation:
            logger.info(f"Dropping superseded refresh {generation} for contest {contest_id}")
            # the superseded read may have replaced newer cached reads
            self.cache.invalidate(contest['address'], contest['chain_id'])
            return None

        self.snapshot = snapshot
        self.view = build_prediction_view(contest, lineups, snapshot)
        return self.view
