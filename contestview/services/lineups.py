import logging
from typing import List, Optional, Sequence

from supabase import Client

from contestview.db.queries import delete_contest_lineup, fetch_contest_lineups, insert_contest_lineup
from contestview.engine.records import ContestLineupRecord
from contestview.utils import generate_entry_id, get_current_ms, validate_entry_id

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = 'temp-'

def is_provisional(lineup: ContestLineupRecord) -> bool:
    return bool(lineup.get('provisional'))

def add_provisional_lineup(
    lineups: Sequence[ContestLineupRecord],
    contest_id: str,
    tournament_lineup_id: str,
    user_id: str = '',
    now_ms: Optional[int] = None,
) -> List[ContestLineupRecord]:
    """Shows a join immediately. The placeholder has no entry id, so it is never read from the ledger."""
    ts = now_ms if now_ms is not None else get_current_ms()
    placeholder = ContestLineupRecord(
        id=f"{PROVISIONAL_PREFIX}{ts}",
        contest_id=contest_id,
        tournament_lineup_id=tournament_lineup_id,
        user_id=user_id,
        entry_id=None,
        lineup_name='',
        position=0,
        score=0,
        status='ACTIVE',
        provisional=True,
    )
    return [*lineups, placeholder]

def remove_lineup(lineups: Sequence[ContestLineupRecord], lineup_id: str) -> List[ContestLineupRecord]:
    return [l for l in lineups if l['id'] != lineup_id]

def reconcile_lineups(
    local: Sequence[ContestLineupRecord],
    fetched: Sequence[ContestLineupRecord],
) -> List[ContestLineupRecord]:
    """The backend list replaces the local one; placeholders do not survive a read."""
    dropped = sum(1 for l in local if is_provisional(l))
    if dropped:
        logger.info(f"Reconciled {dropped} provisional lineups against {len(fetched)} backend lineups")
    return [l for l in fetched if not is_provisional(l)]

def join_contest(
    db: Client,
    lineups: Sequence[ContestLineupRecord],
    contest_id: str,
    tournament_lineup_id: str,
    user_id: str,
    entry_id: Optional[int] = None,
    contest_address: Optional[str] = None,
) -> List[ContestLineupRecord]:
    """
    Records a join in the backend and returns the re-read list, which replaces any placeholder
    added with add_provisional_lineup. On failure nothing is re-read and the error propagates,
    so the caller falls back to its list from before the placeholder.

    With a contest address the entry id is derived from the lineup, or checked against the
    derived id when one is passed in.
    """
    if contest_address:
        if entry_id is None:
            entry_id = generate_entry_id(contest_address, tournament_lineup_id)
        elif not validate_entry_id(entry_id, contest_address, tournament_lineup_id):
            raise ValueError(
                f"Entry id {entry_id} does not match lineup {tournament_lineup_id} in contest {contest_address}"
            )
    try:
        insert_contest_lineup(contest_id, tournament_lineup_id, user_id, entry_id, db=db)
    except Exception as e:
        logger.error(f"Failed to join contest {contest_id} with lineup {tournament_lineup_id}: {e}")
        raise
    return reconcile_lineups(lineups, fetch_contest_lineups(contest_id, db=db))

def leave_contest(
    db: Client,
    lineups: Sequence[ContestLineupRecord],
    contest_id: str,
    contest_lineup_id: str,
) -> List[ContestLineupRecord]:
    try:
        delete_contest_lineup(contest_id, contest_lineup_id, db=db)
    except Exception as e:
        logger.error(f"Failed to leave contest {contest_id} with lineup {contest_lineup_id}: {e}")
        raise
    return reconcile_lineups(lineups, fetch_contest_lineups(contest_id, db=db))
