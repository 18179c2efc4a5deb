import logging
import re
from typing import Any, Dict, List, Optional

from supabase import Client

from contestview.config import get_supabase_client
from contestview.engine.records import ContestLineupRecord, ContestRecord, ContestResults, DetailedResult

logger = logging.getLogger(__name__)

CONTESTS_TABLE = 'contests'
CONTEST_LINEUPS_TABLE = 'contest_lineups'

def get_db() -> Client:
    return get_supabase_client()

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')

def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', key).lower()

def normalize_keys(row: Dict[str, Any]) -> Dict[str, Any]:
    """Rows may come back camelCased depending on how the backend exposes the table."""
    return {to_snake_case(k): v for k, v in row.items()}

def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)

def normalize_results(raw: Optional[Dict[str, Any]]) -> Optional[ContestResults]:
    if not raw:
        return None
    raw = normalize_keys(raw)
    detailed: List[DetailedResult] = []
    for item in raw.get('detailed_results') or []:
        item = normalize_keys(item)
        detailed.append(DetailedResult(
            entry_id=str(item.get('entry_id', '')),
            position=int(item.get('position') or 0),
            score=int(item.get('score') or 0),
            payout_basis_points=int(item.get('payout_basis_points') or 0),
            username=item.get('username') or '',
            lineup_name=item.get('lineup_name') or '',
        ))
    return ContestResults(
        winning_entries=[str(e) for e in raw.get('winning_entries') or []],
        payout_bps=[int(b) for b in raw.get('payout_bps') or []],
        detailed_results=detailed,
    )

def normalize_contest(row: Dict[str, Any]) -> ContestRecord:
    row = normalize_keys(row)
    return ContestRecord(
        id=str(row['id']),
        name=row.get('name') or '',
        status=row.get('status') or 'OPEN',
        address=row.get('address') or '',
        chain_id=int(row.get('chain_id') or 0),
        settings=row.get('settings') or {},
        results=normalize_results(row.get('results')),
    )

def normalize_lineup(row: Dict[str, Any]) -> ContestLineupRecord:
    row = normalize_keys(row)
    return ContestLineupRecord(
        id=str(row['id']),
        contest_id=str(row.get('contest_id') or ''),
        tournament_lineup_id=str(row.get('tournament_lineup_id') or ''),
        user_id=str(row.get('user_id') or ''),
        entry_id=_optional_str(row.get('entry_id')),
        lineup_name=row.get('lineup_name') or '',
        position=int(row.get('position') or 0),
        score=int(row.get('score') or 0),
        status=row.get('status') or 'ACTIVE',
    )

# Contest queries
def fetch_contest(contest_id: str, db: Optional[Client] = None) -> Optional[ContestRecord]:
    db = db or get_db()
    result = db.table(CONTESTS_TABLE).select('*').eq('id', contest_id).limit(1).execute()
    if not result.data:
        return None
    return normalize_contest(result.data[0])

def fetch_contests(chain_id: Optional[int] = None, status: Optional[str] = None,
                   db: Optional[Client] = None) -> List[ContestRecord]:
    db = db or get_db()
    query = db.table(CONTESTS_TABLE).select('*')
    if chain_id is not None:
        query = query.eq('chain_id', chain_id)
    if status is not None:
        query = query.eq('status', status)
    return [normalize_contest(row) for row in query.execute().data]

# Lineup queries
def fetch_contest_lineups(contest_id: str, db: Optional[Client] = None) -> List[ContestLineupRecord]:
    db = db or get_db()
    result = db.table(CONTEST_LINEUPS_TABLE).select('*').eq('contest_id', contest_id).execute()
    lineups = []
    for row in result.data:
        try:
            lineups.append(normalize_lineup(row))
        except KeyError as e:
            logger.warning(f"Skipping contest lineup row without {e} for contest {contest_id}")
    return lineups

def insert_contest_lineup(contest_id: str, tournament_lineup_id: str, user_id: str,
                          entry_id: Optional[int] = None, db: Optional[Client] = None) -> ContestLineupRecord:
    db = db or get_db()
    row = {
        'contest_id': contest_id,
        'tournament_lineup_id': tournament_lineup_id,
        'user_id': user_id,
        'entry_id': str(entry_id) if entry_id is not None else None,
        'status': 'ACTIVE',
    }
    result = db.table(CONTEST_LINEUPS_TABLE).insert(row).execute()
    if not result.data:
        raise ValueError(f"Backend returned no row for lineup {tournament_lineup_id} in contest {contest_id}")
    logger.info(f"Inserted lineup {tournament_lineup_id} into contest {contest_id}")
    return normalize_lineup(result.data[0])

def delete_contest_lineup(contest_id: str, contest_lineup_id: str, db: Optional[Client] = None) -> None:
    db = db or get_db()
    db.table(CONTEST_LINEUPS_TABLE).delete().eq('id', contest_lineup_id).eq('contest_id', contest_id).execute()
    logger.info(f"Deleted lineup {contest_lineup_id} from contest {contest_id}")
