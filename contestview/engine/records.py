from typing import Any, Dict, List, Optional

from typing_extensions import NotRequired, TypedDict

class DetailedResult(TypedDict):
    entry_id: str
    position: int
    score: int
    payout_basis_points: int
    username: str
    lineup_name: str

class ContestResults(TypedDict):
    winning_entries: List[str]
    payout_bps: List[int]
    detailed_results: List[DetailedResult]

class ContestLineupRecord(TypedDict):
    id: str
    contest_id: str
    tournament_lineup_id: str
    user_id: str
    entry_id: Optional[str]
    lineup_name: str
    position: int
    score: int
    status: str
    provisional: NotRequired[bool]

class ContestRecord(TypedDict):
    id: str
    name: str
    status: str
    address: str
    chain_id: int
    settings: Dict[str, Any]
    results: Optional[ContestResults]
