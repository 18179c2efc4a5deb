from enum import IntEnum
from typing import Any, Optional

from typing_extensions import TypedDict, assert_never

class ContestState(IntEnum):
    """Lifecycle enum as stored on the contest contract."""
    OPEN = 0
    ACTIVE = 1
    LOCKED = 2
    SETTLED = 3
    CANCELLED = 4
    CLOSED = 5

class Capabilities(TypedDict):
    can_predict: bool
    can_withdraw: bool
    can_claim: bool

class PriceSnapshot(TypedDict):
    entry_id: int
    price: int               # fixed-point, PRICE_DECIMALS
    outstanding_supply: int  # fixed-point, PLATFORM_TOKEN_DECIMALS
    caller_balance: int      # fixed-point, PLATFORM_TOKEN_DECIMALS
    has_position: bool

class ContestAggregate(TypedDict):
    total_spectator_collateral: int
    accumulated_prize_bonus: int

NO_CAPABILITIES = Capabilities(can_predict=False, can_withdraw=False, can_claim=False)

def parse_contest_state(raw: Any) -> ContestState:
    """
    Accepts the ledger's integer enum or the backend's status name ("SETTLED").
    """
    if isinstance(raw, ContestState):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return ContestState(raw)
        except ValueError:
            raise ValueError(f"Unknown contest state value: {raw}")
    if isinstance(raw, str):
        name = raw.strip().upper()
        if name in ContestState.__members__:
            return ContestState[name]
    raise ValueError(f"Unknown contest state: {raw!r}")

def get_capabilities(raw_state: Optional[int]) -> Capabilities:
    """
    Single source of truth for which actions the lifecycle allows.
    An unknown (not yet read) state allows nothing. Raw ledger integers are accepted;
    values outside the enum raise ValueError.
    """
    if raw_state is None:
        return NO_CAPABILITIES
    state = parse_contest_state(raw_state)
    if state is ContestState.OPEN or state is ContestState.ACTIVE:
        return Capabilities(can_predict=True, can_withdraw=True, can_claim=False)
    elif state is ContestState.LOCKED:
        return Capabilities(can_predict=False, can_withdraw=False, can_claim=False)
    elif state is ContestState.SETTLED:
        return Capabilities(can_predict=False, can_withdraw=False, can_claim=True)
    elif state is ContestState.CANCELLED:
        return Capabilities(can_predict=False, can_withdraw=True, can_claim=False)
    elif state is ContestState.CLOSED:
        return Capabilities(can_predict=False, can_withdraw=False, can_claim=False)
    else:
        assert_never(state)

def can_join(state: Optional[int]) -> bool:
    """Primary positions can only be opened before the contest starts."""
    return state is not None and parse_contest_state(state) is ContestState.OPEN

def can_leave(state: Optional[int]) -> bool:
    return get_capabilities(state)['can_withdraw'] and state in (ContestState.OPEN, ContestState.CANCELLED)

def empty_snapshot(entry_id: int) -> PriceSnapshot:
    return PriceSnapshot(entry_id=entry_id, price=0, outstanding_supply=0, caller_balance=0, has_position=False)

class FieldRead(TypedDict):
    """One ledger read as seen by consumers: a value, an error, or still in flight."""
    value: Optional[int]
    error: Optional[str]
    is_loading: bool
    fetched_at_ms: Optional[int]

def loading_field() -> FieldRead:
    return FieldRead(value=None, error=None, is_loading=True, fetched_at_ms=None)

def ok_field(value: int, fetched_at_ms: int) -> FieldRead:
    return FieldRead(value=value, error=None, is_loading=False, fetched_at_ms=fetched_at_ms)

def failed_field(error: str, fetched_at_ms: int) -> FieldRead:
    return FieldRead(value=None, error=error, is_loading=False, fetched_at_ms=fetched_at_ms)

def field_value(read: Optional[FieldRead]) -> int:
    """Numeric value of a read; missing, failed and negative reads count as zero."""
    if read is None or read['value'] is None or read['value'] < 0:
        return 0
    return read['value']
