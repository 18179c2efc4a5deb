import logging
from typing import Any, List, Optional

from typing_extensions import Literal, TypedDict

from contestview.config import ChainContracts
from contestview.utils import generate_entry_id, parse_entry_id, platform_to_payment, validate_amount
from .state import ContestState, can_join, can_leave, get_capabilities

logger = logging.getLogger(__name__)

Target = Literal['payment_token', 'platform_token', 'deposit_manager', 'contest']

class Operation(TypedDict):
    target: Target
    address: str
    function_name: str
    args: List[Any]

class WalletBalances(TypedDict):
    payment_balance: int   # PAYMENT_TOKEN_DECIMALS
    platform_balance: int  # PLATFORM_TOKEN_DECIMALS

class ActionNotAllowedError(ValueError):
    """The contest lifecycle does not permit the requested action."""

class InsufficientBalanceError(ValueError):
    """The wallet cannot cover the amount even after swapping payment tokens."""

def make_operation(target: Target, address: str, function_name: str, args: List[Any]) -> Operation:
    if not address:
        raise ValueError(f"No {target} address configured for {function_name}")
    return Operation(target=target, address=address, function_name=function_name, args=args)

def _require(allowed: bool, action: str, state: Optional[ContestState]) -> None:
    if not allowed:
        state_name = state.name if state is not None else 'UNKNOWN'
        raise ActionNotAllowedError(f"Cannot {action} while contest is {state_name}")

def build_swap_calls(
    contracts: ChainContracts,
    platform_amount: int,
    balances: WalletBalances,
) -> List[Operation]:
    """
    Calls that top up the platform-token balance to `platform_amount`, or nothing if it
    already covers it. The shortfall is converted to payment-token units rounded up, so the
    deposit always covers the fractional remainder.
    """
    validate_amount(platform_amount)
    shortfall = platform_amount - max(balances['platform_balance'], 0)
    if shortfall <= 0:
        return []

    payment_needed = platform_to_payment(shortfall, round_up=True)
    if balances['payment_balance'] < payment_needed:
        raise InsufficientBalanceError(
            f"Need {payment_needed} payment token units to cover a shortfall of {shortfall}, "
            f"wallet holds {balances['payment_balance']}"
        )

    logger.info(f"Swapping {payment_needed} payment token units to cover platform shortfall {shortfall}")
    return [
        make_operation('payment_token', contracts['payment_token_address'], 'approve',
                       [contracts['deposit_manager_address'], payment_needed]),
        make_operation('deposit_manager', contracts['deposit_manager_address'], 'depositUSDC',
                       [payment_needed]),
    ]

def _funded_calls(
    contracts: ChainContracts,
    contest_address: str,
    amount: int,
    balances: WalletBalances,
    terminal: Operation,
) -> List[Operation]:
    calls = build_swap_calls(contracts, amount, balances)
    calls.append(make_operation('platform_token', contracts['platform_token_address'], 'approve',
                                [contest_address, amount]))
    calls.append(terminal)
    return calls

def build_join_contest_calls(
    state: Optional[ContestState],
    contracts: ChainContracts,
    contest_address: str,
    entry_id: Any,
    primary_deposit_amount: int,
    balances: WalletBalances,
) -> List[Operation]:
    _require(can_join(state), 'join', state)
    entry_id = parse_entry_id(entry_id)
    validate_amount(primary_deposit_amount)
    terminal = make_operation('contest', contest_address, 'addPrimaryPosition', [entry_id, []])
    return _funded_calls(contracts, contest_address, primary_deposit_amount, balances, terminal)

def build_join_lineup_calls(
    state: Optional[ContestState],
    contracts: ChainContracts,
    contest_address: str,
    tournament_lineup_id: str,
    primary_deposit_amount: int,
    balances: WalletBalances,
) -> List[Operation]:
    """Join calls for a lineup that has no ledger entry yet; the entry id is derived from the lineup."""
    entry_id = generate_entry_id(contest_address, tournament_lineup_id)
    return build_join_contest_calls(state, contracts, contest_address, entry_id, primary_deposit_amount, balances)

def build_leave_contest_calls(
    state: Optional[ContestState],
    contest_address: str,
    entry_id: Any,
) -> List[Operation]:
    _require(can_leave(state), 'leave', state)
    return [make_operation('contest', contest_address, 'removePrimaryPosition', [parse_entry_id(entry_id)])]

def build_add_prediction_calls(
    state: Optional[ContestState],
    contracts: ChainContracts,
    contest_address: str,
    entry_id: Any,
    amount: int,
    balances: WalletBalances,
) -> List[Operation]:
    _require(get_capabilities(state)['can_predict'], 'predict', state)
    entry_id = parse_entry_id(entry_id)
    validate_amount(amount)
    if amount == 0:
        raise ValueError("Prediction amount must be positive")
    terminal = make_operation('contest', contest_address, 'addSecondaryPosition', [entry_id, amount, []])
    return _funded_calls(contracts, contest_address, amount, balances, terminal)

def build_withdraw_prediction_calls(
    state: Optional[ContestState],
    contest_address: str,
    entry_id: Any,
    amount: int,
    held_balance: Optional[int] = None,
) -> List[Operation]:
    """Sell `amount` secondary tokens of an entry back to the market."""
    _require(get_capabilities(state)['can_withdraw'], 'withdraw prediction', state)
    entry_id = parse_entry_id(entry_id)
    validate_amount(amount)
    if amount == 0:
        raise ValueError("Withdrawal amount must be positive")
    if held_balance is not None and amount > held_balance:
        raise InsufficientBalanceError(f"Cannot withdraw {amount} from entry {entry_id}, holding {held_balance}")
    return [make_operation('contest', contest_address, 'removeSecondaryPosition', [entry_id, amount])]

def build_claim_primary_payout_calls(
    state: Optional[ContestState],
    contest_address: str,
    entry_id: Any,
) -> List[Operation]:
    _require(get_capabilities(state)['can_claim'], 'claim', state)
    return [make_operation('contest', contest_address, 'claimPrimaryPayout', [parse_entry_id(entry_id)])]

def build_claim_secondary_payout_calls(
    state: Optional[ContestState],
    contest_address: str,
    entry_id: Any,
) -> List[Operation]:
    _require(get_capabilities(state)['can_claim'], 'claim', state)
    return [make_operation('contest', contest_address, 'claimSecondaryPayout', [parse_entry_id(entry_id)])]

def build_buy_platform_tokens_calls(contracts: ChainContracts, payment_amount: int) -> List[Operation]:
    validate_amount(payment_amount)
    if payment_amount == 0:
        raise ValueError("Purchase amount must be positive")
    return [
        make_operation('payment_token', contracts['payment_token_address'], 'approve',
                       [contracts['deposit_manager_address'], payment_amount]),
        make_operation('deposit_manager', contracts['deposit_manager_address'], 'depositUSDC',
                       [payment_amount]),
    ]

def build_sell_platform_tokens_calls(
    contracts: ChainContracts,
    platform_amount: int,
    platform_balance: Optional[int] = None,
) -> List[Operation]:
    validate_amount(platform_amount)
    if platform_amount == 0:
        raise ValueError("Sale amount must be positive")
    if platform_balance is not None and platform_amount > platform_balance:
        raise InsufficientBalanceError(f"Cannot sell {platform_amount}, holding {platform_balance}")
    return [make_operation('deposit_manager', contracts['deposit_manager_address'], 'withdrawUSDC',
                           [platform_amount])]
