import time
from decimal import Decimal, DecimalException, getcontext
from typing import Any

from web3 import Web3

getcontext().prec = 60

PAYMENT_TOKEN_DECIMALS = 6
PLATFORM_TOKEN_DECIMALS = 18
PRICE_DECIMALS = 6

# Derived entry ids stay below 2**53 - 1 so they survive JSON and JS number round trips.
MAX_DERIVED_ENTRY_ID = 2**53 - 1

def get_current_ms() -> int:
    return int(time.time() * 1000)

def validate_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValueError(f"Invalid amount: {amount!r}. Must be an integer of base units.")
    if amount < 0:
        raise ValueError(f"Invalid amount: {amount}. Must be non-negative.")

def validate_digits(from_digits: int, to_digits: int) -> None:
    if from_digits < 0 or to_digits < 0:
        raise ValueError(f"Invalid precision pair ({from_digits}, {to_digits}).")

def to_higher_precision(amount: int, from_digits: int, to_digits: int) -> int:
    """Scale a fixed-point integer up to a representation with more fractional digits."""
    validate_digits(from_digits, to_digits)
    if to_digits < from_digits:
        raise ValueError(f"Target precision {to_digits} is lower than source precision {from_digits}.")
    return amount * 10 ** (to_digits - from_digits)

def from_higher_precision(amount: int, from_digits: int, to_digits: int, round_up: bool = False) -> int:
    """
    Scale a fixed-point integer down to fewer fractional digits.
    Truncates by default; round_up=True returns the smallest amount that still covers the input.
    """
    validate_digits(from_digits, to_digits)
    if to_digits > from_digits:
        raise ValueError(f"Target precision {to_digits} is higher than source precision {from_digits}.")
    factor = 10 ** (from_digits - to_digits)
    quotient, remainder = divmod(amount, factor)
    if round_up and remainder:
        quotient += 1
    return quotient

def payment_to_platform(amount: int) -> int:
    return to_higher_precision(amount, PAYMENT_TOKEN_DECIMALS, PLATFORM_TOKEN_DECIMALS)

def platform_to_payment(amount: int, round_up: bool = False) -> int:
    return from_higher_precision(amount, PLATFORM_TOKEN_DECIMALS, PAYMENT_TOKEN_DECIMALS, round_up=round_up)

def format_units(amount: int | None, decimals: int) -> Decimal:
    """Human-readable Decimal for a fixed-point integer; None and negatives read as zero."""
    if not amount or amount < 0:
        return Decimal(0)
    return Decimal(amount).scaleb(-decimals)

def parse_units(value: str | int | Decimal, decimals: int) -> int:
    """
    Parse a human amount ("10.5") into base units. Raises ValueError for anything that is not a
    non-negative number representable with the given number of fractional digits.
    """
    if isinstance(value, float):
        raise ValueError("Floats are not accepted as amounts; pass a string or Decimal.")
    try:
        parsed = Decimal(str(value).strip())
    except DecimalException:
        raise ValueError(f"Unparseable amount: {value!r}")
    if not parsed.is_finite():
        raise ValueError(f"Unparseable amount: {value!r}")
    if parsed < 0:
        raise ValueError(f"Invalid amount: {value}. Must be non-negative.")
    try:
        scaled = parsed.scaleb(decimals)
    except DecimalException:
        raise ValueError(f"Amount {value} is out of range.")
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {value} has more than {decimals} fractional digits.")
    return int(scaled)

def safe_divide(num: Decimal, den: Decimal) -> Decimal:
    """Division that degrades to zero instead of raising on an empty or negative denominator."""
    if den <= Decimal(0):
        return Decimal(0)
    return Decimal(num) / Decimal(den)

def non_negative(value: int | None) -> int:
    if value is None or value < 0:
        return 0
    return value

def parse_entry_id(raw: Any) -> int:
    """Ledger entry ids are non-negative integers; backend rows carry them as strings."""
    if isinstance(raw, bool):
        raise ValueError(f"Invalid entry id: {raw!r}")
    if isinstance(raw, int):
        entry_id = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        entry_id = int(raw.strip())
    else:
        raise ValueError(f"Invalid entry id: {raw!r}")
    if entry_id < 0:
        raise ValueError(f"Invalid entry id: {raw!r}")
    return entry_id

def generate_entry_id(contest_address: str, tournament_lineup_id: str) -> int:
    """
    Deterministic ledger entry id for a lineup joining a contest: keccak256 over the packed
    (address, string) pair, reduced modulo MAX_DERIVED_ENTRY_ID.
    """
    if not Web3.is_address(contest_address):
        raise ValueError(f"Invalid contest address: {contest_address!r}")
    if not tournament_lineup_id:
        raise ValueError("Tournament lineup id is required to derive an entry id.")
    digest = Web3.solidity_keccak(
        ['address', 'string'],
        [Web3.to_checksum_address(contest_address), tournament_lineup_id],
    )
    return int.from_bytes(digest, 'big') % MAX_DERIVED_ENTRY_ID

def validate_entry_id(entry_id: Any, contest_address: str, tournament_lineup_id: str) -> bool:
    try:
        return parse_entry_id(entry_id) == generate_entry_id(contest_address, tournament_lineup_id)
    except ValueError:
        return False
