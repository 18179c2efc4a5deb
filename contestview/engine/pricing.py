from decimal import Decimal
from typing import Iterable, Optional

from typing_extensions import TypedDict

from contestview.utils import (
    PLATFORM_TOKEN_DECIMALS, PRICE_DECIMALS, format_units, non_negative, safe_divide
)
from .state import ContestAggregate, PriceSnapshot

DEFAULT_FEE_RATE = Decimal('0.15')
HUNDRED = Decimal('100')
ZERO = Decimal('0')

class EntryMetrics(TypedDict):
    entry_id: int
    price: int
    price_formatted: Decimal
    balance: int
    balance_formatted: Decimal
    total_supply: int
    total_supply_formatted: Decimal
    ownership_percent: Decimal
    implied_winnings: int
    implied_winnings_formatted: Decimal
    has_position: bool

class PurchaseProjection(TypedDict):
    purchase_amount: Decimal
    net_amount: Decimal
    tokens_received: Decimal
    ownership_percent: Decimal
    projected_return: Decimal
    is_first_purchase: bool
    is_estimate: bool

def ownership_percentage(balance: int, supply: int) -> Decimal:
    """balance / supply * 100, bounded to [0, 100]; zero when nothing is outstanding."""
    balance = non_negative(balance)
    supply = non_negative(supply)
    if supply == 0 or balance == 0:
        return ZERO
    return min(HUNDRED, Decimal(balance) * HUNDRED / Decimal(supply))

def implied_winnings(balance: int, supply: int, total_collateral: int) -> int:
    """
    Payout the holder would receive if the entry won right now, in the collateral's base units.
    Integer floor division, matching the ledger's arithmetic.
    """
    balance = non_negative(balance)
    supply = non_negative(supply)
    total_collateral = non_negative(total_collateral)
    if balance == 0 or supply == 0 or total_collateral == 0:
        return 0
    return balance * total_collateral // supply

def observed_metrics(snapshot: PriceSnapshot, aggregate: ContestAggregate) -> EntryMetrics:
    price = non_negative(snapshot['price'])
    balance = non_negative(snapshot['caller_balance'])
    supply = non_negative(snapshot['outstanding_supply'])
    winnings = implied_winnings(balance, supply, aggregate['total_spectator_collateral'])

    return EntryMetrics(
        entry_id=snapshot['entry_id'],
        price=price,
        price_formatted=format_units(price, PRICE_DECIMALS),
        balance=balance,
        balance_formatted=format_units(balance, PLATFORM_TOKEN_DECIMALS),
        total_supply=supply,
        total_supply_formatted=format_units(supply, PLATFORM_TOKEN_DECIMALS),
        ownership_percent=ownership_percentage(balance, supply),
        implied_winnings=winnings,
        implied_winnings_formatted=format_units(winnings, PLATFORM_TOKEN_DECIMALS),
        has_position=snapshot['has_position'] and balance > 0,
    )

def zero_projection(amount: Decimal = ZERO) -> PurchaseProjection:
    return PurchaseProjection(
        purchase_amount=amount,
        net_amount=ZERO,
        tokens_received=ZERO,
        ownership_percent=ZERO,
        projected_return=ZERO,
        is_first_purchase=False,
        is_estimate=True,
    )

def project_purchase(
    amount: Decimal,
    price: Decimal,
    supply: Decimal,
    pool_total: Decimal,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
) -> PurchaseProjection:
    """
    Preview of a secondary purchase of `amount` against an entry, in human units.

    This is a local approximation of the market maker: the ledger prices the purchase at
    submission time and its result can differ. Every projection is flagged is_estimate.

    net = amount * (1 - fee)
    first purchase (price or supply is zero): all net tokens, 100% ownership, return = pool + net
    otherwise: tokens = net / price, ownership = tokens / (supply + tokens),
               return = ownership share * (pool + net)
    """
    amount = Decimal(amount)
    if amount <= ZERO:
        return zero_projection(amount)

    price = max(Decimal(price), ZERO)
    supply = max(Decimal(supply), ZERO)
    pool_total = max(Decimal(pool_total), ZERO)
    fee_rate = Decimal(fee_rate)

    net = amount * (Decimal(1) - fee_rate)
    new_pool = pool_total + net

    if price == ZERO or supply == ZERO:
        return PurchaseProjection(
            purchase_amount=amount,
            net_amount=net,
            tokens_received=net,
            ownership_percent=HUNDRED,
            projected_return=new_pool,
            is_first_purchase=True,
            is_estimate=True,
        )

    tokens_received = net / price
    new_supply = supply + tokens_received
    if new_supply <= ZERO:
        return zero_projection(amount)

    share = safe_divide(tokens_received, new_supply)
    return PurchaseProjection(
        purchase_amount=amount,
        net_amount=net,
        tokens_received=tokens_received,
        ownership_percent=share * HUNDRED,
        projected_return=share * new_pool,
        is_first_purchase=False,
        is_estimate=True,
    )

def projection_pool_total(
    aggregate: Optional[ContestAggregate],
    snapshots: Iterable[PriceSnapshot] = (),
) -> Decimal:
    """
    Pool used as T in projections: total spectator collateral, or the sum of entry supplies
    when the aggregate has not been read.
    """
    if aggregate is not None:
        return format_units(aggregate['total_spectator_collateral'], PLATFORM_TOKEN_DECIMALS)
    total_supply = sum(non_negative(s['outstanding_supply']) for s in snapshots)
    return format_units(total_supply, PLATFORM_TOKEN_DECIMALS)

def project_purchase_for_entry(
    amount: Decimal,
    snapshot: PriceSnapshot,
    pool_total: Decimal,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
) -> PurchaseProjection:
    return project_purchase(
        amount,
        format_units(snapshot['price'], PRICE_DECIMALS),
        format_units(snapshot['outstanding_supply'], PLATFORM_TOKEN_DECIMALS),
        pool_total,
        fee_rate,
    )
