from decimal import Decimal
from typing import List

from typing_extensions import TypedDict

from contestview.utils import PLATFORM_TOKEN_DECIMALS, format_units, non_negative

LARGE_CONTEST_THRESHOLD = 10

class PayoutPlace(TypedDict):
    position: int
    percentage: int
    label: str
    amount: Decimal

class PrizePoolReads(TypedDict):
    primary_prize_pool: int
    primary_prize_pool_subsidy: int
    total_primary_position_subsidies: int
    secondary_prize_pool: int
    secondary_prize_pool_subsidy: int

class PrizePoolBreakdown(TypedDict):
    primary_base: Decimal
    primary_subsidy: Decimal
    primary_position_subsidies: Decimal
    primary_total: Decimal
    secondary_base: Decimal
    secondary_subsidy: Decimal
    secondary_total: Decimal
    total: Decimal
    places: List[PayoutPlace]

PLACE_LABELS = {1: '1st Place', 2: '2nd Place', 3: '3rd Place'}

def payout_structure(entry_count: int, threshold: int = LARGE_CONTEST_THRESHOLD) -> List[tuple[int, int]]:
    """(position, percentage) pairs; large contests pay the top three, small ones winner-take-all."""
    if entry_count >= threshold:
        return [(1, 70), (2, 20), (3, 10)]
    return [(1, 100)]

def prize_pool_breakdown(
    reads: PrizePoolReads,
    entry_count: int,
    threshold: int = LARGE_CONTEST_THRESHOLD,
) -> PrizePoolBreakdown:
    primary_base = format_units(non_negative(reads['primary_prize_pool']), PLATFORM_TOKEN_DECIMALS)
    primary_subsidy = format_units(non_negative(reads['primary_prize_pool_subsidy']), PLATFORM_TOKEN_DECIMALS)
    position_subsidies = format_units(non_negative(reads['total_primary_position_subsidies']), PLATFORM_TOKEN_DECIMALS)
    secondary_base = format_units(non_negative(reads['secondary_prize_pool']), PLATFORM_TOKEN_DECIMALS)
    secondary_subsidy = format_units(non_negative(reads['secondary_prize_pool_subsidy']), PLATFORM_TOKEN_DECIMALS)

    primary_total = primary_base + primary_subsidy + position_subsidies
    secondary_total = secondary_base + secondary_subsidy

    places = [
        PayoutPlace(
            position=position,
            percentage=pct,
            label=PLACE_LABELS[position],
            amount=primary_total * Decimal(pct) / Decimal(100),
        )
        for position, pct in payout_structure(entry_count, threshold)
    ]

    return PrizePoolBreakdown(
        primary_base=primary_base,
        primary_subsidy=primary_subsidy,
        primary_position_subsidies=position_subsidies,
        primary_total=primary_total,
        secondary_base=secondary_base,
        secondary_subsidy=secondary_subsidy,
        secondary_total=secondary_total,
        total=primary_total + secondary_total,
        places=places,
    )
