from .state import (
    ContestState,
    Capabilities,
    PriceSnapshot,
    ContestAggregate,
    FieldRead,
    parse_contest_state,
    get_capabilities,
    can_join,
    can_leave,
)
from .pricing import EntryMetrics, PurchaseProjection, observed_metrics, project_purchase, project_purchase_for_entry
from .claims import PrimaryClaim, SecondaryClaim, SettlementClaims, aggregate_settlement_claims
from .operations import Operation, WalletBalances, ActionNotAllowedError, InsufficientBalanceError
from .payouts import prize_pool_breakdown
