# contestview/services/__init__.py

# Async I/O around the pure engine: ledger reads, caching, claim loading and submission.
from .cache import ReadCache, make_read_cache
from .ledger import LedgerCaller, LedgerReadError, Web3LedgerCaller
from .reader import read_contest_snapshot, read_prize_pools, read_wallet_balances
from .contest_view import ContestDataLoader, build_prediction_view, load_payouts, preview_purchase
from .claims import load_settlement_claims
from .transactions import SubmissionError, TransactionSubmitter, execute_contest_action, submit_action
from .lineups import add_provisional_lineup, reconcile_lineups, remove_lineup, join_contest, leave_contest
