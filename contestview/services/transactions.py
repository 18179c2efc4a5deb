import logging
from typing import Callable, List, Optional, Protocol

from contestview.config import ChainContracts
from contestview.engine.operations import Operation, WalletBalances
from contestview.engine.state import ContestState
from .cache import ReadCache
from .ledger import LedgerCaller
from .reader import read_contest_snapshot, read_wallet_balances, snapshot_state

logger = logging.getLogger(__name__)

class SubmissionError(RuntimeError):
    """The signing channel rejected or failed the submission. The message is the channel's own."""

class TransactionSubmitter(Protocol):
    async def submit(self, chain_id: int, operations: List[Operation]) -> str: ...

Builder = Callable[[Optional[ContestState], WalletBalances], List[Operation]]

async def submit_action(
    submitter: TransactionSubmitter,
    cache: ReadCache,
    chain_id: int,
    contest_address: str,
    caller: Optional[str],
    operations: List[Operation],
) -> str:
    """
    Hand an ordered call list to the signing channel once. Whatever the outcome, every
    cached read of the contest and the caller's token balances is dropped afterwards.
    """
    if not operations:
        raise ValueError("Nothing to submit")
    try:
        tx_hash = await submitter.submit(chain_id, operations)
    except SubmissionError:
        logger.error(f"Submission of {operations[-1]['function_name']} to {contest_address} failed")
        raise
    except Exception as e:
        logger.error(f"Submission of {operations[-1]['function_name']} to {contest_address} failed: {e}")
        raise SubmissionError(str(e)) from e
    finally:
        cache.invalidate(contest_address, chain_id)
        cache.invalidate_balances(caller, chain_id)

    logger.info(f"Submitted {len(operations)} calls ending in {operations[-1]['function_name']}: {tx_hash}")
    return tx_hash

async def execute_contest_action(
    ledger: LedgerCaller,
    submitter: TransactionSubmitter,
    cache: ReadCache,
    contracts: ChainContracts,
    contest_address: str,
    caller: str,
    build: Builder,
) -> str:
    """
    Build from a fresh (uncached) lifecycle and balance read, then submit. The builder
    raises ActionNotAllowedError if the state changed since the view was rendered.
    """
    snapshot = await read_contest_snapshot(ledger, contest_address, contracts['chain_id'], [], None)
    state = snapshot_state(snapshot)
    balances = await read_wallet_balances(ledger, contracts, caller)
    operations = build(state, balances)
    return await submit_action(submitter, cache, contracts['chain_id'], contest_address, caller, operations)
