import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from contestview.config import ClientParams, get_default_client_params

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 15.0

# (address, chain id, read group, entry ids, caller)
CacheKey = Tuple[str, int, str, Tuple[int, ...], Optional[str]]

WALLET_BALANCES_GROUP = 'wallet_balances'

def make_key(address: str, chain_id: int, group: str,
             entry_ids: Iterable[int] = (), caller: Optional[str] = None) -> CacheKey:
    return (
        address.lower(),
        chain_id,
        group,
        tuple(sorted(set(entry_ids))),
        caller.lower() if caller else None,
    )

class ReadCache:
    """
    Time-bounded store of completed read groups. Instances are passed explicitly to
    whatever reads or submits, so tests and separate sessions never share state.
    """
    def __init__(self, ttl_s: float = DEFAULT_TTL_S, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[float, Any]] = {}

    def get(self, key: CacheKey) -> Optional[Any]:
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at >= self.ttl_s:
            del self._entries[key]
            return None
        return value

    def put(self, key: CacheKey, value: Any) -> None:
        if self.ttl_s <= 0:
            return
        now = self._clock()
        self.prune(now)
        self._entries[key] = (now, value)

    def prune(self, now: Optional[float] = None) -> int:
        """Drop every expired group, including keys that will never be read again."""
        now = self._clock() if now is None else now
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_s]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate(self, contest_address: str, chain_id: int) -> int:
        """Drop every read group of one contest; returns how many were dropped."""
        address = contest_address.lower()
        stale = [k for k in self._entries if k[0] == address and k[1] == chain_id]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info(f"Invalidated {len(stale)} cached read groups for contest {contest_address} on chain {chain_id}")
        return len(stale)

    def invalidate_balances(self, account: Optional[str], chain_id: int) -> int:
        if not account:
            return 0
        account = account.lower()
        stale = [k for k in self._entries
                 if k[1] == chain_id and k[2] == WALLET_BALANCES_GROUP and k[4] == account]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def invalidate_all(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

def make_read_cache(params: Optional[ClientParams] = None) -> ReadCache:
    params = params or get_default_client_params()
    return ReadCache(ttl_s=params['read_cache_ttl_s'])
