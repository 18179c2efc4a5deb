import logging
from typing import Any, Dict, List, Optional, Protocol

from typing_extensions import Literal, TypedDict
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from contestview.config import ChainContracts, get_chain_contracts

logger = logging.getLogger(__name__)

ContractKind = Literal['contest', 'erc20']

def _view(name: str, inputs: List[Dict[str, str]], output: str = 'uint256') -> Dict[str, Any]:
    return {
        'type': 'function',
        'name': name,
        'stateMutability': 'view',
        'inputs': inputs,
        'outputs': [{'name': '', 'type': output}],
    }

_ENTRY = [{'name': 'entryId', 'type': 'uint256'}]

# Only the read surface this package uses
CONTEST_ABI = [
    _view('state', [], 'uint8'),
    _view('calculateEntryPrice', _ENTRY),
    _view('netPosition', _ENTRY),
    _view('balanceOf', [{'name': 'account', 'type': 'address'}, {'name': 'id', 'type': 'uint256'}]),
    _view('totalSpectatorCollateral', []),
    _view('accumulatedPrizeBonus', []),
    _view('primaryPrizePoolPayouts', _ENTRY),
    _view('primaryPositionSubsidy', _ENTRY),
    _view('primaryPrizePool', []),
    _view('primaryPrizePoolSubsidy', []),
    _view('totalPrimaryPositionSubsidies', []),
    _view('secondaryPrizePool', []),
    _view('secondaryPrizePoolSubsidy', []),
]

ERC20_ABI = [
    _view('balanceOf', [{'name': 'account', 'type': 'address'}]),
]

ABIS = {'contest': CONTEST_ABI, 'erc20': ERC20_ABI}

class LedgerReadError(RuntimeError):
    """A ledger read needed to proceed could not be completed."""

class ReadRequest(TypedDict):
    field: str
    entry_id: Optional[int]
    contract: ContractKind
    address: str
    function_name: str
    args: List[Any]

class LedgerCaller(Protocol):
    async def call(self, request: ReadRequest) -> int: ...

class Web3LedgerCaller:
    """
    Executes read requests as eth_call against one chain. Contract handles are built once
    per (contract kind, address).
    """
    def __init__(self, contracts: ChainContracts, w3: Optional[AsyncWeb3] = None):
        self.contracts = contracts
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(contracts['rpc_url']))
        self._handles: Dict[tuple[str, str], Any] = {}

    @classmethod
    def for_chain(cls, chain_id: int) -> 'Web3LedgerCaller':
        contracts = get_chain_contracts(chain_id)
        if contracts is None:
            raise ValueError(f"Unsupported chain: {chain_id}")
        return cls(contracts)

    def _contract(self, kind: ContractKind, address: str):
        key = (kind, address.lower())
        if key not in self._handles:
            self._handles[key] = self.w3.eth.contract(
                address=Web3.to_checksum_address(address),
                abi=ABIS[kind],
            )
        return self._handles[key]

    async def call(self, request: ReadRequest) -> int:
        contract = self._contract(request['contract'], request['address'])
        args = [Web3.to_checksum_address(a) if isinstance(a, str) else a for a in request['args']]
        fn = getattr(contract.functions, request['function_name'])
        logger.debug(f"eth_call {request['function_name']}{tuple(args)} on {request['address']}")
        result = await fn(*args).call()
        return int(result)
