from typing import Any, Dict, List, Optional, Tuple

import pytest

from contestview.config import ChainContracts
from contestview.engine.records import ContestRecord, ContestResults
from contestview.services.cache import ReadCache
from contestview.services.ledger import ReadRequest

CONTEST = "0x00000000000000000000000000000000000000c0"
CALLER = "0x00000000000000000000000000000000000000e1"
CHAIN_ID = 84532
E18 = 10**18


class FakeLedger:
    """Answers reads from a table keyed by (function name, args); exceptions in the table are raised."""

    def __init__(self, values: Optional[Dict[Tuple[str, tuple], Any]] = None):
        self.values: Dict[Tuple[str, tuple], Any] = dict(values or {})
        self.calls: List[ReadRequest] = []

    def set(self, function_name: str, *args, value: Any) -> None:
        self.values[(function_name, tuple(args))] = value

    async def call(self, request: ReadRequest) -> int:
        self.calls.append(request)
        value = self.values.get((request["function_name"], tuple(request["args"])), 0)
        if isinstance(value, Exception):
            raise value
        return value

    def count(self, function_name: str) -> int:
        return sum(1 for c in self.calls if c["function_name"] == function_name)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ReadCache:
    return ReadCache(ttl_s=15.0, clock=clock)


@pytest.fixture
def contracts() -> ChainContracts:
    return ChainContracts(
        chain_id=CHAIN_ID,
        rpc_url="http://localhost:8545",
        payment_token_address="0x00000000000000000000000000000000000000a1",
        platform_token_address="0x00000000000000000000000000000000000000b2",
        deposit_manager_address="0x00000000000000000000000000000000000000d3",
    )


def make_contest(status: str = "ACTIVE", results: Optional[ContestResults] = None) -> ContestRecord:
    return ContestRecord(
        id="contest-1",
        name="Sunday Major",
        status=status,
        address=CONTEST,
        chain_id=CHAIN_ID,
        settings={},
        results=results,
    )


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table: "FakeTable", action: str, payload: Any = None):
        self.table = table
        self.action = action
        self.payload = payload
        self.filters: List[Tuple[str, Any]] = []

    def select(self, *_):
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def limit(self, _n: int):
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(c) == v for c, v in self.filters)

    def execute(self) -> FakeResult:
        if self.table.fail:
            raise RuntimeError(self.table.fail)
        if self.action == "select":
            return FakeResult([r for r in self.table.rows if self._matches(r)])
        if self.action == "insert":
            row = {"id": f"row-{len(self.table.rows) + 1}", **self.payload}
            self.table.rows.append(row)
            return FakeResult([row])
        if self.action == "delete":
            removed = [r for r in self.table.rows if self._matches(r)]
            self.table.rows = [r for r in self.table.rows if not self._matches(r)]
            return FakeResult(removed)
        raise AssertionError(self.action)


class FakeTable:
    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.fail: Optional[str] = None

    def select(self, *_):
        return FakeQuery(self, "select")

    def insert(self, payload: Dict[str, Any]):
        return FakeQuery(self, "insert", payload)

    def delete(self):
        return FakeQuery(self, "delete")


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, FakeTable] = {}

    def table(self, name: str) -> FakeTable:
        return self.tables.setdefault(name, FakeTable())


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()
