import pytest

from conftest import CONTEST, FakeSupabase
from contestview.db.queries import CONTEST_LINEUPS_TABLE
from contestview.services.lineups import (
    add_provisional_lineup,
    is_provisional,
    join_contest,
    leave_contest,
    reconcile_lineups,
    remove_lineup,
)
from contestview.utils import generate_entry_id


@pytest.fixture
def seeded(db: FakeSupabase) -> FakeSupabase:
    db.table(CONTEST_LINEUPS_TABLE).rows.append({
        "id": "row-1", "contest_id": "contest-1", "tournament_lineup_id": "t1", "user_id": "u1",
        "entry_id": "1", "lineup_name": "First", "position": 0, "score": 0, "status": "ACTIVE",
    })
    return db


def test_provisional_lineup_shape():
    lineups = add_provisional_lineup([], "contest-1", "t9", "u9", now_ms=1700000000000)
    [placeholder] = lineups
    assert placeholder["id"] == "temp-1700000000000"
    assert placeholder["entry_id"] is None
    assert is_provisional(placeholder)


def test_reconcile_drops_placeholders(seeded: FakeSupabase):
    local = add_provisional_lineup([], "contest-1", "t9", now_ms=1)
    fetched = [{"id": "row-1", "entry_id": "1"}]
    assert reconcile_lineups(local, fetched) == fetched


def test_remove_lineup():
    lineups = add_provisional_lineup([], "contest-1", "t9", now_ms=1)
    assert remove_lineup(lineups, "temp-1") == []


def test_join_contest_rereads_backend(seeded: FakeSupabase):
    local = add_provisional_lineup([], "contest-1", "t2", "u2", now_ms=1)
    lineups = join_contest(seeded, local, "contest-1", "t2", "u2", entry_id=2)
    assert [l["tournament_lineup_id"] for l in lineups] == ["t1", "t2"]
    assert lineups[1]["entry_id"] == "2"
    assert not any(is_provisional(l) for l in lineups)


def test_join_contest_derives_entry_id(seeded: FakeSupabase):
    lineups = join_contest(seeded, [], "contest-1", "t2", "u2", contest_address=CONTEST)
    assert lineups[1]["entry_id"] == str(generate_entry_id(CONTEST, "t2"))


def test_join_contest_rejects_mismatched_entry_id(seeded: FakeSupabase):
    wrong = generate_entry_id(CONTEST, "t2") + 1
    with pytest.raises(ValueError, match="does not match"):
        join_contest(seeded, [], "contest-1", "t2", "u2", entry_id=wrong, contest_address=CONTEST)
    assert len(seeded.table(CONTEST_LINEUPS_TABLE).rows) == 1


def test_join_contest_failure_propagates(seeded: FakeSupabase):
    seeded.table(CONTEST_LINEUPS_TABLE).fail = "duplicate lineup"
    with pytest.raises(RuntimeError, match="duplicate lineup"):
        join_contest(seeded, [], "contest-1", "t1", "u1")


def test_leave_contest(seeded: FakeSupabase):
    assert leave_contest(seeded, [], "contest-1", "row-1") == []
