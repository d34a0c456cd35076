"""
Integration tests: offline editing followed by reconnection.

Runs a file-backed replica against the in-process remote store and drives
connectivity through the monitor, the way a client app would.
"""

import pytest

from tourneysync.core.models import LOCAL_ID, SYNC_STATUS, ConflictEvent
from tourneysync.core.session import Session
from tourneysync.remote.memory import MemoryRemoteStore
from tourneysync.sync.connectivity import ConnectivityMonitor
from tourneysync.sync.engine import EngineStatus

pytestmark = pytest.mark.integration


@pytest.fixture
def server() -> MemoryRemoteStore:
    return MemoryRemoteStore()


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(initially_online=False)


@pytest.fixture
def conflicts() -> list[ConflictEvent]:
    return []


@pytest.fixture
def session(sample_config, server, monitor, conflicts):
    with Session(
        config=sample_config,
        remote=server,
        monitor=monitor,
        on_conflict=conflicts.append,
    ) as active:
        yield active


def test_offline_insert_then_reconnect(session: Session, server, monitor) -> None:
    tournament = session.records.create_record("tournaments", {"name": "Club Night"})
    local_id = tournament[LOCAL_ID]
    session.records.update_record("tournaments", local_id, {"name": "Club Night #12"})

    assert session.engine.get_status() is EngineStatus.OFFLINE
    assert session.queue.count() == 2
    assert server.rows("tournaments") == []

    monitor.set_online(True)

    record = session.records.get_record("tournaments", local_id)
    [row] = server.rows("tournaments")
    assert record["id"] == row["id"]
    assert row["name"] == "Club Night #12"
    assert record[SYNC_STATUS] == "synced"
    assert session.queue.count() == 0
    assert session.engine.get_status() is EngineStatus.IDLE


def test_offline_create_then_delete(session: Session, server, monitor) -> None:
    created = session.records.create_record("registrations", {"player_id": "p-1"})
    session.records.delete_record("registrations", created[LOCAL_ID])

    monitor.set_online(True)

    assert server.rows("registrations") == []
    assert session.queue.count() == 0
    assert session.records.all_records("registrations") == []


def test_scores_from_both_players_merge(session: Session, server, monitor, conflicts) -> None:
    row = server.seed(
        "matches",
        {
            "player1_id": "alice",
            "player2_id": "bob",
            "confirmed_by_p1": False,
            "confirmed_by_p2": False,
            "confirmation_status": "pending",
            "scores": None,
            "updated_at": "2020-01-01T00:00:00+00:00",
        },
    )
    monitor.set_online(True)
    match = session.records.get_record_by_server_id("matches", row["id"])

    # Alice scores offline while Bob's submission reaches the server.
    monitor.set_online(False)
    session.records.submit_match_scores(match[LOCAL_ID], "alice", {"op": 4})
    server.seed(
        "matches",
        {
            **row,
            "scores": {"player1": None, "player2": {"op": 5}},
            "confirmed_by_p2": True,
            "confirmation_status": "partial",
            "updated_at": "2020-01-02T00:00:00+00:00",
        },
    )
    server.fail("update", "matches")
    monitor.set_online(True)

    merged = session.records.get_record("matches", match[LOCAL_ID])
    assert merged["scores"] == {"player1": {"op": 4}, "player2": {"op": 5}}
    assert merged["confirmed_by_p1"] is True
    assert merged["confirmed_by_p2"] is True
    assert merged["confirmation_status"] == "confirmed"
    assert merged[SYNC_STATUS] == "pending"
    assert conflicts == []


def test_survives_restart(sample_config, server) -> None:
    with Session(
        config=sample_config,
        remote=server,
        monitor=ConnectivityMonitor(initially_online=False),
    ) as first:
        first.records.create_record("rounds", {"round_number": 3})

    with Session(
        config=sample_config,
        remote=server,
        monitor=ConnectivityMonitor(initially_online=True),
    ) as second:
        assert second.queue.count() == 1
        second.engine.sync()
        assert second.queue.count() == 0
        assert server.rows("rounds")[0]["round_number"] == 3


def test_registration_created_offline(session: Session, server, monitor) -> None:
    created = session.records.create_record(
        "registrations", {"tournament_id": "t-1", "player_id": "p-9"}
    )
    local_id = created[LOCAL_ID]

    assert session.queue.count() == 1
    assert session.records.get_record("registrations", local_id)["id"] is None

    monitor.set_online(True)

    record = session.records.get_record("registrations", local_id)
    assert record["id"] == server.rows("registrations")[0]["id"]
    assert record[SYNC_STATUS] == "synced"
    assert session.queue.count() == 0
