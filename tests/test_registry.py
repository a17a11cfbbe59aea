import socket

from config import ROOM_FULL_NOTICE, ServerConfig
from room.registry import ClientRegistry
from transport.models import AdmitStatus, SlotState

from helpers import assert_eof, recv_line


def test_admits_lowest_index_first(registry, admit_pair):
    indexes = [admit_pair(f"peer-{i}")[0].slot_index for i in range(4)]
    assert indexes == [0, 1, 2, 3]
    assert registry.is_full()
    assert registry.count_available() == 0


def test_rejects_when_full(registry, admit_pair):
    for i in range(4):
        admit_pair(f"peer-{i}")

    result, remote = admit_pair("late")

    assert result.status == AdmitStatus.REJECTED
    assert result.slot_index is None
    assert registry.count_occupied() == 4
    assert recv_line(remote) == ROOM_FULL_NOTICE
    assert_eof(remote)


def test_capacity_comes_from_config(sockets):
    registry = ClientRegistry(ServerConfig(capacity=2))
    results = []
    for _ in range(3):
        local, remote = socket.socketpair()
        sockets.append(remote)
        results.append(registry.try_admit(local))
    assert [r.admitted for r in results] == [True, True, False]
    registry.close_all()


def test_evict_frees_slot_for_reuse(registry, admit_pair):
    for i in range(4):
        admit_pair(f"peer-{i}")

    assert registry.evict(1)
    assert registry.state_of(1) == SlotState.EMPTY

    result, _ = admit_pair("newcomer")
    assert result.slot_index == 1
    assert registry.slot_at(1).peer == "newcomer"


def test_reuse_prefers_lowest_empty_index(registry, admit_pair):
    for i in range(4):
        admit_pair(f"peer-{i}")
    registry.evict(3)
    registry.evict(0)
    assert admit_pair()[0].slot_index == 0
    assert admit_pair()[0].slot_index == 3


def test_evict_closes_channel_once(registry, admit_pair):
    _, remote = admit_pair()
    channel = registry.channel_at(0)

    assert registry.evict(0)
    assert channel.closed
    assert not registry.evict(0)
    assert registry.channel_at(0) is None
    assert_eof(remote)


def test_evict_out_of_range_is_noop(registry):
    assert not registry.evict(99)
    assert not registry.evict(-1)


def test_occupied_slots_ascending(registry, admit_pair):
    for i in range(4):
        admit_pair(f"peer-{i}")
    registry.evict(2)
    assert [index for index, _ in registry.occupied_slots()] == [0, 1, 3]


def test_indexes_do_not_shift_on_eviction(registry, admit_pair):
    for i in range(3):
        admit_pair(f"peer-{i}")
    registry.evict(0)
    assert registry.slot_at(1).peer == "peer-1"
    assert registry.slot_at(2).peer == "peer-2"
    assert len(registry.get_all_slots()) == 4


def test_connection_that_cannot_be_configured(registry):
    conn, other = socket.socketpair()
    other.close()
    conn.close()

    result = registry.try_admit(conn, "broken")

    assert result.status == AdmitStatus.REJECTED
    assert result.detail.startswith("nonblocking")
    assert registry.count_occupied() == 0


def test_close_all(registry, admit_pair):
    remotes = [admit_pair()[1] for _ in range(3)]
    registry.close_all()
    assert registry.count_occupied() == 0
    for remote in remotes:
        assert_eof(remote)


def test_status_summary(registry, admit_pair):
    admit_pair("127.0.0.1:5000")
    summary = registry.get_status_summary()
    assert "Slot 0: [OCCUPIED] 127.0.0.1:5000" in summary
    assert "Slot 3: [EMPTY]" in summary
    assert "1/4 OCCUPIED" in summary
