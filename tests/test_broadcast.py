from room.broadcast import BroadcastEngine
from transport.models import CloseReason, RelayStats, WriteResult

from helpers import assert_silent, recv_line


def _fill(admit_pair, count):
    return [admit_pair(f"peer-{i}")[1] for i in range(count)]


def test_fan_out_skips_source(registry, admit_pair):
    remotes = _fill(admit_pair, 4)
    engine = BroadcastEngine(registry)

    evictions = engine.redistribute(1, b"hello\n")

    assert evictions == []
    for i in (0, 2, 3):
        assert recv_line(remotes[i]) == b"hello\n"
    assert_silent(remotes[1])
    assert engine.stats.lines_delivered == 3


def test_single_client_gets_nothing(registry, admit_pair):
    (remote,) = _fill(admit_pair, 1)
    engine = BroadcastEngine(registry)
    assert engine.redistribute(0, b"alone\n") == []
    assert_silent(remote)


def test_failed_recipient_is_evicted_and_others_still_receive(registry, admit_pair):
    remotes = _fill(admit_pair, 4)
    stats = RelayStats()
    engine = BroadcastEngine(registry, stats)
    remotes[2].close()

    evictions = engine.redistribute(0, b"ping\n")

    assert [e.slot_index for e in evictions] == [2]
    assert evictions[0].reason == CloseReason.WRITE_ERROR
    assert registry.slot_at(2) is None
    assert recv_line(remotes[1]) == b"ping\n"
    assert recv_line(remotes[3]) == b"ping\n"
    assert stats.evicted == 1
    assert stats.lines_delivered == 2


def test_evicted_slot_is_reusable(registry, admit_pair):
    remotes = _fill(admit_pair, 4)
    remotes[1].close()
    BroadcastEngine(registry).redistribute(0, b"x\n")

    assert admit_pair("replacement")[0].slot_index == 1


def test_delivery_in_ascending_index_order(registry, admit_pair, monkeypatch):
    _fill(admit_pair, 4)
    order = []
    for index, channel in registry.occupied_slots():
        monkeypatch.setattr(
            channel, "write_line",
            lambda line, i=index: order.append(i) or WriteResult(True),
        )

    BroadcastEngine(registry).redistribute(2, b"seq\n")

    assert order == [0, 1, 3]


def test_several_failures_in_one_broadcast(registry, admit_pair, monkeypatch):
    remotes = _fill(admit_pair, 4)
    for index in (0, 3):
        monkeypatch.setattr(
            registry.channel_at(index), "write_line",
            lambda line: WriteResult(False, "broken pipe"),
        )

    evictions = BroadcastEngine(registry).redistribute(1, b"both\n")

    assert [e.slot_index for e in evictions] == [0, 3]
    assert [i for i, _ in registry.occupied_slots()] == [1, 2]
    assert recv_line(remotes[2]) == b"both\n"
