import logging

import pytest

from lockrelease.events import EventLog, ScheduleStarted, TokensReleased, event_from_dict

ASSET = "0x" + "a" * 40
BENEFICIARY = "0x" + "b" * 40
PAYER = "0x" + "c" * 40


def _started(beneficiary=BENEFICIARY):
    return ScheduleStarted(asset=ASSET, beneficiary=beneficiary, creator=PAYER)


def _released(amount):
    return TokensReleased(
        asset=ASSET, beneficiary=BENEFICIARY, recipient=BENEFICIARY, amount=amount, releasor=PAYER
    )


def test_append_assigns_sequence_and_timestamp():
    log = EventLog()
    first = log.append(_started(), timestamp=5)
    second = log.append(_released(10), timestamp=6)

    assert (first.seq, first.timestamp) == (1, 5)
    assert (second.seq, second.timestamp) == (2, 6)
    assert log.latest_seq == 2
    assert log.get(2) is second
    with pytest.raises(IndexError):
        log.get(3)


def test_query_filters():
    log = EventLog()
    log.append(_started())
    log.append(_released(10))
    log.append(_released(20))

    assert [e.seq for e in log.query(TokensReleased)] == [2, 3]
    assert [e.seq for e in log.query("ScheduleStarted")] == [1]
    assert [e.seq for e in log.query(from_seq=2, to_seq=2)] == [2]
    assert [e.amount for e in log.query(TokensReleased, amount=20)] == [20]


def test_query_bounds_outside_the_log_are_empty():
    log = EventLog()
    for amount in (1, 2, 3):
        log.append(_released(amount))

    assert log.query(to_seq=-1) == []
    assert log.query(to_seq=0) == []
    assert log.query(from_seq=4) == []
    assert [e.seq for e in log.query(from_seq=3, to_seq=10)] == [3]


def test_iter_pages_walks_backwards_and_skips_empty_windows():
    log = EventLog()
    log.append(_started())
    for amount in range(1, 6):
        log.append(_released(amount))
    log.append(_started("0x" + "e" * 40))

    pages = list(log.iter_pages(3, event_type=ScheduleStarted))
    assert [[e.seq for e in page] for page in pages] == [[7], [1]]

    pages = list(log.iter_pages(4, start_seq=2, end_seq=6))
    assert [[e.seq for e in page] for page in pages] == [[6, 5, 4, 3], [2]]

    with pytest.raises(ValueError):
        list(log.iter_pages(0))


def test_subscribers_are_isolated(caplog):
    log = EventLog()
    seen = []

    def broken(event):
        raise RuntimeError("observer down")

    log.subscribe(broken)
    unsubscribe = log.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger="lockrelease.events"):
        stamped = log.append(_started())
    assert seen == [stamped]
    assert "Event subscriber failed" in caplog.text

    unsubscribe()
    log.append(_released(1))
    assert len(seen) == 1


def test_round_trip_requires_contiguous_sequence():
    log = EventLog()
    log.append(_started(), timestamp=1)
    log.append(_released(3), timestamp=2)

    data = log.to_list()
    assert data[1]["event_type"] == "TokensReleased"
    loaded = EventLog.from_list(data)
    assert loaded.query() == log.query()

    del data[0]
    with pytest.raises(ValueError):
        EventLog.from_list(data)
    with pytest.raises(ValueError):
        event_from_dict({"event_type": "Unknown"})
