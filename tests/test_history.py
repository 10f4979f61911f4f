"""History buffer tests."""

import pytest

from app.services.history import HistoryBuffer


def test_keeps_insertion_order():
    buf = HistoryBuffer(3)
    for item in ("a", "b", "c"):
        buf.append(item)
    assert buf.snapshot() == ["a", "b", "c"]


def test_evicts_oldest_when_full():
    buf = HistoryBuffer(50)
    for i in range(75):
        buf.append(str(i))
    assert len(buf) == 50
    assert buf.snapshot() == [str(i) for i in range(25, 75)]


def test_snapshot_does_not_mutate():
    buf = HistoryBuffer(2)
    buf.append("x")
    snap = buf.snapshot()
    snap.append("y")
    assert buf.snapshot() == ["x"]


def test_zero_capacity_keeps_nothing():
    buf = HistoryBuffer(0)
    buf.append("x")
    assert len(buf) == 0
    assert buf.snapshot() == []


def test_negative_capacity_rejected():
    with pytest.raises(ValueError):
        HistoryBuffer(-1)
