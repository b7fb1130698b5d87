import pytest

from lockrelease.checkpoints.index import (
    Checkpoint,
    checkpoint_at,
    current_value,
    upper_lookup,
    value_at,
)
from lockrelease.core.exceptions import FutureLookupError

SERIES = [Checkpoint(10, 100), Checkpoint(20, 150), Checkpoint(35, 90)]


def test_value_at_picks_last_entry_at_or_before_timepoint():
    assert value_at(SERIES, 15, clock=40) == 100
    assert value_at(SERIES, 20, clock=40) == 150
    assert value_at(SERIES, 5, clock=40) == 0
    assert value_at(SERIES, 35, clock=40) == 90
    assert value_at(SERIES, 39, clock=40) == 90


def test_value_at_rejects_unsettled_timepoints():
    with pytest.raises(FutureLookupError):
        value_at(SERIES, 40, clock=40)
    with pytest.raises(FutureLookupError):
        value_at(SERIES, 41, clock=40)
    with pytest.raises(FutureLookupError):
        value_at([], 0, clock=0)


def test_empty_series():
    assert current_value([]) == 0
    assert value_at([], 5, clock=10) == 0


def test_current_value_and_positional_access():
    assert current_value(SERIES) == 90
    assert checkpoint_at(SERIES, 1) == Checkpoint(20, 150)
    with pytest.raises(IndexError):
        checkpoint_at(SERIES, 3)
    with pytest.raises(IndexError):
        checkpoint_at(SERIES, -1)


def test_long_series_uses_tail_probe_consistently():
    series = [Checkpoint(marker, marker * 2) for marker in range(0, 200, 10)]
    clock = 1000
    assert value_at(series, 0, clock) == 0
    assert value_at(series, 5, clock) == 0
    assert value_at(series, 10, clock) == 20
    assert value_at(series, 15, clock) == 20
    assert value_at(series, 185, clock) == 360
    assert value_at(series, 190, clock) == 380
    assert value_at(series, 999, clock) == 380


def test_upper_lookup_returns_first_greater_index():
    assert upper_lookup(SERIES, 20, 0, len(SERIES)) == 2
    assert upper_lookup(SERIES, 9, 0, len(SERIES)) == 0
    assert upper_lookup(SERIES, 100, 0, len(SERIES)) == 3
