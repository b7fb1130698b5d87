"""
Read path over a checkpoint series.

All functions are stateless: they take an ordered sequence of
``Checkpoint`` entries (strictly increasing markers) and never mutate it.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

from lockrelease.core.exceptions import FutureLookupError

# Series longer than this get a first probe near the tail, where recent
# lookups usually land.
TAIL_PROBE_THRESHOLD = 5


class Checkpoint(NamedTuple):
    marker: int
    value: int


def current_value(series: Sequence[Checkpoint]) -> int:
    """Value of the latest entry, or 0 for an empty series."""
    if not series:
        return 0
    return series[-1].value


def checkpoint_at(series: Sequence[Checkpoint], pos: int) -> Checkpoint:
    """Entry at position ``pos`` (0-based). Negative positions are rejected."""
    if pos < 0 or pos >= len(series):
        raise IndexError(f"checkpoint position {pos} out of range (0..{len(series) - 1})")
    return series[pos]


def upper_lookup(series: Sequence[Checkpoint], marker: int, low: int, high: int) -> int:
    """
    Index of the first entry in ``series[low:high]`` whose marker is
    strictly greater than ``marker``; ``high`` if there is none.
    """
    while low < high:
        mid = (low + high) // 2
        if series[mid].marker > marker:
            high = mid
        else:
            low = mid + 1
    return high


def upper_lookup_recent(series: Sequence[Checkpoint], marker: int) -> int:
    """
    Value of the last entry with ``entry.marker <= marker``, or 0.

    For longer series the search space is first cut at
    ``len - isqrt(len)``; the answer is the same as without the cut.
    """
    length = len(series)
    low = 0
    high = length

    if length > TAIL_PROBE_THRESHOLD:
        mid = length - math.isqrt(length)
        if marker < series[mid].marker:
            high = mid
        else:
            low = mid + 1

    pos = upper_lookup(series, marker, low, high)
    return 0 if pos == 0 else series[pos - 1].value


def value_at(series: Sequence[Checkpoint], timepoint: int, clock: int) -> int:
    """
    Value in effect at ``timepoint``.

    An entry written at marker M is in effect from M onwards, so a lookup at
    exactly M returns that entry. ``timepoint`` must be strictly earlier than
    ``clock`` (the latest marker observed); history at or after the clock is
    not settled yet.
    """
    if timepoint >= clock:
        raise FutureLookupError(
            "future lookup",
            details={"timepoint": timepoint, "clock": clock},
        )
    return upper_lookup_recent(series, timepoint)
