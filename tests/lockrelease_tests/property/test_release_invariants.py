"""
Property-based tests for release schedule invariants.

Matured amounts must be monotonic in time and bounded by the schedule
total, and any sequence of successful claims must add up to exactly what
has matured. Claims that fail must leave the schedule untouched.

Uses Hypothesis for property-based testing with random inputs.
"""

from hypothesis import assume, given, settings, strategies as st

from lockrelease.contracts.asset import AssetRegistry
from lockrelease.core.exceptions import ClaimError
from lockrelease.schedules.engine import ScheduleEngine
from lockrelease.schedules.models import Schedule

ASSET = "0x" + "a" * 40
BENEFICIARY = "0x" + "b" * 40
PAYER = "0x" + "c" * 40

totals = st.integers(min_value=1, max_value=10**30)
starts = st.integers(min_value=-10**9, max_value=10**9)
durations = st.integers(min_value=1, max_value=10**8)


class _Sink:
    def __init__(self):
        self.sent = 0

    def transfer_in(self, payer, amount):
        return amount

    def transfer_out(self, recipient, amount):
        self.sent += amount


def _engine():
    sink = _Sink()
    registry = AssetRegistry()
    registry.register(ASSET, sink)
    return ScheduleEngine(registry, time_provider=lambda: 0), sink


class TestMaturedInvariants:
    """Matured arithmetic over arbitrary schedules."""

    @given(total=totals, start=starts, duration=durations,
           t1=st.integers(min_value=-2 * 10**9, max_value=2 * 10**9),
           t2=st.integers(min_value=-2 * 10**9, max_value=2 * 10**9))
    @settings(max_examples=200)
    def test_matured_is_monotonic(self, total, start, duration, t1, t2):
        """A later timepoint never matures less than an earlier one."""
        schedule = Schedule(total=total, start=start, duration=duration)
        early, late = sorted((t1, t2))
        assert schedule.total_matured(early) <= schedule.total_matured(late)

    @given(total=totals, start=starts, duration=durations,
           now=st.integers(min_value=-2 * 10**9, max_value=2 * 10**9))
    @settings(max_examples=200)
    def test_matured_is_bounded(self, total, start, duration, now):
        schedule = Schedule(total=total, start=start, duration=duration)
        matured = schedule.total_matured(now)
        assert 0 <= matured <= total
        if now <= start:
            assert matured == 0
        if now >= start + duration:
            assert matured == total

    @given(total=totals, start=starts, duration=durations)
    @settings(max_examples=100)
    def test_matured_is_exact_floor(self, total, start, duration):
        now = start + duration // 2
        schedule = Schedule(total=total, start=start, duration=duration)
        elapsed = max(0, min(now - start, duration))
        assert schedule.total_matured(now) == total * elapsed // duration


class TestClaimInvariants:
    """Sequences of claims against one schedule."""

    @given(
        total=st.integers(min_value=1, max_value=10**24),
        duration=st.integers(min_value=1, max_value=10_000),
        steps=st.lists(
            st.tuples(st.integers(min_value=0, max_value=200), st.integers(min_value=-5, max_value=10**24)),
            min_size=1,
            max_size=20,
        ),
    )
    @settings(max_examples=100)
    def test_claims_conserve_matured(self, total, duration, steps):
        """Whatever mix of claims succeeds, released never passes matured and all of total is eventually paid out."""
        engine, sink = _engine()
        engine.create_schedule(ASSET, BENEFICIARY, total, 0, duration, PAYER)

        now = 0
        for advance, amount in steps:
            now += advance
            released_before = engine.get_released(ASSET, BENEFICIARY)
            try:
                engine.release(ASSET, BENEFICIARY, amount, caller=BENEFICIARY, now=now)
            except ClaimError:
                assert engine.get_released(ASSET, BENEFICIARY) == released_before
            released = engine.get_released(ASSET, BENEFICIARY)
            matured = engine.get_total_matured(ASSET, BENEFICIARY, now=now)
            assert 0 <= released <= matured <= total
            assert sink.sent == released

        final = now + duration
        if engine.get_releasable(ASSET, BENEFICIARY, now=final) > 0:
            engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=final)
        assert sink.sent == total

    @given(total=st.integers(min_value=2, max_value=10**18), duration=st.integers(min_value=2, max_value=10**6))
    @settings(max_examples=100)
    def test_split_claims_equal_single_claim(self, total, duration):
        now = duration // 2
        single, _ = _engine()
        single.create_schedule(ASSET, BENEFICIARY, total, 0, duration, PAYER)
        releasable = single.get_releasable(ASSET, BENEFICIARY, now=now)
        assume(releasable >= 2)

        split, sink = _engine()
        split.create_schedule(ASSET, BENEFICIARY, total, 0, duration, PAYER)
        split.release(ASSET, BENEFICIARY, releasable // 2, caller=BENEFICIARY, now=now)
        split.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=now)

        assert sink.sent == releasable
        assert single.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=now) == releasable
