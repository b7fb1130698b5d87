import pytest

from lockrelease.core.exceptions import (
    ConfigurationError,
    DuplicateScheduleError,
    InvariantViolation,
    ZeroAmountError,
    ZeroDurationError,
)
from lockrelease.schedules.models import Schedule, ScheduleKey
from lockrelease.schedules.store import ScheduleStore

KEY = ScheduleKey.of("0x" + "A" * 40, "0x" + "B" * 40)


def test_key_normalizes_and_builds_vest_id():
    assert KEY.asset == "0x" + "a" * 40
    assert KEY.beneficiary == "0x" + "b" * 40
    assert KEY.vest_id == f"{KEY.asset}-{KEY.beneficiary}"


def test_schedule_derived_fields():
    schedule = Schedule(total=1000, start=50, duration=300)
    assert schedule.end == 350
    assert schedule.per_second == 3
    assert schedule.releasable(200) == 500
    assert schedule.with_released(100).releasable(200) == 400
    assert schedule.released == 0


def test_schedule_is_immutable():
    schedule = Schedule(total=10, start=0, duration=10)
    with pytest.raises(AttributeError):
        schedule.total = 20


def test_insert_enforces_structure():
    store = ScheduleStore()
    store.insert(KEY, Schedule(total=10, start=0, duration=10))
    assert KEY in store
    assert len(store) == 1

    with pytest.raises(DuplicateScheduleError):
        store.insert(KEY, Schedule(total=10, start=0, duration=10))

    other = ScheduleKey.of("0x" + "c" * 40, "0x" + "d" * 40)
    with pytest.raises(ZeroAmountError):
        store.insert(other, Schedule(total=0, start=0, duration=10))
    with pytest.raises(ZeroDurationError):
        store.insert(other, Schedule(total=10, start=0, duration=0))
    with pytest.raises(InvariantViolation):
        store.insert(other, Schedule(total=10, start=0, duration=10, released=1))
    assert other not in store


def test_released_only_grows_within_total():
    store = ScheduleStore()
    store.insert(KEY, Schedule(total=10, start=0, duration=10))

    assert store.set_released(KEY, 4).released == 4
    with pytest.raises(InvariantViolation):
        store.set_released(KEY, 3)
    with pytest.raises(InvariantViolation):
        store.set_released(KEY, 11)
    assert store.get(KEY).released == 4


def test_round_trip_through_dict():
    store = ScheduleStore()
    store.insert(KEY, Schedule(total=10, start=5, duration=10))
    store.set_released(KEY, 2)

    data = store.to_dict()
    assert data[KEY.vest_id]["released"] == 2

    loaded = ScheduleStore.from_dict(data)
    assert loaded.get(KEY) == Schedule(total=10, start=5, duration=10, released=2)


@pytest.mark.parametrize(
    "fields",
    [
        {"total": 0, "start": 0, "duration": 10, "released": 0},
        {"total": 10, "start": 0, "duration": 0, "released": 0},
        {"total": 10, "start": 0, "duration": 10, "released": 11},
        {"total": 10, "start": 0, "duration": 10, "released": -1},
    ],
)
def test_from_dict_rejects_corrupt_records(fields):
    data = {KEY.vest_id: {"asset": KEY.asset, "beneficiary": KEY.beneficiary, **fields}}
    with pytest.raises(ConfigurationError):
        ScheduleStore.from_dict(data)
