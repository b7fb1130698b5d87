import pytest

from lockrelease.contracts.asset import AssetRegistry
from lockrelease.core.exceptions import (
    DuplicateScheduleError,
    NoTokensDueError,
    OverClaimError,
    TransferRejectedError,
    ValidationError,
    ZeroAddressError,
    ZeroAmountError,
    ZeroClaimError,
    ZeroDurationError,
)
from lockrelease.events import ScheduleStarted, TokensReleased
from lockrelease.schedules.engine import ScheduleEngine

ASSET = "0x" + "a" * 40
BENEFICIARY = "0x" + "b" * 40
PAYER = "0x" + "c" * 40
OTHER = "0x" + "d" * 40
ZERO = "0x" + "0" * 40


def test_linear_release_flow(engine):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)

    assert engine.get_total_matured(ASSET, BENEFICIARY, now=50) == 500
    assert engine.get_releasable(ASSET, BENEFICIARY, now=50) == 500

    assert engine.release(ASSET, BENEFICIARY, 300, caller=OTHER, now=50) == 300
    assert engine.get_released(ASSET, BENEFICIARY) == 300
    assert engine.get_releasable(ASSET, BENEFICIARY, now=50) == 200

    assert engine.get_total_matured(ASSET, BENEFICIARY, now=100) == 1000
    assert engine.get_releasable(ASSET, BENEFICIARY, now=100) == 700


def test_matured_is_clamped_and_floored(engine):
    engine.create_schedule(ASSET, BENEFICIARY, 10, 100, 3, PAYER)

    assert engine.get_total_matured(ASSET, BENEFICIARY, now=0) == 0
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=100) == 0
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=101) == 3
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=102) == 6
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=103) == 10
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=10_000) == 10
    assert engine.get_end(ASSET, BENEFICIARY) == 103


def test_now_defaults_to_time_provider(engine, clock):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    clock.set(25)
    assert engine.get_releasable(ASSET, BENEFICIARY) == 250
    clock.advance(25)
    assert engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY) == 500


def test_fee_on_transfer_records_received_amount(clock, make_transfer):
    registry = AssetRegistry()
    registry.register(ASSET, make_transfer(95, 100))
    engine = ScheduleEngine(registry, time_provider=clock.now)

    schedule = engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)

    assert schedule.total == 950
    assert engine.get_total(ASSET, BENEFICIARY) == 950
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=100) == 950


def test_nothing_received_records_nothing(clock, make_transfer):
    registry = AssetRegistry()
    registry.register(ASSET, make_transfer(0, 1))
    engine = ScheduleEngine(registry, time_provider=clock.now)

    with pytest.raises(ZeroAmountError):
        engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    assert not engine.has_schedule(ASSET, BENEFICIARY)
    assert len(engine.event_log) == 0


def test_create_validation_order(engine, fake_transfer):
    with pytest.raises(ZeroAddressError, match="beneficiary"):
        engine.create_schedule(ZERO, ZERO, 0, 0, 0, PAYER)
    with pytest.raises(ZeroAddressError, match="token"):
        engine.create_schedule(ZERO, BENEFICIARY, 0, 0, 0, PAYER)
    with pytest.raises(ZeroAmountError):
        engine.create_schedule(ASSET, BENEFICIARY, 0, 0, 0, PAYER)
    with pytest.raises(ZeroDurationError):
        engine.create_schedule(ASSET, BENEFICIARY, 100, 0, 0, PAYER)
    with pytest.raises(ValidationError):
        engine.create_schedule(ASSET, BENEFICIARY, 1.5, 0, 10, PAYER)
    assert fake_transfer.pulled == []


def test_duplicate_schedule_rejected_before_transfer(engine, fake_transfer):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    with pytest.raises(DuplicateScheduleError):
        engine.create_schedule(ASSET, BENEFICIARY.upper().replace("0X", "0x"), 500, 10, 100, PAYER)

    assert len(fake_transfer.pulled) == 1
    assert engine.get_total(ASSET, BENEFICIARY) == 1000


def test_unregistered_asset_is_rejected(engine):
    with pytest.raises(TransferRejectedError):
        engine.create_schedule(OTHER, BENEFICIARY, 1000, 0, 100, PAYER)
    assert not engine.has_schedule(OTHER, BENEFICIARY)


def test_over_claim_leaves_released_unchanged(engine):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)

    with pytest.raises(OverClaimError):
        engine.release(ASSET, BENEFICIARY, 600, caller=BENEFICIARY, now=50)
    assert engine.get_released(ASSET, BENEFICIARY) == 0
    assert engine.get_releasable(ASSET, BENEFICIARY, now=50) == 500


def test_release_rejections(engine):
    with pytest.raises(NoTokensDueError):
        engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=50)

    engine.create_schedule(ASSET, BENEFICIARY, 1000, 10, 100, PAYER)
    with pytest.raises(NoTokensDueError):
        engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=10)
    with pytest.raises(ZeroClaimError):
        engine.release(ASSET, BENEFICIARY, 0, caller=BENEFICIARY, now=60)
    with pytest.raises(ZeroClaimError):
        engine.release(ASSET, BENEFICIARY, -5, caller=BENEFICIARY, now=60)

    assert engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=110) == 1000
    with pytest.raises(NoTokensDueError, match="no tokens are due"):
        engine.release(ASSET, BENEFICIARY, caller=BENEFICIARY, now=500)


def test_failed_transfer_out_rolls_back(engine, fake_transfer):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    fake_transfer.fail_out = True

    with pytest.raises(TransferRejectedError):
        engine.release(ASSET, BENEFICIARY, 100, caller=BENEFICIARY, now=50)

    assert engine.get_released(ASSET, BENEFICIARY) == 0
    assert engine.event_log.query(TokensReleased) == []

    fake_transfer.fail_out = False
    assert engine.release(ASSET, BENEFICIARY, 100, caller=BENEFICIARY, now=50) == 100
    assert fake_transfer.sent == [(BENEFICIARY, 100)]


def test_release_to_sends_callers_tokens_elsewhere(engine, fake_transfer):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)

    assert engine.release_to(ASSET, OTHER, 200, caller=BENEFICIARY, now=50) == 200
    assert fake_transfer.sent == [(OTHER, 200)]
    assert engine.get_released(ASSET, BENEFICIARY) == 200

    with pytest.raises(ZeroAddressError):
        engine.release_to(ASSET, ZERO, 10, caller=BENEFICIARY, now=50)
    with pytest.raises(NoTokensDueError):
        engine.release_to(ASSET, OTHER, 10, caller=OTHER, now=50)


def test_events_record_creator_and_releasor(engine, clock):
    clock.set(7)
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    engine.release(ASSET, BENEFICIARY, 100, caller=OTHER, now=50)

    started, released = engine.event_log.query()
    assert isinstance(started, ScheduleStarted)
    assert started.seq == 1
    assert started.timestamp == 7
    assert started.creator == PAYER

    assert isinstance(released, TokensReleased)
    assert released.seq == 2
    assert released.timestamp == 50
    assert released.recipient == BENEFICIARY
    assert released.releasor == OTHER
    assert released.amount == 100


def test_unknown_schedule_queries_return_zero(engine):
    assert engine.get_schedule(ASSET, BENEFICIARY) is None
    assert engine.get_total(ASSET, BENEFICIARY) == 0
    assert engine.get_released(ASSET, BENEFICIARY) == 0
    assert engine.get_start(ASSET, BENEFICIARY) == 0
    assert engine.get_duration(ASSET, BENEFICIARY) == 0
    assert engine.get_end(ASSET, BENEFICIARY) == 0
    assert engine.get_total_matured(ASSET, BENEFICIARY, now=50) == 0
    assert engine.get_releasable(ASSET, BENEFICIARY, now=50) == 0


def test_metrics_track_outcomes(engine, metrics, make_transfer):
    engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)
    engine.release(ASSET, BENEFICIARY, 400, caller=BENEFICIARY, now=50)
    with pytest.raises(OverClaimError):
        engine.release(ASSET, BENEFICIARY, 400, caller=BENEFICIARY, now=50)
    with pytest.raises(DuplicateScheduleError):
        engine.create_schedule(ASSET, BENEFICIARY, 1000, 0, 100, PAYER)

    registry = metrics.registry
    assert registry.get_sample_value("lockrelease_schedules_created_total", {"asset": ASSET}) == 1
    assert registry.get_sample_value("lockrelease_amount_locked_total", {"asset": ASSET}) == 1000
    assert registry.get_sample_value("lockrelease_amount_released_total", {"asset": ASSET}) == 400
    assert registry.get_sample_value("lockrelease_release_failures_total", {"reason": "over_claim"}) == 1
    assert registry.get_sample_value(
        "lockrelease_schedule_failures_total", {"reason": "duplicate_schedule"}
    ) == 1
