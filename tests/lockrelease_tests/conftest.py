from typing import List, Tuple

import pytest
from prometheus_client import CollectorRegistry

from lockrelease.contracts.asset import AssetRegistry
from lockrelease.core.exceptions import TransferRejectedError
from lockrelease.core.metrics import LedgerMetrics
from lockrelease.ledger import LockReleaseLedger
from lockrelease.schedules.engine import ScheduleEngine

ASSET = "0x" + "a" * 40
BENEFICIARY = "0x" + "b" * 40
PAYER = "0x" + "c" * 40
OTHER = "0x" + "d" * 40
CUSTODIAN = "0x" + "1" * 40


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds

    def set(self, timestamp: int):
        self.current_time = timestamp


class FakeTransfer:
    """In-memory collaborator that records calls and can short-deliver or fail."""

    def __init__(self, deliver_ratio: Tuple[int, int] = (1, 1)):
        self.deliver_ratio = deliver_ratio
        self.pulled: List[Tuple[str, int]] = []
        self.sent: List[Tuple[str, int]] = []
        self.fail_out = False

    def transfer_in(self, payer: str, amount: int) -> int:
        self.pulled.append((payer, amount))
        numerator, denominator = self.deliver_ratio
        return amount * numerator // denominator

    def transfer_out(self, recipient: str, amount: int) -> None:
        if self.fail_out:
            raise TransferRejectedError("transfer out refused")
        self.sent.append((recipient, amount))


@pytest.fixture
def clock():
    return ManualClock(start_time=0)


@pytest.fixture
def metrics():
    return LedgerMetrics(registry=CollectorRegistry())


@pytest.fixture
def make_transfer():
    """Factory for collaborators delivering numerator/denominator of each pull."""
    return lambda numerator=1, denominator=1: FakeTransfer((numerator, denominator))


@pytest.fixture
def fake_transfer(make_transfer):
    return make_transfer()


@pytest.fixture
def engine(clock, fake_transfer, metrics):
    registry = AssetRegistry()
    registry.register(ASSET, fake_transfer)
    return ScheduleEngine(registry, time_provider=clock.now, metrics=metrics)


@pytest.fixture
def ledger(clock, metrics):
    return LockReleaseLedger(time_provider=clock.now, custodian=CUSTODIAN, metrics=metrics)


@pytest.fixture
def funded_token(ledger):
    """Token with 1_000_000 units held by PAYER, custodian approved for all of it."""
    token = ledger.deploy_token(PAYER, "Lock Token", "LCK", initial_supply=1_000_000)
    token.approve(PAYER, CUSTODIAN, 1_000_000)
    return token
