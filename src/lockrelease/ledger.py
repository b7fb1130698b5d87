"""
lockrelease ledger facade.

Wires the schedule engine, the asset registry, the checkpoint ledger and
the event log into one object sharing a single time source, so that token
movements and checkpoint markers line up with schedule timestamps.

Usage:
    from lockrelease.ledger import LockReleaseLedger

    ledger = LockReleaseLedger(time_provider=lambda: 1_700_000_000)
    token = ledger.deploy_token("0xowner...", "Lock", "LCK", initial_supply=10**21)
    token.approve("0xowner...", ledger.custodian, 10**21)
    ledger.create_schedule(token.address, "0xbeneficiary...", 10**21, start, duration, payer="0xowner...")
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

from lockrelease.checkpoints.ledger import CheckpointLedger
from lockrelease.checkpoints.votes import CheckpointVotes
from lockrelease.contracts.asset import AssetRegistry
from lockrelease.contracts.erc20 import ERC20Custody, ERC20Factory, ERC20Token
from lockrelease.core.addresses import is_zero_address, normalize_address
from lockrelease.core.exceptions import TransferRejectedError
from lockrelease.events import DomainEvent, EventFilter, EventLog
from lockrelease.schedules.engine import ScheduleEngine
from lockrelease.schedules.models import Schedule
from lockrelease.schedules.store import ScheduleStore
from lockrelease.schedules.view import VestRecord, VestView

logger = logging.getLogger(__name__)

DEFAULT_CUSTODIAN = "0x" + "1" * 40
DEFAULT_EVENT_PAGE_SIZE = 10000


class LockReleaseLedger:
    """
    One ledger instance: schedules, custody, checkpoints and events.

    Mutations go through a single re-entrant lock; each component keeps its
    own lock as well, so direct component access stays consistent.
    """

    def __init__(
        self,
        time_provider: Optional[Callable[[], int]] = None,
        custodian: str = DEFAULT_CUSTODIAN,
        metrics: Any = None,
        event_page_size: int = DEFAULT_EVENT_PAGE_SIZE,
        checkpoints: Optional[CheckpointLedger] = None,
        store: Optional[ScheduleStore] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        if is_zero_address(custodian):
            raise TransferRejectedError("custodian is the zero address")
        self.time_provider = time_provider or (lambda: int(time.time()))
        self.custodian = normalize_address(custodian)
        self.metrics = metrics
        self.event_page_size = event_page_size

        self.checkpoints = checkpoints if checkpoints is not None else CheckpointLedger(metrics=metrics)
        self.votes = CheckpointVotes(self.checkpoints)
        self.tokens = ERC20Factory(checkpoints=self.checkpoints, marker_provider=self.now)
        self.registry = AssetRegistry()
        self.event_log = event_log if event_log is not None else EventLog()
        self.engine = ScheduleEngine(
            self.registry,
            store=store,
            event_log=self.event_log,
            time_provider=self.time_provider,
            metrics=metrics,
        )
        self.view = VestView(self.engine, self.event_log)
        self.custodians: Dict[str, str] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(
        cls,
        config: Any,
        time_provider: Optional[Callable[[], int]] = None,
        metrics: Any = None,
    ) -> "LockReleaseLedger":
        """Build a ledger from a ConfigManager."""
        if metrics is None and config.metrics.enabled:
            from lockrelease.core.metrics import get_ledger_metrics

            metrics = get_ledger_metrics()
        return cls(
            time_provider=time_provider,
            custodian=config.ledger.default_custodian,
            metrics=metrics,
            event_page_size=config.ledger.event_page_size,
        )

    def now(self) -> int:
        return int(self.time_provider())

    # ==================== Tokens ====================

    def deploy_token(
        self,
        creator: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        max_supply: int = 0,
        transfer_fee_bps: int = 0,
        mint_to: Optional[str] = None,
        custodian: Optional[str] = None,
    ) -> ERC20Token:
        """Create a checkpointed token and register custody for it."""
        with self._lock:
            token = self.tokens.create_token(
                creator,
                name,
                symbol,
                decimals=decimals,
                initial_supply=initial_supply,
                max_supply=max_supply,
                transfer_fee_bps=transfer_fee_bps,
                mint_to=mint_to,
            )
            self._register_custody(token, custodian)
        return token

    def attach_token(self, token: ERC20Token, custodian: Optional[str] = None) -> ERC20Token:
        """Adopt an existing token (e.g. loaded from a snapshot)."""
        with self._lock:
            self.tokens.attach(token)
            self._register_custody(token, custodian)
        return token

    def get_token(self, asset: str) -> ERC20Token:
        token = self.tokens.get_token(asset)
        if token is None:
            raise TransferRejectedError(
                "unknown token",
                details={"asset": normalize_address(asset)},
            )
        return token

    def custodian_for(self, asset: str) -> str:
        return self.custodians.get(normalize_address(asset), self.custodian)

    def _register_custody(self, token: ERC20Token, custodian: Optional[str]) -> None:
        holder = normalize_address(custodian) if custodian else self.custodian
        self.registry.register(token.address, ERC20Custody(token, holder))
        self.custodians[token.address] = holder
        logger.debug(
            "Custody registered",
            extra={"event": "ledger.custody_registered", "asset": token.address, "custodian": holder},
        )

    # ==================== Schedules ====================

    def create_schedule(
        self,
        asset: str,
        beneficiary: str,
        total: int,
        start: int,
        duration: int,
        payer: str,
        now: Optional[int] = None,
    ) -> Schedule:
        with self._lock:
            return self.engine.create_schedule(asset, beneficiary, total, start, duration, payer, now=now)

    def release(
        self,
        asset: str,
        beneficiary: str,
        amount: Optional[int] = None,
        *,
        caller: str,
        now: Optional[int] = None,
    ) -> int:
        with self._lock:
            return self.engine.release(asset, beneficiary, amount, caller=caller, now=now)

    def release_to(
        self,
        asset: str,
        recipient: str,
        amount: Optional[int] = None,
        *,
        caller: str,
        now: Optional[int] = None,
    ) -> int:
        with self._lock:
            return self.engine.release_to(asset, recipient, amount, caller=caller, now=now)

    def schedule_info(self, asset: str, beneficiary: str, now: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Stored fields plus derived quantities at ``now``; None for unknown keys."""
        with self._lock:
            schedule = self.engine.get_schedule(asset, beneficiary)
            if schedule is None:
                return None
            current = self.now() if now is None else int(now)
            matured = schedule.total_matured(current)
            return {
                "asset": normalize_address(asset),
                "beneficiary": normalize_address(beneficiary),
                **schedule.to_dict(),
                "end": schedule.end,
                "per_second": schedule.per_second,
                "matured": matured,
                "releasable": matured - schedule.released,
                "now": current,
            }

    # ==================== Derived views ====================

    def recompute_all(self, now: Optional[int] = None) -> List[VestRecord]:
        with self._lock:
            return self.view.recompute_all(self.now() if now is None else int(now))

    def search(self, address: str, now: Optional[int] = None) -> List[VestRecord]:
        with self._lock:
            return self.view.search(address, self.now() if now is None else int(now))

    def aggregate(self, now: Optional[int] = None) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return self.view.aggregate(self.now() if now is None else int(now))

    def event_pages(self, event_type: EventFilter = None) -> Iterator[List[DomainEvent]]:
        return self.event_log.iter_pages(self.event_page_size, event_type=event_type)

    # ==================== Checkpoints ====================

    def advance_clock(self, marker: Optional[int] = None) -> int:
        """Settle checkpoint history up to ``marker`` (default: now)."""
        target = self.now() if marker is None else int(marker)
        with self._lock:
            self.checkpoints.advance_to(target)
        return target
