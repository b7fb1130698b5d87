"""
Schedule engine: creation, maturity arithmetic and atomic claims.

Every mutating call runs under one re-entrant lock and either completes
fully or leaves the store exactly as it found it. The only point where an
operation can fail after validation is the call into the asset-transfer
collaborator; the engine rolls back around it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

from lockrelease.contracts.asset import AssetRegistry
from lockrelease.core.addresses import is_zero_address, normalize_address
from lockrelease.core.exceptions import (
    ClaimError,
    DuplicateScheduleError,
    NoTokensDueError,
    OverClaimError,
    TransferError,
    ValidationError,
    ZeroAddressError,
    ZeroAmountError,
    ZeroClaimError,
    ZeroDurationError,
)
from lockrelease.events import EventLog, ScheduleStarted, TokensReleased
from lockrelease.schedules.models import Schedule, ScheduleKey
from lockrelease.schedules.store import ScheduleStore

logger = logging.getLogger(__name__)


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: repr(value)})
    return value


class ScheduleEngine:
    def __init__(
        self,
        registry: AssetRegistry,
        store: Optional[ScheduleStore] = None,
        event_log: Optional[EventLog] = None,
        time_provider: Optional[Callable[[], int]] = None,
        metrics: Any = None,
    ):
        self.registry = registry
        self.store = store if store is not None else ScheduleStore()
        self.event_log = event_log if event_log is not None else EventLog()
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._metrics = metrics
        self._lock = threading.RLock()
        logger.info("ScheduleEngine initialized with deterministic time provider: %s", bool(time_provider))

    def _current_time(self, now: Optional[int] = None) -> int:
        timestamp = self._time_provider() if now is None else now
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValidationError("time_provider must return an integer timestamp") from exc

    # ==================== Creation ====================

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
        """
        Lock ``total`` units of ``asset`` from ``payer`` for ``beneficiary``.

        The schedule is recorded with the amount the collaborator reports as
        received, which can be less than ``total`` for fee-charging assets.

        Raises:
            ZeroAddressError, ZeroAmountError, ZeroDurationError,
            DuplicateScheduleError, TransferError
        """
        if is_zero_address(beneficiary):
            raise ZeroAddressError("beneficiary is the zero address")
        if is_zero_address(asset):
            raise ZeroAddressError("token is the zero address")
        _require_int(total, "total")
        _require_int(start, "start")
        _require_int(duration, "duration")
        if total <= 0:
            raise ZeroAmountError("total is zero", details={"total": total})
        if duration <= 0:
            raise ZeroDurationError("duration is 0", details={"duration": duration})

        key = ScheduleKey.of(asset, beneficiary)
        creator = normalize_address(payer)
        current_time = self._current_time(now)

        with self._lock:
            try:
                if key in self.store:
                    raise DuplicateScheduleError(
                        "Schedule already created for this token => beneficiary",
                        details={"asset": key.asset, "beneficiary": key.beneficiary},
                    )
                transfer = self.registry.get(key.asset)
                received = transfer.transfer_in(creator, total)
                if received <= 0:
                    raise ZeroAmountError(
                        "nothing received from payer",
                        details={"requested": total, "received": received},
                    )
            except (ValidationError, TransferError) as exc:
                self._count("schedule_failures", reason=exc.code)
                logger.warning(
                    "Schedule creation rejected: %s",
                    exc,
                    extra={"event": "schedule.create_rejected", "code": exc.code, "asset": key.asset},
                )
                raise

            schedule = Schedule(total=received, start=start, duration=duration)
            self.store.insert(key, schedule)
            self.event_log.append(
                ScheduleStarted(asset=key.asset, beneficiary=key.beneficiary, creator=creator),
                timestamp=current_time,
            )

        if self._metrics is not None:
            self._metrics.schedules_created.labels(asset=key.asset).inc()
            self._metrics.amount_locked.labels(asset=key.asset).inc(received)
            if received < total:
                self._metrics.transfer_shortfall.labels(asset=key.asset).inc(total - received)

        logger.info(
            "Schedule created for %s",
            key.beneficiary,
            extra={
                "event": "schedule.created",
                "asset": key.asset,
                "requested": total,
                "received": received,
                "start": start,
                "duration": duration,
            },
        )
        return schedule

    # ==================== Queries ====================

    def get_schedule(self, asset: str, beneficiary: str) -> Optional[Schedule]:
        with self._lock:
            return self.store.get(ScheduleKey.of(asset, beneficiary))

    def has_schedule(self, asset: str, beneficiary: str) -> bool:
        return self.get_schedule(asset, beneficiary) is not None

    def schedules(self) -> List[Tuple[ScheduleKey, Schedule]]:
        """Consistent snapshot of every schedule."""
        with self._lock:
            return list(self.store.items())

    def get_total(self, asset: str, beneficiary: str) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        return schedule.total if schedule else 0

    def get_released(self, asset: str, beneficiary: str) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        return schedule.released if schedule else 0

    def get_start(self, asset: str, beneficiary: str) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        return schedule.start if schedule else 0

    def get_duration(self, asset: str, beneficiary: str) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        return schedule.duration if schedule else 0

    def get_end(self, asset: str, beneficiary: str) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        return schedule.end if schedule else 0

    def get_total_matured(self, asset: str, beneficiary: str, now: Optional[int] = None) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        if schedule is None:
            return 0
        return schedule.total_matured(self._current_time(now))

    def get_releasable(self, asset: str, beneficiary: str, now: Optional[int] = None) -> int:
        schedule = self.get_schedule(asset, beneficiary)
        if schedule is None:
            return 0
        return schedule.releasable(self._current_time(now))

    # ==================== Claims ====================

    def release(
        self,
        asset: str,
        beneficiary: str,
        amount: Optional[int] = None,
        *,
        caller: str,
        now: Optional[int] = None,
    ) -> int:
        """
        Release matured tokens to the beneficiary. Anyone may trigger it;
        ``caller`` is recorded as the releasor.

        ``amount=None`` releases everything currently releasable.
        Returns the amount released.
        """
        key = ScheduleKey.of(asset, beneficiary)
        return self._release(key, key.beneficiary, amount, normalize_address(caller), now)

    def release_to(
        self,
        asset: str,
        recipient: str,
        amount: Optional[int] = None,
        *,
        caller: str,
        now: Optional[int] = None,
    ) -> int:
        """
        Release the caller's own matured tokens to another address.

        ``caller`` is both the beneficiary and the releasor.
        """
        if is_zero_address(caller):
            raise ZeroAddressError("beneficiary is the zero address")
        if is_zero_address(recipient):
            raise ZeroAddressError("recipient is the zero address")
        key = ScheduleKey.of(asset, caller)
        return self._release(key, normalize_address(recipient), amount, key.beneficiary, now)

    def _release(
        self,
        key: ScheduleKey,
        recipient: str,
        amount: Optional[int],
        releasor: str,
        now: Optional[int],
    ) -> int:
        current_time = self._current_time(now)

        with self._lock:
            schedule = self.store.get(key)
            try:
                releasable = schedule.releasable(current_time) if schedule else 0
                if releasable <= 0:
                    raise NoTokensDueError(
                        "no tokens are due",
                        details={"asset": key.asset, "beneficiary": key.beneficiary, "now": current_time},
                    )
                if amount is None:
                    amount = releasable
                _require_int(amount, "amount")
                if amount <= 0:
                    raise ZeroClaimError("claim amount must be positive", details={"amount": amount})
                if amount > releasable:
                    raise OverClaimError(
                        "too many tokens being claimed",
                        details={"amount": amount, "releasable": releasable},
                    )
                transfer = self.registry.get(key.asset)
            except (ClaimError, ValidationError, TransferError) as exc:
                self._count("release_failures", reason=exc.code)
                logger.warning(
                    "Release rejected: %s",
                    exc,
                    extra={"event": "schedule.release_rejected", "code": exc.code, "asset": key.asset},
                )
                raise

            self.store.set_released(key, schedule.released + amount)
            try:
                transfer.transfer_out(recipient, amount)
            except Exception as exc:
                self.store.restore(key, schedule)
                self._count("release_failures", reason=getattr(exc, "code", "transfer_error"))
                logger.error(
                    "Release transfer failed, rolled back: %s",
                    exc,
                    extra={
                        "event": "schedule.release_rolled_back",
                        "asset": key.asset,
                        "beneficiary": key.beneficiary,
                        "amount": amount,
                    },
                )
                raise

            self.event_log.append(
                TokensReleased(
                    asset=key.asset,
                    beneficiary=key.beneficiary,
                    recipient=recipient,
                    amount=amount,
                    releasor=releasor,
                ),
                timestamp=current_time,
            )

        if self._metrics is not None:
            self._metrics.releases.labels(asset=key.asset).inc()
            self._metrics.amount_released.labels(asset=key.asset).inc(amount)

        logger.info(
            "Released %d tokens for schedule %s",
            amount,
            key.vest_id,
            extra={"event": "schedule.released", "recipient": recipient, "releasor": releasor},
        )
        return amount

    def _count(self, metric: str, reason: str) -> None:
        if self._metrics is not None:
            getattr(self._metrics, metric).labels(reason=reason).inc()
