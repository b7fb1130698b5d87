"""
Keyed storage for release schedules.

The store is the only owner of Schedule records. It enforces the structural
invariants (one schedule per key, positive total/duration, ``released`` only
grows and never passes ``total``); maturity rules live in the engine.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Tuple

from lockrelease.core.exceptions import (
    ConfigurationError,
    DuplicateScheduleError,
    InvariantViolation,
    ZeroAmountError,
    ZeroDurationError,
)
from lockrelease.schedules.models import Schedule, ScheduleKey

logger = logging.getLogger(__name__)


class ScheduleStore:
    def __init__(self) -> None:
        self._schedules: Dict[ScheduleKey, Schedule] = {}

    def __len__(self) -> int:
        return len(self._schedules)

    def __contains__(self, key: ScheduleKey) -> bool:
        return key in self._schedules

    def get(self, key: ScheduleKey) -> Optional[Schedule]:
        return self._schedules.get(key)

    def items(self) -> Iterator[Tuple[ScheduleKey, Schedule]]:
        return iter(list(self._schedules.items()))

    def insert(self, key: ScheduleKey, schedule: Schedule) -> None:
        """Record a new schedule. Existing keys are never overwritten."""
        if key in self._schedules:
            raise DuplicateScheduleError(
                "Schedule already created for this asset => beneficiary",
                details={"asset": key.asset, "beneficiary": key.beneficiary},
            )
        if schedule.total <= 0:
            raise ZeroAmountError("total is zero", details={"total": schedule.total})
        if schedule.duration <= 0:
            raise ZeroDurationError("duration is 0", details={"duration": schedule.duration})
        if schedule.released != 0:
            raise InvariantViolation(
                "new schedules start with nothing released",
                details={"released": schedule.released},
            )
        self._schedules[key] = schedule

    def set_released(self, key: ScheduleKey, released: int) -> Schedule:
        """Replace the released counter of ``key``. Returns the new record."""
        current = self._schedules[key]
        if released < current.released or released > current.total:
            raise InvariantViolation(
                "released must grow monotonically and stay within total",
                details={
                    "asset": key.asset,
                    "beneficiary": key.beneficiary,
                    "current": current.released,
                    "requested": released,
                    "total": current.total,
                },
            )
        updated = current.with_released(released)
        self._schedules[key] = updated
        return updated

    def restore(self, key: ScheduleKey, schedule: Schedule) -> None:
        """Put back a record captured before a failed operation."""
        self._schedules[key] = schedule

    def to_dict(self) -> Dict[str, Any]:
        return {
            key.vest_id: {"asset": key.asset, "beneficiary": key.beneficiary, **schedule.to_dict()}
            for key, schedule in self._schedules.items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleStore":
        store = cls()
        for entry in data.values():
            key = ScheduleKey.of(entry["asset"], entry["beneficiary"])
            schedule = Schedule.from_dict(entry)
            if schedule.total <= 0 or schedule.duration <= 0 or not 0 <= schedule.released <= schedule.total:
                raise ConfigurationError(
                    "stored schedule violates total, duration or released bounds",
                    details={"vest_id": key.vest_id, **schedule.to_dict()},
                )
            store._schedules[key] = schedule
        logger.debug("Loaded %d schedules", len(store))
        return store
