"""
Derived, read-only view of every vest.

``recompute_all(now)`` rebuilds all derived quantities (matured, releasable,
status) in one pass over the canonical schedule store and the event log.
Nothing here is cached between calls, so there is no evaluation order to get
wrong: each record depends only on its schedule, its creation event and
``now``.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from lockrelease.core.addresses import is_zero_address, normalize_address
from lockrelease.core.exceptions import ZeroAddressError
from lockrelease.events import EventLog, ScheduleStarted
from lockrelease.schedules.engine import ScheduleEngine
from lockrelease.schedules.models import ScheduleKey


class VestStatus(enum.Enum):
    ACTIVE = ("active", "💃")
    OVER_AND_CLAIMABLE = ("over and claimable", "🤏")
    COMPLETED = ("completed", "🤝")

    def __init__(self, description: str, emoji: str) -> None:
        self.description = description
        self.emoji = emoji

    @classmethod
    def derive(cls, now: int, end: int, releasable: int) -> "VestStatus":
        if now < end:
            return cls.ACTIVE
        if releasable > 0:
            return cls.OVER_AND_CLAIMABLE
        return cls.COMPLETED


@dataclass(frozen=True)
class VestRecord:
    id: str
    asset: str
    beneficiary: str
    creator: str
    start: int
    end: int
    total: int
    per_second: int
    matured: int
    released: int
    releasable: int
    status: VestStatus
    created_seq: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.name.lower()
        data["status_description"] = self.status.description
        data["status_emoji"] = self.status.emoji
        return data


class VestView:
    def __init__(self, engine: ScheduleEngine, event_log: Optional[EventLog] = None) -> None:
        self.engine = engine
        self.event_log = event_log if event_log is not None else engine.event_log

    def recompute_all(self, now: int) -> List[VestRecord]:
        """One record per started schedule, newest first."""
        schedules = dict(self.engine.schedules())
        records: List[VestRecord] = []
        for event in reversed(self.event_log.query(ScheduleStarted)):
            key = ScheduleKey(event.asset, event.beneficiary)
            schedule = schedules.get(key)
            if schedule is None:
                continue
            matured = schedule.total_matured(now)
            releasable = matured - schedule.released
            records.append(
                VestRecord(
                    id=key.vest_id,
                    asset=key.asset,
                    beneficiary=key.beneficiary,
                    creator=event.creator,
                    start=schedule.start,
                    end=schedule.end,
                    total=schedule.total,
                    per_second=schedule.per_second,
                    matured=matured,
                    released=schedule.released,
                    releasable=releasable,
                    status=VestStatus.derive(now, schedule.end, releasable),
                    created_seq=event.seq,
                )
            )
        return records

    def search(self, address: str, now: int) -> List[VestRecord]:
        """Vests where ``address`` is the beneficiary, the creator or the asset."""
        if is_zero_address(address):
            raise ZeroAddressError("invalid address")
        target = normalize_address(address)
        return [
            record
            for record in self.recompute_all(now)
            if target in (record.beneficiary, record.creator, record.asset)
        ]

    def aggregate(self, now: int) -> Dict[str, Dict[str, int]]:
        """Per-asset totals across every vest."""
        totals: Dict[str, Dict[str, int]] = {}
        for record in self.recompute_all(now):
            bucket = totals.setdefault(
                record.asset,
                {"vests": 0, "total": 0, "matured": 0, "released": 0, "releasable": 0},
            )
            bucket["vests"] += 1
            bucket["total"] += record.total
            bucket["matured"] += record.matured
            bucket["released"] += record.released
            bucket["releasable"] += record.releasable
        return totals
