"""
Release schedule data model.

A Schedule is immutable: claims produce a new Schedule with a larger
``released`` value, so ``total``, ``start`` and ``duration`` can never drift
after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, NamedTuple

from lockrelease.core.addresses import normalize_address


class ScheduleKey(NamedTuple):
    """(asset, beneficiary) pair identifying at most one schedule."""

    asset: str
    beneficiary: str

    @classmethod
    def of(cls, asset: str, beneficiary: str) -> "ScheduleKey":
        return cls(normalize_address(asset), normalize_address(beneficiary))

    @property
    def vest_id(self) -> str:
        return f"{self.asset}-{self.beneficiary}"


@dataclass(frozen=True)
class Schedule:
    """Linear release schedule for one beneficiary and one asset."""

    total: int
    start: int
    duration: int
    released: int = 0

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def per_second(self) -> int:
        """Whole units maturing per second. Informational only."""
        return self.total // self.duration

    def total_matured(self, now: int) -> int:
        """
        Units matured at ``now``: floor(total * elapsed / duration).

        ``elapsed`` is clamped to [0, duration], so the result is 0 before
        ``start``, exactly ``total`` from ``end`` onwards, and never
        decreases as ``now`` grows.
        """
        elapsed = now - self.start
        if elapsed <= 0:
            return 0
        if elapsed >= self.duration:
            return self.total
        return self.total * elapsed // self.duration

    def releasable(self, now: int) -> int:
        return self.total_matured(now) - self.released

    def with_released(self, released: int) -> "Schedule":
        return replace(self, released=released)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "released": self.released,
            "start": self.start,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        return cls(
            total=int(data["total"]),
            start=int(data["start"]),
            duration=int(data["duration"]),
            released=int(data.get("released", 0)),
        )
