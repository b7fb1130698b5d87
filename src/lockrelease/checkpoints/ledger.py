"""
Append-only checkpoint history per (asset, account).

Each series records the value after every change, tagged with the marker
(sequence number or block height) of the write. The aggregate supply of an
asset lives in the series keyed by ``(asset, None)``.

Writes must arrive in non-decreasing marker order. A write at the same
marker as the latest entry coalesces into it; anything earlier than the
ledger clock is rejected, so settled history never changes.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from lockrelease.checkpoints.index import Checkpoint
from lockrelease.core.addresses import normalize_address
from lockrelease.core.exceptions import NegativeBalanceError, OutOfOrderWriteError

logger = logging.getLogger(__name__)

TOTAL_SUPPLY_ACCOUNT = None


class SeriesKey(NamedTuple):
    asset: str
    account: Optional[str]

    @classmethod
    def of(cls, asset: str, account: Optional[str] = TOTAL_SUPPLY_ACCOUNT) -> "SeriesKey":
        return cls(
            normalize_address(asset),
            None if account is None else normalize_address(account),
        )

    def label(self) -> str:
        return f"{self.asset}:{self.account or '*'}"


class CheckpointLedger:
    """
    Owner of every checkpoint series.

    Multi-series operations (mint, burn, transfer) compute every resulting
    value first and only then write, so a rejected operation leaves all
    series untouched.
    """

    def __init__(self, metrics: Any = None) -> None:
        self._series: Dict[SeriesKey, List[Checkpoint]] = {}
        self._clock = 0
        self._metrics = metrics
        self._lock = threading.RLock()

    # ==================== Reads ====================

    @property
    def clock(self) -> int:
        """Latest marker observed by a write or ``advance_to``."""
        return self._clock

    def series(self, asset: str, account: Optional[str] = TOTAL_SUPPLY_ACCOUNT) -> Tuple[Checkpoint, ...]:
        with self._lock:
            return tuple(self._series.get(SeriesKey.of(asset, account), ()))

    def keys(self) -> List[SeriesKey]:
        with self._lock:
            return list(self._series)

    def snapshot(self, asset: str, account: Optional[str] = TOTAL_SUPPLY_ACCOUNT) -> Tuple[Tuple[Checkpoint, ...], int]:
        """Series and clock read together under the lock."""
        with self._lock:
            return tuple(self._series.get(SeriesKey.of(asset, account), ())), self._clock

    # ==================== Writes ====================

    def advance_to(self, marker: int) -> None:
        """Move the clock forward without writing, settling earlier markers."""
        with self._lock:
            if marker < self._clock:
                raise OutOfOrderWriteError(
                    "clock cannot move backwards",
                    details={"marker": marker, "clock": self._clock},
                )
            self._set_clock(marker)

    def append_delta(
        self,
        asset: str,
        account: Optional[str],
        marker: int,
        delta: int,
    ) -> int:
        """
        Apply ``delta`` to one series at ``marker``. Returns the new value.

        Raises:
            OutOfOrderWriteError: marker is behind the series or the clock
            NegativeBalanceError: the value would drop below zero
        """
        key = SeriesKey.of(asset, account)
        with self._lock:
            new_value = self._preview(key, marker, delta)
            self._write(key, marker, new_value)
            self._set_clock(marker)
        self._record("delta")
        return new_value

    def mint(self, asset: str, account: str, amount: int, marker: int) -> None:
        """Credit ``account`` and the aggregate supply at ``marker``."""
        self._apply(
            [(SeriesKey.of(asset, account), amount), (SeriesKey.of(asset), amount)],
            marker,
        )
        self._record("mint")

    def burn(self, asset: str, account: str, amount: int, marker: int) -> None:
        """Debit ``account`` and the aggregate supply at ``marker``."""
        self._apply(
            [(SeriesKey.of(asset, account), -amount), (SeriesKey.of(asset), -amount)],
            marker,
        )
        self._record("burn")

    def transfer(
        self,
        asset: str,
        sender: str,
        recipient: str,
        amount: int,
        marker: int,
        burned: int = 0,
    ) -> None:
        """
        Move ``amount`` from ``sender`` to ``recipient``, all at ``marker`` or nothing.

        ``burned`` is an extra amount debited from the sender and removed from
        the aggregate supply in the same step (fee-on-transfer tokens).
        """
        sender_key = SeriesKey.of(asset, sender)
        recipient_key = SeriesKey.of(asset, recipient)
        deltas: List[Tuple[SeriesKey, int]] = []
        if sender_key != recipient_key:
            deltas = [(sender_key, -(amount + burned)), (recipient_key, amount)]
        elif burned:
            deltas = [(sender_key, -burned)]
        if burned:
            deltas.append((SeriesKey.of(asset), -burned))
        self._apply(deltas, marker)
        self._record("transfer")

    # ==================== Helpers ====================

    def _apply(self, deltas: Sequence[Tuple[SeriesKey, int]], marker: int) -> None:
        with self._lock:
            if marker < self._clock:
                raise OutOfOrderWriteError(
                    "write behind ledger clock",
                    details={"marker": marker, "clock": self._clock},
                )
            planned = [(key, self._preview(key, marker, delta)) for key, delta in deltas]
            for key, new_value in planned:
                self._write(key, marker, new_value)
            self._set_clock(marker)

    def _preview(self, key: SeriesKey, marker: int, delta: int) -> int:
        entries = self._series.get(key, [])
        last_marker = entries[-1].marker if entries else None
        if marker < self._clock or (last_marker is not None and marker < last_marker):
            raise OutOfOrderWriteError(
                "checkpoint write out of order",
                details={
                    "series": key.label(),
                    "marker": marker,
                    "last_marker": last_marker,
                    "clock": self._clock,
                },
            )
        last_value = entries[-1].value if entries else 0
        new_value = last_value + delta
        if new_value < 0:
            logger.critical(
                "Checkpoint underflow rejected",
                extra={
                    "event": "checkpoints.negative_balance",
                    "series": key.label(),
                    "marker": marker,
                    "value": last_value,
                    "delta": delta,
                },
            )
            raise NegativeBalanceError(
                "checkpoint value would become negative",
                details={"series": key.label(), "value": last_value, "delta": delta},
            )
        return new_value

    def _write(self, key: SeriesKey, marker: int, value: int) -> None:
        entries = self._series.setdefault(key, [])
        if entries and entries[-1].marker == marker:
            entries[-1] = Checkpoint(marker, value)
        else:
            entries.append(Checkpoint(marker, value))

    def _set_clock(self, marker: int) -> None:
        self._clock = marker
        if self._metrics is not None:
            self._metrics.checkpoint_clock.set(marker)

    def _record(self, operation: str) -> None:
        if self._metrics is not None:
            self._metrics.checkpoint_writes.labels(operation=operation).inc()

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "clock": self._clock,
                "series": [
                    {
                        "asset": key.asset,
                        "account": key.account,
                        "checkpoints": [[cp.marker, cp.value] for cp in entries],
                    }
                    for key, entries in self._series.items()
                ],
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], metrics: Any = None) -> "CheckpointLedger":
        ledger = cls(metrics=metrics)
        for raw in data.get("series", []):
            key = SeriesKey.of(raw["asset"], raw.get("account"))
            entries = [Checkpoint(int(marker), int(value)) for marker, value in raw["checkpoints"]]
            for previous, current in zip(entries, entries[1:]):
                if current.marker <= previous.marker:
                    raise OutOfOrderWriteError(
                        "stored series markers are not strictly increasing",
                        details={"series": key.label()},
                    )
            ledger._series[key] = entries
        ledger._clock = int(data.get("clock", 0))
        return ledger
