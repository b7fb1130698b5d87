"""
Append-only log of domain events.

The engine publishes ``ScheduleStarted`` and ``TokensReleased`` here instead
of holding any observer-facing state. Observers either subscribe for push
delivery or pull with ``query``/``iter_pages`` and rebuild what they need.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Type, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Base event. ``seq`` and ``timestamp`` are assigned on append."""

    seq: int = field(default=0, kw_only=True)
    timestamp: int = field(default=0, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"event_type": self.event_type, **asdict(self)}


@dataclass(frozen=True)
class ScheduleStarted(DomainEvent):
    asset: str
    beneficiary: str
    creator: str


@dataclass(frozen=True)
class TokensReleased(DomainEvent):
    asset: str
    beneficiary: str
    recipient: str
    amount: int
    releasor: str


EVENT_TYPES: Dict[str, Type[DomainEvent]] = {
    "ScheduleStarted": ScheduleStarted,
    "TokensReleased": TokensReleased,
}

EventFilter = Union[str, Type[DomainEvent], None]


def event_from_dict(data: Dict[str, Any]) -> DomainEvent:
    payload = dict(data)
    event_type = payload.pop("event_type")
    try:
        cls = EVENT_TYPES[event_type]
    except KeyError:
        raise ValueError(f"Unknown event type: {event_type}") from None
    return cls(**payload)


class EventLog:
    """
    Append-only, sequence-numbered event record.

    Sequence numbers start at 1 and have no gaps, so ``seq`` doubles as a
    position for paging.
    """

    def __init__(self) -> None:
        self._events: List[DomainEvent] = []
        self._subscribers: List[Callable[[DomainEvent], None]] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._events)

    @property
    def latest_seq(self) -> int:
        return len(self._events)

    def append(self, event: DomainEvent, timestamp: Optional[int] = None) -> DomainEvent:
        with self._lock:
            stamped = replace(
                event,
                seq=len(self._events) + 1,
                timestamp=event.timestamp if timestamp is None else int(timestamp),
            )
            self._events.append(stamped)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(stamped)
            except Exception as exc:  # observers must not break the emitter
                logger.error(
                    "Event subscriber failed: %s",
                    exc,
                    exc_info=True,
                    extra={"event": "events.subscriber_failed", "seq": stamped.seq},
                )
        return stamped

    def subscribe(self, callback: Callable[[DomainEvent], None]) -> Callable[[], None]:
        """Register ``callback`` for every future event. Returns an unsubscribe handle."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def get(self, seq: int) -> DomainEvent:
        if seq < 1 or seq > len(self._events):
            raise IndexError(f"No event with seq {seq}")
        return self._events[seq - 1]

    def query(
        self,
        event_type: EventFilter = None,
        from_seq: Optional[int] = None,
        to_seq: Optional[int] = None,
        **filters: Any,
    ) -> List[DomainEvent]:
        """
        Events in ascending sequence order within [from_seq, to_seq].

        Keyword filters match event attributes exactly, e.g.
        ``query(TokensReleased, beneficiary="0xabc")``.
        """
        with self._lock:
            low = max(from_seq or 1, 1)
            high = min(to_seq if to_seq is not None else len(self._events), len(self._events))
            if high < low:
                return []
            window = self._events[low - 1:high]
        return [event for event in window if _matches(event, event_type, filters)]

    def iter_pages(
        self,
        page_size: int,
        event_type: EventFilter = None,
        start_seq: Optional[int] = None,
        end_seq: Optional[int] = None,
    ) -> Iterator[List[DomainEvent]]:
        """
        Walk the log backwards in windows of ``page_size`` sequence numbers.

        Starts at ``end_seq`` (default: newest event) and stops at
        ``start_seq`` (default: 1). Each page lists its matching events
        newest-first; windows with no match are skipped.
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        floor = max(start_seq or 1, 1)
        high = self.latest_seq if end_seq is None else min(end_seq, self.latest_seq)
        while high >= floor:
            low = max(high - page_size + 1, floor)
            page = self.query(event_type, from_seq=low, to_seq=high)
            if page:
                yield list(reversed(page))
            high = low - 1

    def to_list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [event.to_dict() for event in self._events]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "EventLog":
        log = cls()
        for expected_seq, raw in enumerate(data, start=1):
            event = event_from_dict(raw)
            if event.seq != expected_seq:
                raise ValueError(
                    f"Event log is not contiguous: expected seq {expected_seq}, got {event.seq}"
                )
            log._events.append(event)
        return log


def _matches(event: DomainEvent, event_type: EventFilter, filters: Dict[str, Any]) -> bool:
    if event_type is not None:
        name = event_type if isinstance(event_type, str) else event_type.__name__
        if event.event_type != name:
            return False
    for attr, expected in filters.items():
        if getattr(event, attr, None) != expected:
            return False
    return True
