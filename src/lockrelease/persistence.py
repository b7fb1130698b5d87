"""
JSON snapshot persistence for a LockReleaseLedger.

A snapshot holds tokens (with their custodian), schedules, checkpoint
series and the event log. Writes go to a temporary file first and are
moved into place with ``os.replace`` so a crash never leaves a torn file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from lockrelease.checkpoints.ledger import CheckpointLedger
from lockrelease.contracts.erc20 import ERC20Token
from lockrelease.core.exceptions import ConfigurationError
from lockrelease.events import EventLog
from lockrelease.ledger import DEFAULT_CUSTODIAN, DEFAULT_EVENT_PAGE_SIZE, LockReleaseLedger
from lockrelease.schedules.store import ScheduleStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

PathLike = Union[str, Path]


def snapshot(ledger: LockReleaseLedger) -> Dict[str, Any]:
    with ledger._lock:
        return {
            "version": SNAPSHOT_VERSION,
            "custodian": ledger.custodian,
            "tokens": [
                {**token.to_dict(), "custodian": ledger.custodian_for(address)}
                for address, token in ledger.tokens.deployed_tokens.items()
            ],
            "schedules": ledger.engine.store.to_dict(),
            "checkpoints": ledger.checkpoints.to_dict(),
            "events": ledger.event_log.to_list(),
        }


def restore(
    data: Dict[str, Any],
    time_provider: Optional[Callable[[], int]] = None,
    metrics: Any = None,
    event_page_size: int = DEFAULT_EVENT_PAGE_SIZE,
) -> LockReleaseLedger:
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise ConfigurationError(
            f"Unsupported snapshot version: {version}",
            details={"expected": SNAPSHOT_VERSION},
        )

    ledger = LockReleaseLedger(
        time_provider=time_provider,
        custodian=data.get("custodian", DEFAULT_CUSTODIAN),
        metrics=metrics,
        event_page_size=event_page_size,
        checkpoints=CheckpointLedger.from_dict(data.get("checkpoints", {}), metrics=metrics),
        store=ScheduleStore.from_dict(data.get("schedules", {})),
        event_log=EventLog.from_list(data.get("events", [])),
    )
    for raw in data.get("tokens", []):
        token_data = dict(raw)
        custodian = token_data.pop("custodian", None)
        ledger.attach_token(ERC20Token.from_dict(token_data), custodian=custodian)
    return ledger


def save_state(ledger: LockReleaseLedger, path: PathLike) -> Path:
    """Write ``ledger`` to ``path`` atomically. Returns the resolved path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = snapshot(ledger)

    tmp = target.with_name(f"{target.name}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, target)

    logger.info(
        "Ledger state saved",
        extra={
            "event": "persistence.saved",
            "path": str(target),
            "schedules": len(payload["schedules"]),
            "events": len(payload["events"]),
        },
    )
    return target


def load_state(
    path: PathLike,
    time_provider: Optional[Callable[[], int]] = None,
    metrics: Any = None,
    event_page_size: int = DEFAULT_EVENT_PAGE_SIZE,
    custodian: str = DEFAULT_CUSTODIAN,
) -> LockReleaseLedger:
    """Load a ledger saved with ``save_state``. A missing file gives an empty ledger."""
    target = Path(path)
    if not target.exists():
        logger.info("No state file at %s, starting empty", target)
        return LockReleaseLedger(
            time_provider=time_provider,
            custodian=custodian,
            metrics=metrics,
            event_page_size=event_page_size,
        )

    with open(target, "r", encoding="utf-8") as f:
        data = json.load(f)

    ledger = restore(data, time_provider=time_provider, metrics=metrics, event_page_size=event_page_size)
    logger.debug(
        "Ledger state loaded",
        extra={"event": "persistence.loaded", "path": str(target), "tokens": len(ledger.tokens.deployed_tokens)},
    )
    return ledger
