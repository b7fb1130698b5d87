"""
Ledger API Blueprint

Read-only query endpoints: schedules, vests, events, checkpoints and
historical balances.
"""

from __future__ import annotations

import logging
from typing import Any, Tuple

from flask import Blueprint, Response, request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from lockrelease import __version__
from lockrelease.api.base import (
    QueryParamError,
    error_response,
    get_int_param,
    get_ledger,
    ledger_error_response,
    success_response,
)
from lockrelease.core.exceptions import LedgerError
from lockrelease.events import EVENT_TYPES

logger = logging.getLogger(__name__)

ledger_bp = Blueprint("ledger", __name__)


@ledger_bp.errorhandler(LedgerError)
def handle_ledger_error(exc: LedgerError) -> Tuple[Any, int]:
    return ledger_error_response(exc)


@ledger_bp.errorhandler(QueryParamError)
def handle_query_param_error(exc: QueryParamError) -> Tuple[Any, int]:
    return error_response(str(exc), status=400, code="invalid_parameter")


@ledger_bp.route("/health", methods=["GET"])
def health() -> Tuple[Any, int]:
    ledger = get_ledger()
    return success_response(
        {
            "status": "ok",
            "version": __version__,
            "schedules": len(ledger.engine.store),
            "events": ledger.event_log.latest_seq,
            "clock": ledger.votes.clock(),
        }
    )


@ledger_bp.route("/schedules/<asset>/<beneficiary>", methods=["GET"])
def get_schedule(asset: str, beneficiary: str) -> Tuple[Any, int]:
    """Stored schedule plus matured/releasable at ``now`` (default: ledger time)."""
    ledger = get_ledger()
    info = ledger.schedule_info(asset, beneficiary, now=get_int_param("now"))
    if info is None:
        return error_response("Schedule not found", status=404, code="not_found")
    return success_response({"schedule": info})


@ledger_bp.route("/vests", methods=["GET"])
def list_vests() -> Tuple[Any, int]:
    ledger = get_ledger()
    now = get_int_param("now")
    query = request.args.get("q")
    if query is not None:
        records = ledger.search(query, now=now)
    else:
        records = ledger.recompute_all(now=now)
    return success_response({"total": len(records), "vests": [record.to_dict() for record in records]})


@ledger_bp.route("/events", methods=["GET"])
def list_events() -> Tuple[Any, int]:
    ledger = get_ledger()
    event_type = request.args.get("type")
    if event_type is not None and event_type not in EVENT_TYPES:
        return error_response(
            f"Unknown event type: {event_type}",
            status=400,
            code="invalid_parameter",
        )
    events = ledger.event_log.query(
        event_type,
        from_seq=get_int_param("from_seq"),
        to_seq=get_int_param("to_seq"),
    )
    return success_response(
        {
            "latest_seq": ledger.event_log.latest_seq,
            "events": [event.to_dict() for event in events],
        }
    )


@ledger_bp.route("/checkpoints/<asset>/<account>", methods=["GET"])
def get_checkpoints(asset: str, account: str) -> Tuple[Any, int]:
    ledger = get_ledger()
    series = ledger.checkpoints.series(asset, account)
    return success_response(
        {
            "num_checkpoints": len(series),
            "votes": ledger.votes.get_votes(asset, account),
            "checkpoints": [{"marker": cp.marker, "value": cp.value} for cp in series],
        }
    )


@ledger_bp.route("/checkpoints/<asset>/<account>/<int:pos>", methods=["GET"])
def get_checkpoint(asset: str, account: str, pos: int) -> Tuple[Any, int]:
    ledger = get_ledger()
    try:
        checkpoint = ledger.votes.checkpoints(asset, account, pos)
    except IndexError as exc:
        return error_response(str(exc), status=404, code="checkpoint_not_found")
    return success_response({"pos": pos, "marker": checkpoint.marker, "value": checkpoint.value})


@ledger_bp.route("/votes/<asset>/<account>", methods=["GET"])
def get_votes(asset: str, account: str) -> Tuple[Any, int]:
    """Current balance, or the balance at ``timepoint`` when given."""
    ledger = get_ledger()
    timepoint = get_int_param("timepoint")
    if timepoint is None:
        value = ledger.votes.get_votes(asset, account)
    else:
        value = ledger.votes.get_past_votes(asset, account, timepoint)
    return success_response({"votes": value, "timepoint": timepoint, "clock": ledger.votes.clock()})


@ledger_bp.route("/total-supply/<asset>", methods=["GET"])
def get_total_supply(asset: str) -> Tuple[Any, int]:
    ledger = get_ledger()
    timepoint = get_int_param("timepoint")
    if timepoint is None:
        value = ledger.votes.get_total_supply(asset)
    else:
        value = ledger.votes.get_past_total_supply(asset, timepoint)
    return success_response({"total_supply": value, "timepoint": timepoint, "clock": ledger.votes.clock()})


@ledger_bp.route("/metrics", methods=["GET"])
def metrics() -> Any:
    """Prometheus exposition of the ledger's metrics registry."""
    ledger = get_ledger()
    if ledger.metrics is None:
        return error_response("Metrics are disabled", status=404, code="metrics_disabled")
    return Response(generate_latest(ledger.metrics.registry), mimetype=CONTENT_TYPE_LATEST)
