"""
Base utilities for the lockrelease API blueprint.

Provides the request context accessors and the response envelope shared by
every route.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from flask import g, jsonify, request

from lockrelease.core.exceptions import (
    ClaimError,
    LedgerError,
    SequencingError,
    TransferError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class QueryParamError(ValueError):
    """Raised when a query string parameter is not a valid integer."""
    pass


def get_api_context() -> Dict[str, Any]:
    """Context installed on Flask's ``g`` before each request."""
    return g.get("api_context", {})


def get_ledger() -> Any:
    return get_api_context().get("ledger")


def success_response(payload: Dict[str, Any], status: int = 200) -> Tuple[Any, int]:
    """Return a success payload with consistent structure."""
    body = {"success": True, **payload}
    return jsonify(body), status


def error_response(
    message: str,
    status: int = 400,
    code: str = "bad_request",
    context: Optional[Dict[str, Any]] = None,
) -> Tuple[Any, int]:
    """Return an error payload and log it."""
    level = logging.ERROR if status >= 500 else logging.WARNING
    logger.log(
        level,
        "API error: %s",
        message,
        extra={"event": "api.error", "code": code, "status": status, "path": request.path, **(context or {})},
    )
    return jsonify({"success": False, "error": message, "code": code}), status


def ledger_error_response(exc: LedgerError) -> Tuple[Any, int]:
    """Map a ledger error onto an HTTP status."""
    if isinstance(exc, (ValidationError, ClaimError, SequencingError, TransferError)):
        status = 400
    else:
        status = 500
    return error_response(exc.message, status=status, code=exc.code)


def get_int_param(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise QueryParamError(f"{name} must be an integer") from None
