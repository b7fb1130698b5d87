"""
lockrelease HTTP query surface.

Usage:
    from lockrelease.api import create_app

    app = create_app(ledger)
    app.run(host="127.0.0.1", port=8780)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, g

from lockrelease.api.routes import ledger_bp

__all__ = ["create_app", "register_blueprints", "ledger_bp"]

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "/api/v1"


def register_blueprints(app: Flask, ledger: Any, prefix: str = DEFAULT_PREFIX) -> None:
    """
    Register the ledger blueprint with the Flask app.

    A before_request handler injects the ledger into Flask's ``g`` so route
    functions never reach for module globals.
    """
    api_context = {"ledger": ledger}

    @app.before_request
    def inject_api_context() -> None:
        g.api_context = api_context

    app.register_blueprint(ledger_bp, url_prefix=prefix)


def create_app(ledger: Any, config: Optional[Any] = None) -> Flask:
    """Build a Flask app serving ``ledger``. ``config`` is a ConfigManager."""
    app = Flask(__name__)
    app.json.sort_keys = False
    prefix = config.api.prefix if config is not None else DEFAULT_PREFIX
    register_blueprints(app, ledger, prefix=prefix)
    logger.info("API app created", extra={"event": "api.created", "prefix": prefix})
    return app
