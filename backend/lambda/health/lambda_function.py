"""health/lambda_function.py

GET /health — reports deployment environment and the selected live-data
backend without touching the backend itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from portal_shared import config
from portal_shared.http_utils import (
    _error,
    _method_not_allowed,
    _options_response,
    _path_method,
    _response,
    _with_cors,
)
from portal_shared.selector import resolve_backend_name
from portal_shared.serialization import _now_z

logger = logging.getLogger()
logger.setLevel(logging.INFO)

ALLOWED_METHODS = ("GET", "OPTIONS")
ENDPOINTS = [
    "/health",
    "/messages",
    "/messages/manage",
    "/status",
    "/status-update",
    "/github/webhook",
]


def _handle_get() -> Dict:
    try:
        backend = resolve_backend_name(
            config.PORTAL_STORAGE_BACKEND,
            config.PORTAL_EPHEMERAL,
            config.PORTAL_EPHEMERAL_BACKEND,
        )
    except ValueError as exc:
        logger.error("backend misconfigured: %s", exc)
        return _error(500, "Live-data backend is misconfigured.")

    return _response(200, {
        "success": True,
        "message": "INEX API Health Check",
        "timestamp": _now_z(),
        "environment": config.PORTAL_ENV,
        "backend": backend,
        "ephemeral": config.PORTAL_EPHEMERAL,
        "endpoints": ENDPOINTS,
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, _path = _path_method(event)
    if method == "OPTIONS":
        resp = _options_response()
    elif method == "GET":
        resp = _handle_get()
    else:
        resp = _method_not_allowed(method, ALLOWED_METHODS)
    return _with_cors(resp, event, ALLOWED_METHODS)
