"""status_api/lambda_function.py

Lambda API for the project status shown on the client portal.

Routes (via API Gateway proxy):
    GET     /status          — current status (?include_messages=true adds messages)
    POST    /status-update   — merge-update progress/phase/status and optional fields
    OPTIONS /status[-update] — CORS preflight

Auth:
    POST /status-update requires X-Portal-Staff-Key when
    PORTAL_STAFF_API_KEYS is set.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from portal_shared.auth import require_staff
from portal_shared.errors import PortalError
from portal_shared.http_utils import (
    _error,
    _error_from_exception,
    _method_not_allowed,
    _options_response,
    _parse_body,
    _path_method,
    _query,
    _response,
    _with_cors,
)
from portal_shared.selector import PortalStore, get_store
from portal_shared.status import StatusPatch

logger = logging.getLogger()
logger.setLevel(logging.INFO)

UPDATE_METHODS = ("POST", "OPTIONS")
READ_METHODS = ("GET", "OPTIONS")


def _get_store() -> PortalStore:
    return get_store()


def _is_update_path(path: str) -> bool:
    return path.rstrip("/").endswith("/status-update")


def _handle_get(event: Dict, store: PortalStore) -> Dict:
    include = str(_query(event).get("include_messages", "false")).lower() == "true"
    document, degraded = store.status.read_status(include_messages=include)
    payload: Dict[str, Any] = {"success": True, "data": document}
    if degraded:
        payload["degraded"] = True
    return _response(200, payload)


def _handle_update(event: Dict, store: PortalStore) -> Dict:
    require_staff(event)
    patch = StatusPatch.from_body(_parse_body(event))
    document = store.status.update_status(patch)
    document.pop("messages", None)
    return _response(200, {"success": True, "data": document})


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    update_route = _is_update_path(path)
    allowed = UPDATE_METHODS if update_route else READ_METHODS

    if method == "OPTIONS":
        return _with_cors(_options_response(), event, allowed)

    try:
        if update_route and method == "POST":
            resp = _handle_update(event, _get_store())
        elif not update_route and method == "GET":
            resp = _handle_get(event, _get_store())
        else:
            resp = _method_not_allowed(method, allowed)
    except PortalError as exc:
        resp = _error_from_exception(exc)
    except Exception:
        logger.exception("status_api failed: %s %s", method, path)
        resp = _error(500, "Internal server error.")
    return _with_cors(resp, event, allowed)
