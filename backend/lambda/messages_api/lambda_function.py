"""messages_api/lambda_function.py

Lambda API for client messages on the status portal. Messages are stored
newest-first inside the live-data document (see portal_shared.messages).

Routes (via API Gateway proxy):
    GET     /messages            — list (?status=&priority=&category=&limit=&offset=)
    POST    /messages            — create a message
    GET     /messages/manage?id= — fetch one message
    PUT     /messages/manage     — markRead | addResponse | update
    DELETE  /messages/manage     — archive (soft delete)
    OPTIONS /messages[/manage]   — CORS preflight

Auth:
    Client routes are open. PUT/DELETE on /messages/manage require
    X-Portal-Staff-Key when PORTAL_STAFF_API_KEYS is set.

Environment variables:
    PORTAL_STORAGE_BACKEND   file | dynamodb | github (see portal_shared.selector)
    PORTAL_EPHEMERAL         default: false
    CORS_ALLOWED_ORIGINS     default: *
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping

from portal_shared.auth import require_staff
from portal_shared.errors import PortalError, ValidationError
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
from portal_shared.messages import MessageFilter, MessageUpdate, NewMessage, Page
from portal_shared.selector import PortalStore, get_store

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

COLLECTION_METHODS = ("GET", "POST", "OPTIONS")
MANAGE_METHODS = ("GET", "PUT", "DELETE", "OPTIONS")

_RE_MANAGE = re.compile(r"/messages/manage/?$")


def _get_store() -> PortalStore:
    return get_store()


def _message_id(body: Mapping[str, Any], qs: Mapping[str, Any]) -> str:
    raw = body.get("id")
    if raw in (None, ""):
        raw = body.get("messageId")
    if raw in (None, ""):
        raw = qs.get("id")
    if isinstance(raw, bool) or not isinstance(raw, (str, int)) or not str(raw).strip():
        raise ValidationError("Field 'id' is required.")
    return str(raw).strip()


# ---------------------------------------------------------------------------
# /messages
# ---------------------------------------------------------------------------


def _handle_list(event: Dict, store: PortalStore) -> Dict:
    qs = _query(event)
    page = store.messages.list_messages(MessageFilter.from_query(qs), Page.from_query(qs))
    payload: Dict[str, Any] = {
        "success": True,
        "messages": page.items,
        "count": len(page.items),
        "pagination": {
            "total": page.total,
            "limit": page.limit,
            "offset": page.offset,
            "hasMore": page.has_more,
        },
        "lastUpdated": page.last_updated,
    }
    if page.degraded:
        payload["degraded"] = True
    return _response(200, payload)


def _handle_create(event: Dict, store: PortalStore) -> Dict:
    body = _parse_body(event)
    message = store.messages.create_message(NewMessage.from_body(body))
    return _response(201, {"success": True, "data": message})


# ---------------------------------------------------------------------------
# /messages/manage
# ---------------------------------------------------------------------------


def _handle_get_one(event: Dict, store: PortalStore) -> Dict:
    message_id = _message_id({}, _query(event))
    return _response(200, {"success": True, "data": store.messages.get_message(message_id)})


def _handle_update(event: Dict, store: PortalStore) -> Dict:
    require_staff(event)
    body = _parse_body(event)
    message_id = _message_id(body, {})
    update = MessageUpdate.from_body(body)
    message = store.messages.update_message(message_id, update)
    return _response(200, {"success": True, "data": message})


def _handle_archive(event: Dict, store: PortalStore) -> Dict:
    require_staff(event)
    body = _parse_body(event)
    message_id = _message_id(body, _query(event))
    message = store.messages.archive_message(message_id)
    return _response(200, {
        "success": True,
        "data": {
            "id": message["id"],
            "status": message["status"],
            "archivedAt": message.get("archivedAt"),
        },
    })


def _route(method: str, path: str, event: Dict, store: PortalStore) -> Dict:
    if _RE_MANAGE.search(path):
        if method == "GET":
            return _handle_get_one(event, store)
        if method == "PUT":
            return _handle_update(event, store)
        if method == "DELETE":
            return _handle_archive(event, store)
        return _method_not_allowed(method, MANAGE_METHODS)

    if method == "GET":
        return _handle_list(event, store)
    if method == "POST":
        return _handle_create(event, store)
    return _method_not_allowed(method, COLLECTION_METHODS)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    allowed = MANAGE_METHODS if _RE_MANAGE.search(path) else COLLECTION_METHODS

    # CORS preflight
    if method == "OPTIONS":
        return _with_cors(_options_response(), event, allowed)

    try:
        resp = _route(method, path, event, _get_store())
    except PortalError as exc:
        resp = _error_from_exception(exc)
    except Exception:
        logger.exception("messages_api failed: %s %s", method, path)
        resp = _error(500, "Internal server error.")
    return _with_cors(resp, event, allowed)
