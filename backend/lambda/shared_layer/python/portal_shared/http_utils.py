"""portal_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope and error formatting used by all portal API
Lambda functions (API Gateway v2 proxy events).
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Iterable, Mapping, Tuple

from portal_shared import config
from portal_shared.errors import PortalError, StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_HEADERS = "Origin, X-Requested-With, Content-Type, Accept, Authorization, X-Portal-Staff-Key"


def _header(event: Mapping[str, Any], name: str) -> str:
    headers = event.get("headers") or {}
    lowered = name.lower()
    for key, value in headers.items():
        if str(key).lower() == lowered:
            return str(value or "")
    return ""


def _cors_headers(event: Mapping[str, Any], methods: Iterable[str]) -> Dict[str, str]:
    """Reflect an allow-listed Origin, else fall back to wildcard or the first entry."""
    allowed = config.CORS_ALLOWED_ORIGINS
    origin = _header(event, "origin")
    headers = {
        "Access-Control-Allow-Methods": ", ".join(methods),
        "Access-Control-Allow-Headers": _ALLOWED_HEADERS,
    }
    if origin and origin in allowed:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    elif "*" in allowed or not allowed:
        headers["Access-Control-Allow-Origin"] = "*"
    else:
        headers["Access-Control-Allow-Origin"] = allowed[0]
        headers["Vary"] = "Origin"
    return headers


def _with_cors(resp: Dict[str, Any], event: Mapping[str, Any], methods: Iterable[str]) -> Dict[str, Any]:
    resp["headers"] = {**_cors_headers(event, methods), **(resp.get("headers") or {})}
    return resp


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build a standard API Gateway JSON response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def _options_response() -> Dict[str, Any]:
    return {"statusCode": 204, "headers": {}, "body": ""}


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: ``code``/``retryable`` override the envelope; anything else
            is merged into the payload and the envelope details.
    """
    code = str(extra.pop("code", "") or "").strip().upper()
    if not code:
        if status_code == 400:
            code = "INVALID_INPUT"
        elif status_code == 401:
            code = "PERMISSION_DENIED"
        elif status_code == 404:
            code = "NOT_FOUND"
        elif status_code == 405:
            code = "METHOD_NOT_ALLOWED"
        elif status_code == 409:
            code = "CONFLICT"
        else:
            code = "INTERNAL_ERROR"
    retryable = bool(extra.pop("retryable", status_code >= 500 or status_code == 409))
    details = dict(extra)
    payload: Dict[str, Any] = {
        "success": False,
        "error": message,
        "error_envelope": {
            "code": code,
            "message": message,
            "retryable": retryable,
            "details": details,
        },
    }
    payload.update(details)
    return _response(status_code, payload)


def _error_from_exception(exc: PortalError) -> Dict[str, Any]:
    """Translate a store error; production hides 5xx detail from the client."""
    message = str(exc) or exc.__class__.__name__
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.__class__.__name__, message)
        if config.PORTAL_ENV == "production":
            message = (
                "Storage backend unavailable."
                if isinstance(exc, StorageUnavailable)
                else "Internal server error."
            )
    return _error(exc.status_code, message, code=exc.code)


def _method_not_allowed(method: str, allowed: Iterable[str]) -> Dict[str, Any]:
    allowed = list(allowed)
    return _error(405, f"Method {method} not allowed.", allowed=allowed)


def _parse_body(event: Mapping[str, Any]) -> Dict[str, Any]:
    """Parse a JSON object body (handles base64); ValidationError otherwise."""
    raw = event.get("body")
    if raw in (None, ""):
        return {}
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError("Request body is not valid base64 UTF-8.") from exc
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValidationError(f"Invalid JSON body: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValidationError("JSON body must be an object.")
    return parsed


def _path_method(event: Mapping[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from an API Gateway v2 (or v1) event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = event.get("rawPath") or http.get("path") or event.get("path") or "/"
    return method, path


def _query(event: Mapping[str, Any]) -> Dict[str, Any]:
    return dict(event.get("queryStringParameters") or {})
