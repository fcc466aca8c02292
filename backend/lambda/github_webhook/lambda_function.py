"""github_webhook/lambda_function.py

GitHub push webhook that moves project progress from commit messages.

Routes (via API Gateway proxy):
    POST /github/webhook — push events; HMAC-verified, no staff key

Commits on GITHUB_BRANCH whose first line carries a phase or percentage
(see portal_shared.commit_progress) update ``progress``/``phase`` and add
changelog entries to ``updates``. Every other event is acknowledged and
ignored.

Environment variables:
    GITHUB_WEBHOOK_SECRET     HMAC secret, or
    GITHUB_WEBHOOK_SECRET_ID  Secrets Manager id holding it
    GITHUB_BRANCH             default: main
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any, Dict

from portal_shared import config
from portal_shared.credentials import webhook_secret
from portal_shared.errors import PortalError
from portal_shared.http_utils import (
    _error,
    _error_from_exception,
    _header,
    _method_not_allowed,
    _parse_body,
    _path_method,
    _response,
)
from portal_shared.selector import PortalStore, get_store

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _get_store() -> PortalStore:
    return get_store()


def _verify_webhook_signature(event: Dict) -> bool:
    """Verify GitHub webhook HMAC-SHA256 signature."""
    signature_header = _header(event, "x-hub-signature-256")
    if not signature_header.startswith("sha256="):
        return False

    secret = webhook_secret()
    if not secret:
        logger.error("Webhook secret not configured; rejecting delivery")
        return False

    raw_body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            raw_bytes = base64.b64decode(raw_body)
        except ValueError:
            logger.warning("Webhook body is not valid base64")
            return False
    else:
        raw_bytes = raw_body.encode("utf-8")

    expected = hmac.new(secret.encode("utf-8"), raw_bytes, hashlib.sha256).hexdigest()
    received = signature_header[len("sha256="):]
    return hmac.compare_digest(expected, received)


def _handle_push(body: Dict, store: PortalStore) -> Dict:
    ref = str(body.get("ref") or "")
    if ref != f"refs/heads/{config.GITHUB_BRANCH}":
        return _response(200, {"processed": False, "reason": "branch_ignored", "ref": ref})

    commits = [c for c in (body.get("commits") or []) if isinstance(c, dict)]
    document = store.status.record_commit_progress(commits)
    if document is None:
        return _response(200, {"processed": False, "reason": "no_progress_hints", "commits": len(commits)})
    return _response(200, {
        "processed": True,
        "progress": document.get("progress"),
        "phase": document.get("phase"),
        "lastUpdated": document.get("lastUpdated"),
    })


def _handle_webhook(event: Dict) -> Dict:
    if not _verify_webhook_signature(event):
        logger.warning("Webhook signature verification failed")
        return _error(401, "Invalid webhook signature.")

    body = _parse_body(event)
    gh_event = _header(event, "x-github-event")
    delivery_id = _header(event, "x-github-delivery") or "unknown"
    logger.info("Webhook received: event=%s delivery=%s", gh_event, delivery_id)

    if gh_event == "ping":
        return _response(200, {"processed": False, "reason": "ping"})
    if gh_event != "push":
        return _response(200, {"processed": False, "reason": "event_not_handled", "event": gh_event})
    return _handle_push(body, _get_store())


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)
    if method != "POST":
        return _method_not_allowed(method, ["POST"])
    try:
        return _handle_webhook(event)
    except PortalError as exc:
        return _error_from_exception(exc)
    except Exception:
        logger.exception("github_webhook failed: %s %s", method, path)
        return _error(500, "Internal server error.")
