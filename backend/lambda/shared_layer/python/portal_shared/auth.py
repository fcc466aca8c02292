"""portal_shared.auth — Optional shared-key gate for staff routes.

When PORTAL_STAFF_API_KEYS is empty every route is open, matching the
client-side allow-list deployment where the dashboard does its own gating.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Mapping

from portal_shared import config
from portal_shared.errors import Unauthorized
from portal_shared.http_utils import _header

logger = logging.getLogger(__name__)

STAFF_KEY_HEADER = "X-Portal-Staff-Key"


def require_staff(event: Mapping[str, Any]) -> None:
    """Raise Unauthorized unless the request carries a configured staff key."""
    keys = config.PORTAL_STAFF_API_KEYS
    if not keys:
        return
    presented = _header(event, STAFF_KEY_HEADER).strip()
    if presented and any(hmac.compare_digest(presented, key) for key in keys):
        return
    logger.warning("staff route rejected: %s header missing or invalid", STAFF_KEY_HEADER)
    raise Unauthorized("Staff key required.")
