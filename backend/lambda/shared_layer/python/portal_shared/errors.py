"""portal_shared.errors — Store error taxonomy.

Each error carries the HTTP status and envelope code it surfaces as, so
handlers translate with a single ``except PortalError``.
"""

from __future__ import annotations


class PortalError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"


class ValidationError(PortalError):
    """Malformed or missing required input."""

    status_code = 400
    code = "INVALID_INPUT"


class Unauthorized(PortalError):
    status_code = 401
    code = "PERMISSION_DENIED"


class NotFound(PortalError):
    """Referenced message id is absent from the document."""

    status_code = 404
    code = "NOT_FOUND"


class Conflict(PortalError):
    """Write lost a race against the backend revision check."""

    status_code = 409
    code = "CONFLICT"


class StorageUnavailable(PortalError):
    """Backend medium unreachable, timed out, or returned garbage."""

    status_code = 500
    code = "STORAGE_UNAVAILABLE"
