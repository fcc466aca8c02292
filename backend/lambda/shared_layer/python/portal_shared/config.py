"""portal_shared.config — Environment configuration for the portal Lambdas.

All values are read once at import. Tests override module attributes
directly rather than mutating the environment.
"""

from __future__ import annotations

import os


def _normalize_csv(*raw_values: str) -> tuple[str, ...]:
    """Return deduplicated, non-empty values from scalar/csv env sources."""
    values: list[str] = []
    seen: set[str] = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            value = part.strip()
            if not value or value in seen:
                continue
            seen.add(value)
            values.append(value)
    return tuple(values)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Deployment / backend selection
# ---------------------------------------------------------------------------

PORTAL_ENV = os.environ.get("PORTAL_ENV", "development").strip().lower()
PORTAL_STORAGE_BACKEND = os.environ.get("PORTAL_STORAGE_BACKEND", "").strip().lower()
PORTAL_EPHEMERAL = _env_bool("PORTAL_EPHEMERAL")
PORTAL_EPHEMERAL_BACKEND = os.environ.get("PORTAL_EPHEMERAL_BACKEND", "github").strip().lower()

# ---------------------------------------------------------------------------
# Backend locations
# ---------------------------------------------------------------------------

LIVE_DATA_PATH = os.environ.get("LIVE_DATA_PATH", "inex-live-data.json")
LIVE_DATA_TABLE = os.environ.get("LIVE_DATA_TABLE", "portal-live-data")
LIVE_DATA_KEY = os.environ.get("LIVE_DATA_KEY", "live-data")
DYNAMODB_REGION = os.environ.get("DYNAMODB_REGION", "us-west-2")
SECRETS_REGION = os.environ.get("SECRETS_REGION", DYNAMODB_REGION)

GITHUB_API_BASE = os.environ.get("GITHUB_API_BASE", "https://api.github.com").rstrip("/")
GITHUB_REPO = os.environ.get("GITHUB_REPO", "cochranfilms/INEX")
GITHUB_BRANCH = os.environ.get("GITHUB_BRANCH", "main")
GITHUB_LIVE_DATA_PATH = os.environ.get("GITHUB_LIVE_DATA_PATH", "inex-live-data.json")
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_TOKEN_SECRET_ID = os.environ.get("GITHUB_TOKEN_SECRET_ID", "")
GITHUB_WEBHOOK_SECRET = os.environ.get("GITHUB_WEBHOOK_SECRET", "")
GITHUB_WEBHOOK_SECRET_ID = os.environ.get("GITHUB_WEBHOOK_SECRET_ID", "")

# ---------------------------------------------------------------------------
# I/O limits
# ---------------------------------------------------------------------------

STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "5"))
STORAGE_MAX_WRITE_ATTEMPTS = max(1, int(os.environ.get("STORAGE_MAX_WRITE_ATTEMPTS", "3")))

# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

CORS_ALLOWED_ORIGINS = _normalize_csv(os.environ.get("CORS_ALLOWED_ORIGINS", "*"))
PORTAL_STAFF_API_KEYS = _normalize_csv(os.environ.get("PORTAL_STAFF_API_KEYS", ""))

# ---------------------------------------------------------------------------
# Default live-data document fallbacks
# ---------------------------------------------------------------------------

DEFAULT_PHASE = os.environ.get("DEFAULT_PHASE", "Discovery")
DEFAULT_PHASE_NAME = os.environ.get("DEFAULT_PHASE_NAME", "Discovery Phase")
DEFAULT_STATUS = os.environ.get("DEFAULT_STATUS", "Project kickoff")
DEFAULT_ETA = os.environ.get("DEFAULT_ETA", "Sep 11-18, 2025")
DEFAULT_SCOPE = os.environ.get("DEFAULT_SCOPE", "Scope v1.0")
DEFAULT_OWNER = os.environ.get("DEFAULT_OWNER", "Cochran Full Stack Solutions")
DEFAULT_CLIENT = os.environ.get("DEFAULT_CLIENT", "INEX")
DEFAULT_RESPONDER = os.environ.get("DEFAULT_RESPONDER", "Development Team")
