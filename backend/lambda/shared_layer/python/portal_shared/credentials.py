"""portal_shared.credentials — GitHub token and webhook secret lookup.

A value set directly in the environment wins; otherwise the secret is
fetched from Secrets Manager and cached for an hour per container.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from portal_shared import config
from portal_shared.aws_clients import _get_secretsmanager
from portal_shared.errors import StorageUnavailable

logger = logging.getLogger(__name__)

_SECRET_TTL: float = 3600.0
_secret_cache: Dict[str, Tuple[str, float]] = {}


def _get_secret(secret_id: str) -> str:
    """Fetch a SecretString from Secrets Manager (cached)."""
    now = time.time()
    cached = _secret_cache.get(secret_id)
    if cached and (now - cached[1]) < _SECRET_TTL:
        return cached[0]

    try:
        resp = _get_secretsmanager().get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as exc:
        logger.error("Secrets Manager lookup failed for %s: %s", secret_id, exc)
        raise StorageUnavailable("Credential lookup failed.") from exc

    value = str(resp.get("SecretString") or "").strip()
    _secret_cache[secret_id] = (value, now)
    return value


def github_token() -> str:
    if config.GITHUB_TOKEN:
        return config.GITHUB_TOKEN
    if config.GITHUB_TOKEN_SECRET_ID:
        return _get_secret(config.GITHUB_TOKEN_SECRET_ID)
    return ""


def webhook_secret() -> str:
    if config.GITHUB_WEBHOOK_SECRET:
        return config.GITHUB_WEBHOOK_SECRET
    if config.GITHUB_WEBHOOK_SECRET_ID:
        return _get_secret(config.GITHUB_WEBHOOK_SECRET_ID)
    return ""
