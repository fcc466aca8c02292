"""portal_shared.aws_clients — Lazy-singleton AWS service clients.

Clients are created on first call and cached for the life of the Lambda
container. Timeouts follow STORAGE_TIMEOUT_SECONDS so a hung DynamoDB call
surfaces as StorageUnavailable instead of burning the invocation.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from portal_shared import config

_ddb = None
_secretsmanager = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or config.DYNAMODB_REGION,
            config=Config(
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=config.STORAGE_TIMEOUT_SECONDS,
                read_timeout=config.STORAGE_TIMEOUT_SECONDS,
            ),
        )
    return _ddb


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client singleton."""
    global _secretsmanager
    if _secretsmanager is None:
        _secretsmanager = boto3.client(
            "secretsmanager",
            region_name=region or config.SECRETS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _secretsmanager
