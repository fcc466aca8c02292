"""portal_shared.serialization — DynamoDB item conversion and clocks.

Live-data items only hold strings and the integer revision, so numbers come
back as plain ints.
"""

from __future__ import annotations

import datetime as dt
import time
from decimal import Decimal
from typing import Any, Dict

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

_SER = TypeSerializer()
_DESER = TypeDeserializer()


def _serialize(value: Any) -> Dict[str, Any]:
    return _SER.serialize(value)


def _deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Plain dict from a DynamoDB item; Decimal revisions become ints."""
    out = {k: _DESER.deserialize(v) for k, v in item.items()}
    return {k: int(v) if isinstance(v, Decimal) else v for k, v in out.items()}


def _now_z() -> str:
    """UTC now as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    now = dt.datetime.now(dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _now_ms() -> int:
    return int(time.time() * 1000)
