"""portal_shared.messages — Message operations over the live-data document.

Messages live newest-first in ``document["messages"]``. Nothing is ever
removed: archiving only flips ``status`` and stamps ``archivedAt``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from portal_shared import config
from portal_shared.document import DocumentStore
from portal_shared.errors import NotFound, ValidationError
from portal_shared.serialization import _now_ms, _now_z

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "normal", "high", "urgent")
MESSAGE_STATUSES = ("new", "responded", "archived")
ACTIONS = ("markRead", "addResponse", "update")
PATCHABLE_FIELDS = ("name", "email", "priority", "category", "status", "read")
DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def _optional_str(body: Mapping[str, Any], key: str) -> Optional[str]:
    """Trimmed string value, None when absent or blank."""
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Field '{key}' must be a string.")
    return value.strip() or None


def _coerce_priority(value: Any) -> str:
    text = str(value or "").strip().lower()
    return text if text in PRIORITIES else "normal"


def _parse_int(raw: Any, key: str, default: int) -> int:
    if raw in (None, ""):
        return default
    try:
        value = int(str(raw).strip())
    except ValueError as exc:
        raise ValidationError(f"Query parameter '{key}' must be an integer.") from exc
    if value < 0:
        raise ValidationError(f"Query parameter '{key}' must not be negative.")
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class NewMessage:
    text: str
    name: str = "Anonymous"
    email: Optional[str] = None
    priority: str = "normal"
    category: str = "general"

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "NewMessage":
        text = body.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Field 'text' is required and must not be blank.")
        return cls(
            text=text.strip(),
            name=_optional_str(body, "name") or "Anonymous",
            email=_optional_str(body, "email"),
            priority=_coerce_priority(body.get("priority")),
            category=_optional_str(body, "category") or "general",
        )


@dataclass
class MessageUpdate:
    """One updateMessage call: an action plus its payload."""

    action: str
    response_text: Optional[str] = None
    responder: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "MessageUpdate":
        action = body.get("action")
        if action not in ACTIONS:
            raise ValidationError(f"Field 'action' must be one of: {', '.join(ACTIONS)}.")

        if action == "addResponse":
            text = _optional_str(body, "responseText")
            if not text:
                raise ValidationError("Field 'responseText' is required for addResponse.")
            return cls(
                action=action,
                response_text=text,
                responder=_optional_str(body, "responder") or config.DEFAULT_RESPONDER,
            )

        if action == "update":
            return cls(action=action, fields=_validate_patch(body.get("fields")))

        return cls(action=action)


def _validate_patch(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("Field 'fields' must be a non-empty object for update.")

    patch: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in PATCHABLE_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be updated.")
        if key == "priority":
            patch[key] = _coerce_priority(value)
        elif key == "status":
            if value not in MESSAGE_STATUSES:
                raise ValidationError(f"Field 'status' must be one of: {', '.join(MESSAGE_STATUSES)}.")
            patch[key] = value
        elif key == "read":
            if not isinstance(value, bool):
                raise ValidationError("Field 'read' must be a boolean.")
            patch[key] = value
        elif key == "name":
            patch[key] = _optional_str(raw, key) or "Anonymous"
        elif key == "category":
            patch[key] = _optional_str(raw, key) or "general"
        else:
            patch[key] = _optional_str(raw, key)
    return patch


@dataclass
class MessageFilter:
    status: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_query(cls, qs: Mapping[str, Any]) -> "MessageFilter":
        return cls(
            status=(qs.get("status") or None),
            priority=(qs.get("priority") or None),
            category=(qs.get("category") or None),
        )

    def matches(self, message: Mapping[str, Any]) -> bool:
        for key in ("status", "priority", "category"):
            wanted = getattr(self, key)
            if wanted is not None and message.get(key) != wanted:
                return False
        return True


@dataclass
class Page:
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @classmethod
    def from_query(cls, qs: Mapping[str, Any]) -> "Page":
        limit = _parse_int(qs.get("limit"), "limit", DEFAULT_LIMIT)
        offset = _parse_int(qs.get("offset"), "offset", 0)
        return cls(limit=min(limit, MAX_LIMIT), offset=offset)


@dataclass
class MessagePage:
    items: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int
    last_updated: Optional[str] = None
    degraded: bool = False

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def _find(document: Dict[str, Any], message_id: str) -> Dict[str, Any]:
    for message in document["messages"]:
        if isinstance(message, dict) and str(message.get("id")) == str(message_id):
            return message
    raise NotFound(f"Message not found: {message_id}")


def _next_id(messages: List[Dict[str, Any]]) -> str:
    taken = {str(m.get("id")) for m in messages if isinstance(m, dict)}
    candidate = _now_ms()
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def _archive(message: Dict[str, Any], now: str) -> None:
    message["status"] = "archived"
    message["archivedAt"] = now


class MessageStore:
    """listMessages / createMessage / updateMessage / archiveMessage."""

    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    def list_messages(
        self,
        filters: Optional[MessageFilter] = None,
        page: Optional[Page] = None,
    ) -> MessagePage:
        filters = filters or MessageFilter()
        page = page or Page()
        document, degraded = self.documents.read()
        matched = [m for m in document["messages"] if isinstance(m, dict) and filters.matches(m)]
        items = matched[page.offset:page.offset + page.limit]
        return MessagePage(
            items=copy.deepcopy(items),
            total=len(matched),
            limit=page.limit,
            offset=page.offset,
            last_updated=document.get("lastUpdated"),
            degraded=degraded,
        )

    def get_message(self, message_id: str) -> Dict[str, Any]:
        document = self.documents.load()
        return copy.deepcopy(_find(document, message_id))

    def create_message(self, new: Union[NewMessage, Mapping[str, Any]]) -> Dict[str, Any]:
        if not isinstance(new, NewMessage):
            new = NewMessage.from_body(new)

        def _create(document: Dict[str, Any]):
            message = {
                "id": _next_id(document["messages"]),
                "name": new.name,
                "text": new.text,
                "email": new.email,
                "priority": new.priority,
                "category": new.category,
                "timestamp": _now_z(),
                "status": "new",
                "read": False,
                "responded": False,
            }
            document["messages"].insert(0, message)
            return copy.deepcopy(message), True

        message = self.documents.mutate(_create)
        logger.info("message created: id=%s priority=%s", message["id"], message["priority"])
        return message

    def update_message(
        self,
        message_id: str,
        update: Union[MessageUpdate, Mapping[str, Any]],
    ) -> Dict[str, Any]:
        if not isinstance(update, MessageUpdate):
            update = MessageUpdate.from_body(update)

        def _update(document: Dict[str, Any]):
            message = _find(document, message_id)
            now = _now_z()
            if update.action == "markRead":
                message["read"] = True
            elif update.action == "addResponse":
                responses = message.get("responses")
                if not isinstance(responses, list):
                    responses = []
                responses.append({
                    "text": update.response_text,
                    "responder": update.responder,
                    "timestamp": now,
                })
                message["responses"] = responses
                message["responded"] = True
                # An archived message stays archived when answered late.
                if message.get("status") != "archived":
                    message["status"] = "responded"
            else:
                for key, value in update.fields.items():
                    if key == "status" and value == "archived":
                        if message.get("status") != "archived":
                            _archive(message, now)
                        continue
                    if key == "status":
                        message.pop("archivedAt", None)
                    message[key] = value
            message["lastUpdated"] = now
            return copy.deepcopy(message), True

        message = self.documents.mutate(_update)
        logger.info("message updated: id=%s action=%s", message_id, update.action)
        return message

    def archive_message(self, message_id: str) -> Dict[str, Any]:
        def _archive_op(document: Dict[str, Any]):
            message = _find(document, message_id)
            if message.get("status") == "archived":
                return copy.deepcopy(message), False
            now = _now_z()
            _archive(message, now)
            message["lastUpdated"] = now
            return copy.deepcopy(message), True

        message = self.documents.mutate(_archive_op)
        logger.info("message archived: id=%s", message_id)
        return message
