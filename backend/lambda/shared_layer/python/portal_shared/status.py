"""portal_shared.status — Project status fields of the live-data document."""

from __future__ import annotations

import copy
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from portal_shared.commit_progress import CommitProgress, parse_commit_message
from portal_shared.document import DocumentStore
from portal_shared.errors import ValidationError
from portal_shared.serialization import _now_ms

logger = logging.getLogger(__name__)

OPTIONAL_STRING_FIELDS = ("phaseName", "eta", "scope", "owner", "client")
OPTIONAL_LIST_FIELDS = ("phases", "updates", "nextActions")
MAX_UPDATES = 20


def _validate_progress(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Invalid progress value. Must be an integer between 0 and 100.")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError("Invalid progress value. Must be an integer between 0 and 100.")
    progress = int(value)
    if progress < 0 or progress > 100:
        raise ValidationError("Invalid progress value. Must be an integer between 0 and 100.")
    return progress


def _required_str(body: Mapping[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {key} value. Must be a non-empty string.")
    return value.strip()


@dataclass
class StatusPatch:
    """Merge patch for the status fields; absent optionals stay untouched."""

    progress: int
    phase: str
    status: str
    optional: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "StatusPatch":
        progress = _validate_progress(body.get("progress"))
        phase = _required_str(body, "phase")
        status = _required_str(body, "status")

        optional: Dict[str, Any] = {}
        for key in OPTIONAL_STRING_FIELDS:
            value = body.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"Invalid {key} value. Must be a string.")
            optional[key] = value
        for key in OPTIONAL_LIST_FIELDS:
            value = body.get(key)
            if value is None:
                continue
            if not isinstance(value, list):
                raise ValidationError(f"Invalid {key} value. Must be a list.")
            optional[key] = value
        return cls(progress=progress, phase=phase, status=status, optional=optional)

    def apply(self, document: Dict[str, Any]) -> None:
        document["progress"] = self.progress
        document["phase"] = self.phase
        document["status"] = self.status
        for key, value in self.optional.items():
            document[key] = copy.deepcopy(value)


def _advance_phase(document: Dict[str, Any], new_phase: str) -> None:
    """Close out the current phase entry and activate ``new_phase``."""
    current = document.get("phase")
    phases = document.get("phases")
    if not isinstance(phases, list):
        return
    for entry in phases:
        if not isinstance(entry, dict):
            continue
        if entry.get("name") == current and current != new_phase:
            entry["status"] = "complete"
            entry["progress"] = 100
        elif entry.get("name") == new_phase:
            entry["status"] = "active"


def _update_entry(parsed: CommitProgress, commit: Mapping[str, Any]) -> Dict[str, Any]:
    now = dt.datetime.now(dt.timezone.utc)
    entry: Dict[str, Any] = {
        "date": f"{now:%b} {now.day}",
        "message": parsed.description,
        "status": "In Progress",
        "timestamp": _now_ms(),
    }
    sha = str(commit.get("id") or "")
    if sha:
        entry["commit"] = sha[:8]
    author = commit.get("author")
    if isinstance(author, dict) and author.get("name"):
        entry["author"] = author["name"]
    return entry


class StatusStore:
    """getStatus / updateStatus plus commit-driven progress."""

    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    def read_status(self, include_messages: bool = True) -> Tuple[Dict[str, Any], bool]:
        """Return (document, degraded); degraded means the default document
        stands in for an unreachable backend."""
        document, degraded = self.documents.read()
        document = copy.deepcopy(document)
        if not include_messages:
            document.pop("messages", None)
        return document, degraded

    def get_status(self, include_messages: bool = True) -> Dict[str, Any]:
        return self.read_status(include_messages)[0]

    def update_status(self, patch: Union[StatusPatch, Mapping[str, Any]]) -> Dict[str, Any]:
        if not isinstance(patch, StatusPatch):
            patch = StatusPatch.from_body(patch)

        def _apply(document: Dict[str, Any]):
            patch.apply(document)
            return document, True

        document = self.documents.mutate(_apply)
        logger.info(
            "status updated: progress=%s phase=%s fields=%s",
            patch.progress, patch.phase, sorted(patch.optional),
        )
        return copy.deepcopy(document)

    def record_commit_progress(self, commits: Iterable[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Apply progress hints from pushed commits, oldest first.

        Returns the updated document, or None when no commit carried a hint.
        """
        parsed: List[tuple] = []
        for commit in commits:
            hint = parse_commit_message(str(commit.get("message") or ""))
            if hint is not None:
                parsed.append((hint, commit))
        if not parsed:
            return None

        def _apply(document: Dict[str, Any]):
            updates = document.get("updates")
            if not isinstance(updates, list):
                updates = []
            for hint, commit in parsed:
                if hint.phase and hint.phase != document.get("phase"):
                    _advance_phase(document, hint.phase)
                    document["phase"] = hint.phase
                if hint.progress is not None:
                    document["progress"] = max(0, min(100, hint.progress))
                updates.insert(0, _update_entry(hint, commit))
            document["updates"] = updates[:MAX_UPDATES]
            return document, True

        document = self.documents.mutate(_apply)
        logger.info("commit progress applied: commits=%d progress=%s", len(parsed), document.get("progress"))
        return copy.deepcopy(document)
