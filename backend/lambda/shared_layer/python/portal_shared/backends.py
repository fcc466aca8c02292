"""portal_shared.backends — Physical storage for the live-data document.

Three interchangeable backends persist the whole document as one JSON blob:

    LocalFileBackend      — a file on persistent disk, replaced atomically
    DynamoDBBackend       — one item in a DynamoDB table
    GitHubContentsBackend — a file in a GitHub repository via the contents API

Every backend hands out a revision token with each load and refuses a save
whose token is stale by raising Conflict. Retrying is the caller's job
(see portal_shared.document.DocumentStore).
"""

from __future__ import annotations

import base64
import contextlib
import hashlib
import json
import logging
import os
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from portal_shared import config
from portal_shared.aws_clients import _get_ddb
from portal_shared.credentials import github_token
from portal_shared.document import default_document
from portal_shared.errors import Conflict, StorageUnavailable
from portal_shared.serialization import _deserialize, _now_z, _serialize

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentBackend",
    "DynamoDBBackend",
    "GitHubContentsBackend",
    "LocalFileBackend",
    "Snapshot",
]


@dataclass
class Snapshot:
    """A loaded document plus the revision token it was read at.

    ``revision`` is None and ``exists`` False when nothing has been persisted
    yet; ``document`` is then a fresh default document.
    """

    document: Dict[str, Any]
    revision: Any = None
    exists: bool = True


def _encode(document: Dict[str, Any]) -> bytes:
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _decode(raw: Any, source: str) -> Dict[str, Any]:
    try:
        doc = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as exc:
        logger.error("Live-data document at %s is not valid JSON: %s", source, exc)
        raise StorageUnavailable("Live-data document is unreadable.") from exc
    if not isinstance(doc, dict):
        raise StorageUnavailable("Live-data document is not a JSON object.")
    return doc


class DocumentBackend:
    """Full-document load/save contract shared by every medium."""

    name = "abstract"

    def load(self) -> Snapshot:
        raise NotImplementedError

    def save(self, document: Dict[str, Any], revision: Any) -> Any:
        """Persist ``document`` if the stored revision still equals ``revision``.

        Returns the new revision token.
        """
        raise NotImplementedError

    def describe(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Local file
# ---------------------------------------------------------------------------


class LocalFileBackend(DocumentBackend):
    """JSON file on disk. Revision is the SHA-256 of the file bytes."""

    name = "file"

    def __init__(self, path: str) -> None:
        self.path = path

    def describe(self) -> str:
        return f"file:{self.path}"

    def _read_bytes(self) -> Optional[bytes]:
        try:
            with open(self.path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("Reading %s failed: %s", self.path, exc)
            raise StorageUnavailable("Live-data file is not readable.") from exc

    def load(self) -> Snapshot:
        raw = self._read_bytes()
        if raw is None:
            return Snapshot(default_document(), None, False)
        return Snapshot(_decode(raw, self.path), hashlib.sha256(raw).hexdigest(), True)

    def save(self, document: Dict[str, Any], revision: Any) -> str:
        current = self._read_bytes()
        current_revision = hashlib.sha256(current).hexdigest() if current is not None else None
        if current_revision != revision:
            raise Conflict("Live-data file changed since it was read.")

        raw = _encode(document)
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".live-data-", suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                fh.write(raw)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            logger.error("Writing %s failed: %s", self.path, exc)
            raise StorageUnavailable("Live-data file is not writable.") from exc
        return hashlib.sha256(raw).hexdigest()


# ---------------------------------------------------------------------------
# DynamoDB
# ---------------------------------------------------------------------------


class DynamoDBBackend(DocumentBackend):
    """Single DynamoDB item holding the JSON body and an integer revision."""

    name = "dynamodb"

    def __init__(self, table: str, key: str, client: Any = None) -> None:
        self.table = table
        self.key = key
        self._ddb = client

    def describe(self) -> str:
        return f"dynamodb:{self.table}/{self.key}"

    def _client(self):
        return self._ddb if self._ddb is not None else _get_ddb()

    def load(self) -> Snapshot:
        try:
            resp = self._client().get_item(
                TableName=self.table,
                Key={"doc_id": _serialize(self.key)},
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("get_item on %s failed: %s", self.table, exc)
            raise StorageUnavailable("Database read failed.") from exc

        raw = resp.get("Item")
        if not raw:
            return Snapshot(default_document(), None, False)
        item = _deserialize(raw)
        doc = _decode(item.get("body"), self.describe())
        return Snapshot(doc, int(item.get("revision") or 0), True)

    def save(self, document: Dict[str, Any], revision: Any) -> int:
        next_revision = int(revision or 0) + 1
        item = {
            "doc_id": self.key,
            "body": json.dumps(document, ensure_ascii=False),
            "revision": next_revision,
            "updated_at": document.get("lastUpdated") or _now_z(),
        }
        params: Dict[str, Any] = {
            "TableName": self.table,
            "Item": {k: _serialize(v) for k, v in item.items()},
        }
        if revision is None:
            params["ConditionExpression"] = "attribute_not_exists(doc_id)"
        else:
            params["ConditionExpression"] = "#rev = :rev"
            params["ExpressionAttributeNames"] = {"#rev": "revision"}
            params["ExpressionAttributeValues"] = {":rev": _serialize(int(revision))}

        try:
            self._client().put_item(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "ConditionalCheckFailedException":
                raise Conflict("Live-data item changed since it was read.") from exc
            logger.error("put_item on %s failed: %s", self.table, exc)
            raise StorageUnavailable("Database write failed.") from exc
        except BotoCoreError as exc:
            logger.error("put_item on %s failed: %s", self.table, exc)
            raise StorageUnavailable("Database write failed.") from exc
        return next_revision


# ---------------------------------------------------------------------------
# GitHub contents API
# ---------------------------------------------------------------------------


class GitHubContentsBackend(DocumentBackend):
    """A JSON file committed to a repository through the REST contents API.

    The blob ``sha`` is the revision token; GitHub rejects a PUT carrying a
    stale sha with 409 (or 422 when the sha is missing for an existing file).
    """

    name = "github"

    def __init__(
        self,
        repo: str,
        path: str,
        branch: str = "main",
        token_provider: Callable[[], str] = github_token,
        api_base: str = config.GITHUB_API_BASE,
        timeout: float = config.STORAGE_TIMEOUT_SECONDS,
    ) -> None:
        self.repo = repo
        self.path = path.lstrip("/")
        self.branch = branch
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider

    def describe(self) -> str:
        return f"github:{self.repo}@{self.branch}/{self.path}"

    @property
    def _contents_url(self) -> str:
        return f"{self.api_base}/repos/{self.repo}/contents/{quote(self.path)}"

    def _call(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Issue one API request. HTTPError propagates for status mapping."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "INEX-Portal-API",
        }
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = urllib.request.Request(url, method=method, data=data, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError:
            raise
        except OSError as exc:
            logger.error("GitHub %s %s unreachable: %s", method, url, exc)
            raise StorageUnavailable("GitHub API unreachable.") from exc

        try:
            return json.loads(raw or b"{}")
        except json.JSONDecodeError as exc:
            raise StorageUnavailable("GitHub API returned invalid JSON.") from exc

    def load(self) -> Snapshot:
        url = f"{self._contents_url}?ref={quote(self.branch)}"
        try:
            data = self._call("GET", url)
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return Snapshot(default_document(), None, False)
            body = exc.read().decode("utf-8", errors="replace")[:500]
            logger.error("GitHub contents read failed: %s %s", exc.code, body)
            raise StorageUnavailable(f"GitHub API error ({exc.code}).") from exc

        encoded = data.get("content") or ""
        if not encoded and data.get("encoding") == "none":
            raise StorageUnavailable("Live-data file is too large for the contents API.")
        try:
            raw = base64.b64decode(encoded)
        except (ValueError, TypeError) as exc:
            raise StorageUnavailable("GitHub returned undecodable content.") from exc
        return Snapshot(_decode(raw, self.describe()), data.get("sha"), True)

    def save(self, document: Dict[str, Any], revision: Any) -> str:
        payload: Dict[str, Any] = {
            "message": f"Update live data ({document.get('lastUpdated') or _now_z()})",
            "content": base64.b64encode(_encode(document)).decode("ascii"),
            "branch": self.branch,
        }
        if revision:
            payload["sha"] = revision

        try:
            data = self._call("PUT", self._contents_url, payload)
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")[:500]
            if exc.code == 409 or (exc.code == 422 and "sha" in body.lower()):
                logger.warning("GitHub rejected stale revision %s: %s", revision, body)
                raise Conflict("Live-data file changed since it was read.") from exc
            logger.error("GitHub contents write failed: %s %s", exc.code, body)
            raise StorageUnavailable(f"GitHub API error ({exc.code}).") from exc

        return (data.get("content") or {}).get("sha")
