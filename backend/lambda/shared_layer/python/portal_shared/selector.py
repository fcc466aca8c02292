"""portal_shared.selector — Pick the live-data backend once per container.

Selection order:
    1. PORTAL_STORAGE_BACKEND names a backend explicitly.
    2. PORTAL_EPHEMERAL=true (local disk does not survive invocations) uses
       PORTAL_EPHEMERAL_BACKEND, which must not be ``file``.
    3. Otherwise the local file on persistent disk.

Reads and writes share the one store returned by get_store(), so a
deployment can never read one medium and write another.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from portal_shared import config
from portal_shared.backends import (
    DocumentBackend,
    DynamoDBBackend,
    GitHubContentsBackend,
    LocalFileBackend,
)
from portal_shared.document import DocumentStore
from portal_shared.messages import MessageStore
from portal_shared.status import StatusStore

logger = logging.getLogger(__name__)

BACKENDS = ("file", "dynamodb", "github")


@dataclass
class PortalStore:
    """Message and status stores sharing one document store."""

    documents: DocumentStore
    messages: MessageStore
    status: StatusStore

    @classmethod
    def for_backend(cls, backend: DocumentBackend, max_attempts: Optional[int] = None) -> "PortalStore":
        documents = DocumentStore(backend, max_attempts=max_attempts)
        return cls(documents=documents, messages=MessageStore(documents), status=StatusStore(documents))

    @property
    def backend_name(self) -> str:
        return self.documents.backend.name


def resolve_backend_name(explicit: str = "", ephemeral: bool = False, ephemeral_backend: str = "github") -> str:
    name = (explicit or "").strip().lower()
    if name:
        if name not in BACKENDS:
            raise ValueError(f"Unknown PORTAL_STORAGE_BACKEND '{name}'; expected one of {', '.join(BACKENDS)}")
        if ephemeral and name == "file":
            raise ValueError("The file backend does not persist in an ephemeral deployment")
        return name
    if ephemeral:
        fallback = (ephemeral_backend or "github").strip().lower()
        if fallback not in ("dynamodb", "github"):
            raise ValueError(f"PORTAL_EPHEMERAL_BACKEND must be dynamodb or github, got '{fallback}'")
        return fallback
    return "file"


def build_backend(name: str) -> DocumentBackend:
    if name == "file":
        return LocalFileBackend(config.LIVE_DATA_PATH)
    if name == "dynamodb":
        return DynamoDBBackend(config.LIVE_DATA_TABLE, config.LIVE_DATA_KEY)
    if name == "github":
        return GitHubContentsBackend(
            repo=config.GITHUB_REPO,
            path=config.GITHUB_LIVE_DATA_PATH,
            branch=config.GITHUB_BRANCH,
            api_base=config.GITHUB_API_BASE,
            timeout=config.STORAGE_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown backend '{name}'")


_store: Optional[PortalStore] = None
_store_lock = threading.Lock()


def get_store() -> PortalStore:
    """Get (or create) the container-wide PortalStore."""
    global _store
    with _store_lock:
        if _store is None:
            name = resolve_backend_name(
                config.PORTAL_STORAGE_BACKEND,
                config.PORTAL_EPHEMERAL,
                config.PORTAL_EPHEMERAL_BACKEND,
            )
            backend = build_backend(name)
            logger.info("live-data backend selected: %s", backend.describe())
            _store = PortalStore.for_backend(backend)
        return _store


def reset_store() -> None:
    global _store
    with _store_lock:
        _store = None
