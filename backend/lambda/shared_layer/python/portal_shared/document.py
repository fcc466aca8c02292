"""portal_shared.document — The live-data document and its locked store.

The live-data document is the single persisted aggregate: project status
fields plus the embedded ``messages`` list. DocumentStore serializes every
mutation through one lock and re-runs the whole load/mutate/save cycle when
the backend reports a stale revision.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple, TypeVar

from portal_shared import config
from portal_shared.errors import Conflict, StorageUnavailable
from portal_shared.serialization import _now_z

if TYPE_CHECKING:
    from portal_shared.backends import DocumentBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[Dict[str, Any]], Tuple[T, bool]]


def default_document() -> Dict[str, Any]:
    """Fixed shape used when no document has been persisted yet."""
    return {
        "progress": 0,
        "phase": config.DEFAULT_PHASE,
        "phaseName": config.DEFAULT_PHASE_NAME,
        "status": config.DEFAULT_STATUS,
        "lastUpdated": _now_z(),
        "eta": config.DEFAULT_ETA,
        "scope": config.DEFAULT_SCOPE,
        "owner": config.DEFAULT_OWNER,
        "client": config.DEFAULT_CLIENT,
        "phases": [],
        "updates": [],
        "nextActions": [],
        "messages": [],
    }


def _normalize(document: Dict[str, Any]) -> Dict[str, Any]:
    # Older documents were written without a message list.
    if not isinstance(document.get("messages"), list):
        document["messages"] = []
    return document


class DocumentStore:
    """Whole-document critical section over one backend."""

    def __init__(self, backend: "DocumentBackend", max_attempts: Optional[int] = None) -> None:
        self.backend = backend
        self.max_attempts = max(1, max_attempts or config.STORAGE_MAX_WRITE_ATTEMPTS)
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Any]:
        """Load the current document; StorageUnavailable propagates."""
        return _normalize(self.backend.load().document)

    def read(self) -> Tuple[Dict[str, Any], bool]:
        """Load for a read path. Returns (document, degraded).

        An unreachable backend degrades to an in-memory default document so
        the status page keeps rendering.
        """
        try:
            return self.load(), False
        except StorageUnavailable as exc:
            logger.warning("Live-data read degraded on %s: %s", self.backend.describe(), exc)
            return default_document(), True

    def mutate(self, fn: Mutation) -> T:
        """Run ``fn`` inside load -> mutate -> save and return its result.

        ``fn`` receives a private copy of the document and returns
        ``(result, changed)``. Unchanged documents are not written back.
        Conflicts restart the cycle from a fresh load, up to max_attempts.
        """
        with self._lock:
            for attempt in range(1, self.max_attempts + 1):
                snapshot = self.backend.load()
                document = _normalize(copy.deepcopy(snapshot.document))
                result, changed = fn(document)
                if not changed and snapshot.exists:
                    return result
                document["lastUpdated"] = _now_z()
                try:
                    self.backend.save(document, snapshot.revision)
                    return result
                except Conflict:
                    logger.warning(
                        "Write conflict on %s (attempt %d/%d)",
                        self.backend.describe(), attempt, self.max_attempts,
                    )
            raise Conflict(
                f"Live-data document kept changing; gave up after {self.max_attempts} attempts."
            )
