"""Server-side reference store — per-client curated file lists in memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from draftdeck.config import settings
from draftdeck.schemas.files import FileReference, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    added: bool
    reference: FileReference
    count: int


@dataclass
class RemoveResult:
    removed: bool
    count: int


@dataclass
class ClearResult:
    count: int


class ReferenceStore:
    """Process-lifetime mapping of client identity -> ordered references.

    Nothing is persisted; all buckets are lost on restart. Each mutation is
    a single synchronous operation, but there is no cross-request locking.
    """

    def __init__(self, default_project_name: str | None = None):
        self._buckets: dict[str, list[FileReference]] = {}
        self._default_project = default_project_name or settings.default_project_name

    def list(self, client_id: str) -> list[FileReference]:
        return list(self._buckets.get(client_id, []))

    def add(self, client_id: str, ref: FileReference) -> AddResult:
        """Prepend ``ref`` unless its key is already stored for this client.

        The stored copy gets a fresh ``last_modified`` and a default project
        name; an existing entry is returned untouched.
        """
        bucket = self._buckets.setdefault(client_id, [])
        for existing in bucket:
            if existing.key == ref.key:
                logger.info("Reference %s already stored for %s", ref.key, client_id)
                return AddResult(added=False, reference=existing, count=len(bucket))

        stored = ref.model_copy(
            update={
                "last_modified": utc_now_iso(),
                "project_name": ref.project_name or self._default_project,
            }
        )
        bucket.insert(0, stored)
        logger.info("Added reference %s for %s (total %d)", ref.key, client_id, len(bucket))
        return AddResult(added=True, reference=stored, count=len(bucket))

    def remove(self, client_id: str, key: str) -> RemoveResult:
        bucket = self._buckets.get(client_id, [])
        kept = [r for r in bucket if r.key != key]
        removed = len(kept) < len(bucket)
        if client_id in self._buckets:
            self._buckets[client_id] = kept
        logger.info(
            "%s reference %s for %s",
            "Removed" if removed else "No", key, client_id,
        )
        return RemoveResult(removed=removed, count=len(kept))

    def clear(self, client_id: str) -> ClearResult:
        count = len(self._buckets.get(client_id, []))
        self._buckets[client_id] = []
        logger.info("Cleared %d references for %s", count, client_id)
        return ClearResult(count=count)

    def client_count(self) -> int:
        return len(self._buckets)
