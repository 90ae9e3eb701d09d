"""Reconciliation between the device-local mirror and the server store.

Local-first: every mutation lands in memory and in the mirror before this
module returns, and is pushed to the server afterwards in a background
task. Background failures never roll back local state; they end up in the
bounded ``sync_log``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Coroutine

from draftdeck.config import settings
from draftdeck.errors import DraftDeckError, SyncError, ValidationError
from draftdeck.schemas.files import FileReference, utc_now_iso
from draftdeck.services.figma_client import extract_file_key

if TYPE_CHECKING:
    from draftdeck.services.dashboard_api import DashboardApiClient
    from draftdeck.services.local_mirror import LocalMirror

logger = logging.getLogger(__name__)


class AddOutcome(str, Enum):
    ADDED = "added"
    EXISTS = "exists"


def merge_references(
    local: list[FileReference], server: list[FileReference]
) -> tuple[list[FileReference], list[FileReference]]:
    """Merge the mirror into the server list.

    Server entries come first, in server order, and win on equal keys.
    Mirror entries with unknown keys are appended in mirror order. Returns
    ``(merged, local_only)``; ``merged`` never holds a key twice.
    """
    merged: list[FileReference] = []
    seen: set[str] = set()
    for ref in server:
        if ref.key not in seen:
            seen.add(ref.key)
            merged.append(ref)

    local_only: list[FileReference] = []
    for ref in local:
        if ref.key not in seen:
            seen.add(ref.key)
            merged.append(ref)
            local_only.append(ref)
    return merged, local_only


def combine_with_discovered(
    curated: list[FileReference],
    discovered: list[FileReference],
    default_project_name: str | None = None,
) -> list[FileReference]:
    """Curated references first, then discovered files with unseen keys."""
    fallback = default_project_name or settings.default_project_name
    combined = [
        ref if ref.project_name else ref.model_copy(update={"project_name": fallback})
        for ref in curated
    ]
    seen = {ref.key for ref in curated}
    for ref in discovered:
        if ref.key not in seen:
            seen.add(ref.key)
            combined.append(ref)
    return combined


def is_manual_entry(ref: FileReference, default_project_name: str | None = None) -> bool:
    """Added by hand from a URL (no project); excluded from thumbnail backfill."""
    fallback = default_project_name or settings.default_project_name
    return ref.project_id is None and ref.project_name in (None, fallback)


def _dedupe(files: list[FileReference]) -> list[FileReference]:
    seen: set[str] = set()
    result = []
    for ref in files:
        if ref.key not in seen:
            seen.add(ref.key)
            result.append(ref)
    return result


class UserFilesSync:
    """Working set of the user's curated files plus discovery results.

    State read by a UI: ``files``, ``display_files``, ``loading``,
    ``syncing``, ``error_message``, ``sync_log``, ``last_sync_time`` and
    ``auto_sync_enabled``. Mutating methods are synchronous but must be
    called from a running event loop, since they spawn the server push.
    """

    def __init__(
        self,
        mirror: LocalMirror,
        api: DashboardApiClient,
        default_project_name: str | None = None,
        sync_log_size: int | None = None,
    ):
        self._mirror = mirror
        self._api = api
        self._default_project = default_project_name or settings.default_project_name
        self.files: list[FileReference] = []
        self.discovered: list[FileReference] = []
        self.loading = True
        self.syncing = False
        self.error_message: str | None = None
        self.sync_log: deque[str] = deque(maxlen=sync_log_size or settings.sync_log_size)
        self.last_sync_time: datetime | None = None
        self.last_sync_error: SyncError | None = None
        self.auto_sync_enabled = True
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        # Removals made while a server list is loading
        self._reconciles_in_flight = 0
        self._removed_keys: set[str] = set()
        self._cleared = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def display_files(self) -> list[FileReference]:
        return combine_with_discovered(self.files, self.discovered, self._default_project)

    # --- Load & merge ---

    def load_local(self) -> list[FileReference]:
        """Fast path: show the mirror before any network activity."""
        self.files = _dedupe(self._mirror.load())
        # Full-page loading only while there is nothing to show
        self.loading = not self.files
        return list(self.files)

    async def reconcile(self) -> list[FileReference]:
        """Merge the server list into the working set and push local-only entries."""
        if self._closed:
            return []
        self.syncing = True
        self._reconciles_in_flight += 1
        try:
            server = await self._api.list_references()
        except DraftDeckError as e:
            if not self._closed:
                self.record_failure("Could not load files from server", e)
            return list(self.files)
        finally:
            self._reconciles_in_flight -= 1
            removed, cleared = self._take_tombstones()
            if not self._closed:
                self.syncing = False
                self.loading = False

        if self._closed:
            return []

        # The snapshot predates removals made while it was loading
        if cleared:
            server = []
        server = [ref for ref in server if ref.key not in removed]
        merged, local_only = merge_references(self.files, server)
        self.files = merged
        self._mirror.save(merged)
        for ref in local_only:
            self._spawn(self._push_add(ref))
        self._log(
            f"Loaded {len(server)} from server, {len(local_only)} local-only queued"
        )
        return list(self.files)

    async def open(self) -> list[FileReference]:
        self.load_local()
        return await self.reconcile()

    def _take_tombstones(self) -> tuple[set[str], bool]:
        """Removals seen during the reconcile; reset once none is in flight."""
        removed, cleared = set(self._removed_keys), self._cleared
        if not self._reconciles_in_flight:
            self._removed_keys.clear()
            self._cleared = False
        return removed, cleared

    # --- Mutations (local first, server eventually) ---

    def add_user_file(self, ref: FileReference) -> AddOutcome:
        if not ref.key:
            raise ValidationError("File key is required")
        if any(f.key == ref.key for f in self.files):
            logger.info("File %s already in list", ref.key)
            return AddOutcome.EXISTS

        entry = ref
        if not entry.project_name:
            entry = entry.model_copy(update={"project_name": self._default_project})
        self.files.insert(0, entry)
        self._removed_keys.discard(entry.key)
        self._mirror.save(self.files)
        self._spawn(self._push_add(entry))
        return AddOutcome.ADDED

    def remove_user_file(self, key: str) -> bool:
        before = len(self.files)
        self.files = [f for f in self.files if f.key != key]
        if self._reconciles_in_flight:
            self._removed_keys.add(key)
        self._mirror.save(self.files)
        self._spawn(self._push_remove(key))
        return len(self.files) < before

    def clear_all_files(self) -> int:
        count = len(self.files)
        self.files = []
        if self._reconciles_in_flight:
            self._cleared = True
            self._removed_keys.clear()
        self._mirror.clear()
        self._spawn(self._push_clear())
        return count

    async def add_from_url(self, url: str) -> tuple[AddOutcome, FileReference]:
        """Verify a pasted file URL with the server and add it (foreground).

        Raises SyncError when the engine is closed before verification ends.
        """
        if not url or not url.strip():
            raise ValidationError("Figma URL is required")
        if not extract_file_key(url):
            raise ValidationError("Invalid Figma URL format")
        if self._closed:
            raise SyncError("Dashboard session is closed")
        ref = await self._api.verify_url(url.strip())
        if self._closed:
            raise SyncError("Dashboard session is closed", details=f"'{ref.key}' was not added")
        return self.add_user_file(ref), ref

    # --- Refresh & write-back ---

    async def refresh(
        self, query: str | None = None, show_loading: bool = False
    ) -> list[FileReference]:
        """Re-pull discovered files and recombine with the curated list.

        With ``show_loading`` (manual sync) errors are stored in
        ``error_message`` and re-raised; otherwise they only reach the
        sync log.
        """
        if self._closed:
            return []
        if show_loading:
            self.loading = True
            self.error_message = None
        self.syncing = True
        try:
            discovered = await self._api.fetch_drafts(query)
        except DraftDeckError as e:
            if self._closed:
                return []
            if show_loading:
                self.error_message = e.message
                raise
            self.record_failure("Auto-sync failed", e)
            return self.display_files
        finally:
            if not self._closed:
                self.syncing = False
                if show_loading:
                    self.loading = False

        if self._closed:
            return []
        self.discovered = discovered
        self.last_sync_time = datetime.now(timezone.utc)
        combined = self.display_files
        self._log(f"Sync completed: {len(combined)} files")
        return combined

    def files_missing_thumbnails(self) -> list[FileReference]:
        return [
            f for f in self.files
            if not f.thumbnail_url and not is_manual_entry(f, self._default_project)
        ]

    def apply_thumbnail(self, key: str, thumbnail_url: str) -> bool:
        """Write a backfilled thumbnail into memory and the mirror."""
        if self._closed:
            return False
        for i, ref in enumerate(self.files):
            if ref.key == key:
                self.files[i] = ref.model_copy(
                    update={"thumbnail_url": thumbnail_url, "last_modified": utc_now_iso()}
                )
                self._mirror.save(self.files)
                return True
        return False

    # --- Background plumbing ---

    def record_failure(self, message: str, error: Exception) -> SyncError:
        details = getattr(error, "message", None) or str(error)
        failure = SyncError(message, details=details)
        self.last_sync_error = failure
        logger.warning("%s: %s", message, details)
        self._log(f"{message}: {details}")
        return failure

    def _log(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self.sync_log.append(f"{stamp} {message}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _push_add(self, ref: FileReference) -> None:
        try:
            added = await self._api.add_reference(ref)
        except DraftDeckError as e:
            self.record_failure(f"Could not sync '{ref.name or ref.key}' to server", e)
            return
        if added:
            self._log(f"Synced '{ref.name or ref.key}' to server")

    async def _push_remove(self, key: str) -> None:
        try:
            await self._api.remove_reference(key)
        except DraftDeckError as e:
            self.record_failure(f"Could not remove {key} on server", e)
            return
        self._log(f"Removed {key} on server")

    async def _push_clear(self) -> None:
        try:
            count = await self._api.clear_references()
        except DraftDeckError as e:
            self.record_failure("Could not clear files on server", e)
            return
        self._log(f"Cleared {count} files on server")

    async def wait_for_background(self) -> None:
        """Wait until every spawned server push has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Tear down: late results are discarded, pending pushes cancelled."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
