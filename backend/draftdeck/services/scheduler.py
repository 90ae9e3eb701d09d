"""APScheduler-based background jobs: dashboard auto-sync and cache upkeep."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from draftdeck.config import settings
from draftdeck.errors import ConfigurationError, DraftDeckError

if TYPE_CHECKING:
    from draftdeck.schemas.files import FileReference
    from draftdeck.services.dashboard_api import DashboardApiClient
    from draftdeck.services.reconciliation import UserFilesSync
    from draftdeck.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Periodic refresh of the dashboard's file list plus thumbnail backfill."""

    JOB_ID = "auto_sync"

    def __init__(
        self,
        engine: UserFilesSync,
        api: DashboardApiClient,
        token_available: bool,
        interval_seconds: int | None = None,
        backfill_delay_seconds: float | None = None,
    ):
        self._engine = engine
        self._api = api
        self._token_available = token_available
        self._interval = interval_seconds or settings.auto_sync_interval_seconds
        self._backfill_delay = (
            settings.thumbnail_backfill_delay_seconds
            if backfill_delay_seconds is None
            else backfill_delay_seconds
        )
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    @property
    def is_active(self) -> bool:
        return self._scheduler.get_job(self.JOB_ID) is not None

    def start(self) -> bool:
        """Register the auto-sync job. Returns False when it may not run."""
        if not self._token_available:
            logger.warning("No Figma access token configured — auto-sync disabled")
            return False
        if not self._engine.auto_sync_enabled:
            return False
        if self.is_active:
            return True

        self._scheduler.add_job(
            self._auto_sync,
            "interval",
            seconds=self._interval,
            id=self.JOB_ID,
            name="Refresh dashboard file list",
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Auto-sync started — every %ds", self._interval)
        return True

    def stop(self) -> None:
        """Remove the auto-sync job; the scheduler itself stays usable."""
        if self.is_active:
            self._scheduler.remove_job(self.JOB_ID)
            logger.info("Auto-sync stopped")

    def shutdown(self) -> None:
        self.stop()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def toggle_auto_sync(self) -> bool:
        """Flip auto-sync on/off. Returns the new setting."""
        self._engine.auto_sync_enabled = not self._engine.auto_sync_enabled
        if self._engine.auto_sync_enabled:
            self.start()
        else:
            self.stop()
        return self._engine.auto_sync_enabled

    async def sync_now(self, query: str | None = None) -> list[FileReference]:
        """Manual sync: same refresh, with loading state and raised errors."""
        if not self._token_available:
            raise ConfigurationError("Figma access token not configured")
        return await self._engine.refresh(query, show_loading=True)

    async def _auto_sync(self) -> None:
        try:
            files = await self._engine.refresh(show_loading=False)
            logger.debug("Auto-sync: %d files", len(files))
        except Exception as e:
            logger.error("Auto-sync failed: %s", e)

    async def run_thumbnail_backfill(self) -> int:
        """Fetch missing thumbnails one at a time. Returns how many were filled."""
        if not self._token_available:
            return 0

        pending = self._engine.files_missing_thumbnails()
        if pending:
            logger.info("Backfilling %d thumbnails", len(pending))

        filled = 0
        for i, ref in enumerate(pending):
            if self._engine.closed:
                break
            if i:
                await asyncio.sleep(self._backfill_delay)
            try:
                url = await self._api.fetch_thumbnail(ref.key)
            except DraftDeckError as e:
                self._engine.record_failure(f"Thumbnail for '{ref.name or ref.key}' failed", e)
                continue
            if url and self._engine.apply_thumbnail(ref.key, url):
                filled += 1
        return filled


class CacheMaintenanceScheduler:
    """Server-side job that sweeps expired response-cache entries."""

    def __init__(self, cache: ResponseCache, interval_seconds: int | None = None):
        self._cache = cache
        self._interval = interval_seconds or settings.cache_maintenance_interval_seconds
        self._scheduler = AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )

    def start(self) -> None:
        self._scheduler.add_job(
            self._sweep,
            "interval",
            seconds=self._interval,
            id="cache_sweep",
            name="Drop expired cache entries",
        )
        self._scheduler.start()
        logger.info("Cache maintenance started — sweeping every %ds", self._interval)

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Cache maintenance stopped")

    async def _sweep(self) -> None:
        removed = self._cache.clear_expired()
        if removed:
            logger.debug("Swept %d expired cache entries", removed)
