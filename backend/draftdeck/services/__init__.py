"""Business logic services — built once per app and injected via app.state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from draftdeck.config import Settings, settings as default_settings

if TYPE_CHECKING:
    from draftdeck.services.reference_store import ReferenceStore
    from draftdeck.services.response_cache import ResponseCache
    from draftdeck.services.scheduler import CacheMaintenanceScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServerServices:
    """Process-lifetime objects shared by all request handlers."""
    response_cache: ResponseCache
    reference_store: ReferenceStore
    maintenance: CacheMaintenanceScheduler | None = field(default=None)


def build_services(config: Settings | None = None) -> ServerServices:
    """Create the cache and reference store for one app instance."""
    from draftdeck.services.reference_store import ReferenceStore
    from draftdeck.services.response_cache import ResponseCache

    config = config or default_settings
    return ServerServices(
        response_cache=ResponseCache(),
        reference_store=ReferenceStore(default_project_name=config.default_project_name),
    )


def start_services(services: ServerServices) -> None:
    """Start background jobs (needs a running event loop)."""
    from draftdeck.services.scheduler import CacheMaintenanceScheduler

    services.maintenance = CacheMaintenanceScheduler(services.response_cache)
    services.maintenance.start()


def shutdown_services(services: ServerServices) -> None:
    if services.maintenance:
        services.maintenance.stop()
        services.maintenance = None
