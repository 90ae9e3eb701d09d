"""FastAPI dependency injection — services, client identity, Figma token."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from fastapi import Depends, Header, Request

from draftdeck.config import settings
from draftdeck.services import ServerServices
from draftdeck.services.figma_client import FigmaClient
from draftdeck.services.reference_store import ReferenceStore
from draftdeck.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


def derive_client_id(headers: Mapping[str, str]) -> str:
    """Coarse client identity from proxy address headers.

    NOT an access-control boundary: any caller can send these headers.
    Only used to partition the reference store; swap for a real session
    identity without touching the store.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return settings.default_client_id


def get_services(request: Request) -> ServerServices:
    return request.app.state.services


def get_response_cache(services: ServerServices = Depends(get_services)) -> ResponseCache:
    return services.response_cache


def get_reference_store(services: ServerServices = Depends(get_services)) -> ReferenceStore:
    return services.reference_store


def get_client_id(request: Request) -> str:
    return derive_client_id(request.headers)


def get_figma_client(
    cache: ResponseCache = Depends(get_response_cache),
    x_figma_token: Optional[str] = Header(default=None),
) -> FigmaClient:
    """Figma client using the request's token override or the server default.

    Raises ConfigurationError (-> 500) before any request when no token
    is available anywhere.
    """
    token = x_figma_token or settings.figma_access_token
    logger.debug("Using %s Figma token", "client" if x_figma_token else "server")
    return FigmaClient(token, cache=cache)
