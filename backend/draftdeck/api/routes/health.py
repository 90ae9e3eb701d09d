"""Health check."""

from fastapi import APIRouter

from draftdeck import __version__
from draftdeck.config import settings
from draftdeck.schemas.system import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Lightweight connectivity check used by the dashboard."""
    return HealthResponse(version=__version__, server_token=settings.has_server_token)


@router.get("/ping")
async def ping():
    """Ultra-lightweight ping."""
    return {"status": "ok"}
