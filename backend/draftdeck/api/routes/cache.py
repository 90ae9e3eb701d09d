"""Response cache routes — statistics and manual clear."""

from fastapi import APIRouter, Depends

from draftdeck.api.deps import get_response_cache
from draftdeck.schemas.cache import CacheClearResponse, CacheStats
from draftdeck.services.response_cache import ResponseCache

router = APIRouter()


@router.get("/stats", response_model=CacheStats)
async def cache_stats(cache: ResponseCache = Depends(get_response_cache)):
    """Cache usage statistics."""
    return CacheStats(**cache.stats())


@router.post("/clear", response_model=CacheClearResponse)
async def clear_cache(cache: ResponseCache = Depends(get_response_cache)):
    return CacheClearResponse(cleared=cache.clear())
