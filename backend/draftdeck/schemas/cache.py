"""Response cache statistics schemas."""

from pydantic import BaseModel


class CacheStats(BaseModel):
    """Response cache usage statistics."""
    entries: int
    expired_entries: int
    hits: int
    misses: int
    hit_rate_percent: float | None = None


class CacheClearResponse(BaseModel):
    cleared: int
