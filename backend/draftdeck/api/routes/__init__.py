"""API route registration."""

from fastapi import APIRouter

from draftdeck.api.routes import cache, figma, health, user_drafts

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(user_drafts.router, prefix="/figma/user-drafts", tags=["user-drafts"])
api_router.include_router(figma.router, prefix="/figma", tags=["figma"])
api_router.include_router(cache.router, prefix="/cache", tags=["cache"])
