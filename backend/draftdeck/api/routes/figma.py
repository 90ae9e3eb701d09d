"""Figma proxy routes — thin pass-throughs to the gateway."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from draftdeck.api.deps import get_figma_client
from draftdeck.config import settings
from draftdeck.errors import RemoteApiError, ValidationError
from draftdeck.schemas.files import FileUrlRequest, TeamFilesRequest, ThumbnailRequest
from draftdeck.services.figma_client import FigmaClient, extract_file_key, extract_team_id

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/server-token")
async def server_token():
    """Whether the server holds a default Figma token."""
    return {"hasServerToken": settings.has_server_token}


@router.get("/user")
async def figma_user(figma: FigmaClient = Depends(get_figma_client)):
    user = await figma.get_user()
    return {"user": user.model_dump()}


@router.get("/test")
async def test_connection(figma: FigmaClient = Depends(get_figma_client)):
    """Connection check against /me."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        user = await figma.get_user()
    except RemoteApiError as e:
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to connect to Figma API",
                "details": e.message,
                "timestamp": timestamp,
            },
        )
    return {
        "success": True,
        "user": user.model_dump(),
        "apiStatus": "Connected to Figma API successfully",
        "timestamp": timestamp,
    }


@router.get("/projects")
async def team_projects(
    team_id: str | None = Query(default=None, alias="teamId"),
    q: str | None = None,
    figma: FigmaClient = Depends(get_figma_client),
):
    if not team_id:
        raise ValidationError("Team ID is required")
    projects = await figma.get_team_projects(team_id)
    if q:
        needle = q.lower()
        projects = [p for p in projects if needle in p.name.lower()]
    return {"projects": [p.model_dump() for p in projects]}


@router.post("/team")
async def team_files(body: TeamFilesRequest, figma: FigmaClient = Depends(get_figma_client)):
    """All files of a team, by ID or team URL."""
    team_id = body.team_id
    if not team_id and body.team_url:
        team_id = extract_team_id(body.team_url)
        if not team_id:
            raise ValidationError("Invalid team URL format")
    if not team_id:
        raise ValidationError("Team ID or team URL is required")

    files = await figma.get_team_files(team_id)
    return {
        "success": True,
        "teamId": team_id,
        "filesCount": len(files),
        "files": [f.model_dump() for f in files],
    }


@router.get("/teams")
async def teams(figma: FigmaClient = Depends(get_figma_client)):
    """Configured teams with project and file counts."""
    details = [await figma.get_team_details(team_id) for team_id in settings.figma_team_ids]
    return {
        "teams": [d.model_dump(by_alias=True, exclude_none=True) for d in details],
        "totalTeams": len(details),
    }


@router.post("/verify")
async def verify_file(body: FileUrlRequest, figma: FigmaClient = Depends(get_figma_client)):
    """Check that a pasted file URL points at an accessible file."""
    if not body.url:
        raise ValidationError("Figma URL is required")
    file_key = extract_file_key(body.url)
    if not file_key:
        raise ValidationError("Invalid Figma URL format")

    ref = await figma.verify_file(file_key)
    if ref is None:
        return JSONResponse(status_code=404, content={"error": "File not found or not accessible"})
    return {"success": True, "file": ref.model_dump(), "originalUrl": body.url}


@router.post("/files")
async def add_file(body: FileUrlRequest, figma: FigmaClient = Depends(get_figma_client)):
    if not body.url:
        raise ValidationError("Figma URL is required")
    if not extract_file_key(body.url):
        raise ValidationError("Invalid Figma URL format")

    ref = await figma.add_file_by_url(body.url)
    if ref is None:
        return JSONResponse(
            status_code=404,
            content={"error": "Could not add file. Please check the URL and permissions."},
        )
    return {"success": True, "file": ref.model_dump(), "message": "File added successfully"}


@router.post("/thumbnail")
async def file_thumbnail(body: ThumbnailRequest, figma: FigmaClient = Depends(get_figma_client)):
    """Live thumbnail lookup used by the dashboard backfill."""
    if not body.file_key:
        raise ValidationError("File key is required")
    meta = await figma.get_file_thumbnail(body.file_key)
    return {
        "success": True,
        "thumbnail_url": meta.thumbnail_url,
        "name": meta.name,
        "last_modified": meta.last_modified,
    }


@router.get("/drafts")
async def drafts(q: str | None = None, figma: FigmaClient = Depends(get_figma_client)):
    """Files discovered across the configured teams, optionally name-filtered."""
    if q:
        files = await figma.search_files(q, settings.figma_team_ids)
    else:
        files = await figma.get_all_accessible_files(settings.figma_team_ids)
    logger.info("Discovery returned %d files", len(files))
    return {"drafts": [f.model_dump() for f in files]}
