"""Figma REST API gateway — token handling, typed failures, cached listings."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any

import httpx

from draftdeck.config import settings
from draftdeck.errors import ConfigurationError, RemoteApiError
from draftdeck.schemas.figma import (
    FigmaFileMeta,
    FigmaProject,
    FigmaProjectFile,
    FigmaUser,
    ProjectSummary,
    TeamDetails,
)
from draftdeck.schemas.files import FileReference, utc_now_iso
from draftdeck.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)

FILE_KEY_PATTERN = re.compile(r"/(?:file|design)/([A-Za-z0-9]+)")
TEAM_ID_PATTERN = re.compile(r"/files/team/([0-9]+)")


def extract_file_key(url: str) -> str | None:
    """File key from a ``/file/<key>/...`` or ``/design/<key>/...`` URL."""
    if not url:
        return None
    match = FILE_KEY_PATTERN.search(url)
    return match.group(1) if match else None


def extract_team_id(url: str) -> str | None:
    """Numeric team ID from a ``/files/team/<id>/...`` URL."""
    if not url:
        return None
    match = TEAM_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _token_scope(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]


class FigmaClient:
    """Thin async client for the Figma REST API.

    Every call is one GET with the ``X-Figma-Token`` header. Non-2xx answers
    raise :class:`RemoteApiError`; there is no retry. User profile and
    listing calls go through the shared :class:`ResponseCache`, single-file
    and image calls never do.
    """

    def __init__(
        self,
        access_token: str | None,
        cache: ResponseCache | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not access_token:
            raise ConfigurationError("Figma access token not configured")
        self._token = access_token
        self._cache = cache if cache is not None else ResponseCache()
        self._base_url = (base_url or settings.figma_api_base).rstrip("/")
        self._timeout = timeout or settings.request_timeout_seconds
        self._transport = transport
        self._scope = _token_scope(access_token)

    def _cache_key(self, name: str) -> str:
        return f"{self._scope}:{name}"

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Issue one GET against the API and return the decoded JSON."""
        url = f"{self._base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    url,
                    params=params,
                    headers={
                        "X-Figma-Token": self._token,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as exc:
            raise RemoteApiError(504, "Gateway Timeout", details=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise RemoteApiError(502, "Bad Gateway", details=str(exc)) from exc

        if not resp.is_success:
            logger.debug("Figma %s -> %d", endpoint, resp.status_code)
            raise RemoteApiError(resp.status_code, resp.reason_phrase)
        return resp.json()

    # --- Raw endpoints ---

    async def get_user(self) -> FigmaUser:
        data = await self._cache.get_or_fetch(
            self._cache_key("user"),
            settings.cache_ttl_user_seconds,
            lambda: self._request("/me"),
        )
        return FigmaUser.model_validate(data)

    async def get_team_projects(self, team_id: str) -> list[FigmaProject]:
        data = await self._cache.get_or_fetch(
            self._cache_key(f"projects_{team_id}"),
            settings.cache_ttl_projects_seconds,
            lambda: self._request(f"/teams/{team_id}/projects"),
        )
        return [FigmaProject.model_validate(p) for p in data.get("projects", [])]

    async def get_project_files(self, project_id: str) -> list[FigmaProjectFile]:
        data = await self._cache.get_or_fetch(
            self._cache_key(f"files_{project_id}"),
            settings.cache_ttl_files_seconds,
            lambda: self._request(f"/projects/{project_id}/files"),
        )
        return [FigmaProjectFile.model_validate(f) for f in data.get("files", [])]

    async def get_file(self, file_key: str) -> FigmaFileMeta:
        # Metadata only; depth=1 keeps the document tree small
        data = await self._request(f"/files/{file_key}", params={"depth": 1})
        return FigmaFileMeta.model_validate(data)

    async def get_file_images(
        self, file_key: str, fmt: str | None = None, scale: float | None = None
    ) -> dict[str, str | None]:
        params: dict[str, Any] = {"ids": file_key}
        if fmt:
            params["format"] = fmt
        if scale:
            params["scale"] = scale
        data = await self._request(f"/images/{file_key}", params=params)
        return data.get("images") or {}

    # --- Derived operations ---

    async def verify_file(self, file_key: str) -> FileReference | None:
        """File metadata as a reference, or None if missing / not accessible."""
        try:
            meta = await self.get_file(file_key)
        except RemoteApiError as e:
            if e.is_not_found or e.is_forbidden:
                logger.info("File %s not accessible: %s", file_key, e)
                return None
            raise
        return _reference_from_meta(file_key, meta)

    async def add_file_by_url(self, url: str) -> FileReference | None:
        file_key = extract_file_key(url)
        if not file_key:
            return None
        return await self.verify_file(file_key)

    async def get_file_thumbnail(self, file_key: str) -> FigmaFileMeta:
        """Live thumbnail lookup (never cached)."""
        return await self.get_file(file_key)

    async def get_file_thumbnails(self, file_keys: list[str]) -> dict[str, str]:
        """Render PNG previews one key at a time; failing keys are skipped."""
        thumbnails: dict[str, str] = {}
        for key in file_keys:
            try:
                images = await self.get_file_images(key, fmt="png", scale=1)
            except RemoteApiError as e:
                logger.warning("Could not get thumbnail for %s: %s", key, e)
                continue
            if images.get(key):
                thumbnails[key] = images[key]
        return thumbnails

    async def get_team_files(
        self, team_id: str, team_name: str | None = None
    ) -> list[FileReference]:
        """All files of all projects of a team.

        A project that fails to list is skipped; a failure listing the team's
        projects propagates.
        """
        projects = await self.get_team_projects(team_id)
        logger.info("Team %s: %d projects", team_id, len(projects))

        files: list[FileReference] = []
        for project in projects:
            try:
                project_files = await self.get_project_files(project.id)
            except RemoteApiError as e:
                logger.warning("Skipping project %s (%s): %s", project.name, project.id, e)
                continue
            for f in project_files:
                files.append(
                    FileReference(
                        key=f.key,
                        name=f.name,
                        thumbnail_url=f.thumbnail_url,
                        last_modified=f.last_modified or utc_now_iso(),
                        role="viewer",
                        project_id=project.id,
                        project_name=project.name,
                        team_id=team_id,
                        team_name=team_name,
                    )
                )
        logger.info("Team %s: %d files total", team_id, len(files))
        return files

    async def get_team_details(self, team_id: str, team_name: str | None = None) -> TeamDetails:
        """Project list and file counts for one team (never raises RemoteApiError)."""
        name = team_name or f"Team {team_id}"
        try:
            projects = await self.get_team_projects(team_id)
        except RemoteApiError as e:
            logger.warning("Could not read team %s: %s", team_id, e)
            return TeamDetails(id=team_id, name=name, error="Could not access team details")

        total = 0
        for project in projects:
            try:
                total += len(await self.get_project_files(project.id))
            except RemoteApiError as e:
                logger.warning("Could not count files in %s: %s", project.name, e)
        return TeamDetails(
            id=team_id,
            name=name,
            project_count=len(projects),
            total_files=total,
            projects=[ProjectSummary(id=p.id, name=p.name) for p in projects],
        )

    async def get_all_accessible_files(self, team_ids: list[str]) -> list[FileReference]:
        """Files of every given team, deduplicated by key (first seen wins)."""
        seen: set[str] = set()
        files: list[FileReference] = []
        for team_id in team_ids:
            try:
                team_files = await self.get_team_files(team_id)
            except RemoteApiError as e:
                logger.warning("Could not fetch files for team %s: %s", team_id, e)
                continue
            for f in team_files:
                if f.key not in seen:
                    seen.add(f.key)
                    files.append(f)
        return files

    async def search_files(self, query: str, team_ids: list[str]) -> list[FileReference]:
        needle = query.lower()
        return [
            f for f in await self.get_all_accessible_files(team_ids)
            if needle in f.name.lower()
        ]


def _reference_from_meta(file_key: str, meta: FigmaFileMeta) -> FileReference:
    ref = FileReference(
        key=file_key,
        name=meta.name,
        thumbnail_url=meta.thumbnail_url,
        role=meta.role or "viewer",
    )
    if meta.last_modified:
        ref.last_modified = meta.last_modified
    return ref
