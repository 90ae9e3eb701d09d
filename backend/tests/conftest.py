"""Test fixtures — fresh app per test, fake Figma API, in-process dashboard."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from fastapi import Depends, Header
from httpx import ASGITransport, AsyncClient

from draftdeck.api.deps import get_figma_client, get_response_cache
from draftdeck.config import settings
from draftdeck.main import create_app
from draftdeck.services.figma_client import FigmaClient
from draftdeck.storage import LocalStorage, create_storage_engine

FIGMA_BASE = "https://figma.test/v1"

TEAM_PROJECTS = {
    "111": [{"id": "p1", "name": "Website"}, {"id": "p2", "name": "Mobile"}],
}

PROJECT_FILES = {
    "p1": [
        {"key": "K1", "name": "Landing page", "thumbnail_url": "https://img/K1.png",
         "last_modified": "2026-01-01T00:00:00Z"},
        {"key": "K2", "name": "Pricing", "thumbnail_url": None,
         "last_modified": "2026-01-02T00:00:00Z"},
    ],
    "p2": [
        {"key": "K3", "name": "Onboarding", "thumbnail_url": "https://img/K3.png",
         "last_modified": "2026-01-03T00:00:00Z"},
    ],
}

FILES = {
    "ABC123": {"name": "Design System", "lastModified": "2026-02-01T10:00:00Z",
               "thumbnailUrl": "https://img/ABC123.png", "version": "1", "role": "owner"},
    "K2": {"name": "Pricing", "lastModified": "2026-01-02T00:00:00Z",
           "thumbnailUrl": "https://img/K2.png", "version": "3", "role": "editor"},
}


class FakeFigmaApi:
    """In-memory stand-in for api.figma.com, served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[str, int] = {}

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def calls_to(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1")

        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path])
        if request.headers.get("X-Figma-Token") != "test-token":
            return httpx.Response(403, json={"status": 403, "err": "Invalid token"})

        if path == "/me":
            return httpx.Response(200, json={"id": "u1", "email": "ana@example.com", "handle": "ana"})
        if path.startswith("/teams/") and path.endswith("/projects"):
            team_id = path.split("/")[2]
            if team_id not in TEAM_PROJECTS:
                return httpx.Response(404)
            return httpx.Response(200, json={"name": "Team", "projects": TEAM_PROJECTS[team_id]})
        if path.startswith("/projects/") and path.endswith("/files"):
            project_id = path.split("/")[2]
            return httpx.Response(200, json={"files": PROJECT_FILES.get(project_id, [])})
        if path.startswith("/files/"):
            key = path.split("/")[2]
            if key not in FILES:
                return httpx.Response(404)
            return httpx.Response(200, json={**FILES[key], "document": {}})
        if path.startswith("/images/"):
            key = path.split("/")[2]
            return httpx.Response(200, json={"images": {key: f"https://render/{key}.png"}})
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def figma_api():
    return FakeFigmaApi()


@pytest.fixture
def app(figma_api, monkeypatch):
    """App whose Figma client talks to the fake API.

    Token resolution mirrors the real dependency: request header first,
    then the server default.
    """
    monkeypatch.setattr(settings, "figma_access_token", "test-token")
    monkeypatch.setattr(settings, "figma_team_ids", ["111"])
    application = create_app()

    def _override(
        cache=Depends(get_response_cache),
        x_figma_token: str | None = Header(default=None),
    ) -> FigmaClient:
        return FigmaClient(
            x_figma_token or settings.figma_access_token,
            cache=cache,
            base_url=FIGMA_BASE,
            transport=figma_api.transport(),
        )

    application.dependency_overrides[get_figma_client] = _override
    return application


@pytest_asyncio.fixture
async def client(app):
    """Async test client bound to the app (no network)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def storage(tmp_path):
    """Device-local storage in a temp SQLite file."""
    store = LocalStorage(create_storage_engine(str(tmp_path / "local.db")))
    yield store
    store.dispose()
