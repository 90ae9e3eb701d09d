"""Dashboard-side client for the DraftDeck HTTP API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from draftdeck.config import settings
from draftdeck.errors import ConfigurationError, RemoteApiError, ValidationError
from draftdeck.schemas.files import FileReference

logger = logging.getLogger(__name__)


class DashboardApiClient:
    """Talks to the server's ``/api/figma`` routes on behalf of the dashboard.

    Error bodies of the form ``{"error": ..., "code": ..., "details": ...}``
    are mapped back onto the typed failures: ``configuration_error`` ->
    ConfigurationError, 400 -> ValidationError, anything else non-2xx ->
    RemoteApiError. A success body that is not a JSON object is a
    RemoteApiError(502).
    """

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.server_url).rstrip("/") + settings.api_prefix
        self._token = access_token if access_token is not None else settings.client_access_token
        self._timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

    @property
    def has_client_token(self) -> bool:
        return bool(self._token)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["x-figma-token"] = self._token
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteApiError(504, "Gateway Timeout", details=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise RemoteApiError(502, "Bad Gateway", details=str(exc)) from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_success:
            if not isinstance(body, dict):
                raise RemoteApiError(
                    502, "Bad Gateway", details=f"Unexpected response body from {path}"
                )
            return body

        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or resp.reason_phrase
        if body.get("code") == ConfigurationError.code:
            raise ConfigurationError(message)
        if resp.status_code == 400:
            raise ValidationError(message, body.get("details"))
        raise RemoteApiError(resp.status_code, resp.reason_phrase, details=message)

    # --- Reference store ---

    async def list_references(self) -> list[FileReference]:
        data = await self._request("GET", "/figma/user-drafts")
        return [FileReference.model_validate(d) for d in data.get("drafts", [])]

    async def add_reference(self, ref: FileReference) -> bool:
        data = await self._request(
            "POST",
            "/figma/user-drafts",
            json={"action": "add", "draft": ref.model_dump(mode="json")},
        )
        return bool(data.get("added"))

    async def remove_reference(self, key: str) -> bool:
        data = await self._request(
            "POST", "/figma/user-drafts", json={"action": "remove", "fileKey": key}
        )
        return bool(data.get("removed"))

    async def clear_references(self) -> int:
        data = await self._request("DELETE", "/figma/user-drafts")
        return int(data.get("cleared", 0))

    # --- Figma proxies ---

    async def has_server_token(self) -> bool:
        data = await self._request("GET", "/figma/server-token")
        return bool(data.get("hasServerToken"))

    async def fetch_drafts(self, query: str | None = None) -> list[FileReference]:
        params = {"q": query} if query else None
        data = await self._request("GET", "/figma/drafts", params=params)
        return [FileReference.model_validate(d) for d in data.get("drafts", [])]

    async def verify_url(self, url: str) -> FileReference:
        data = await self._request("POST", "/figma/verify", json={"url": url})
        return FileReference.model_validate(data["file"])

    async def fetch_thumbnail(self, file_key: str) -> str | None:
        data = await self._request("POST", "/figma/thumbnail", json={"fileKey": file_key})
        return data.get("thumbnail_url")
