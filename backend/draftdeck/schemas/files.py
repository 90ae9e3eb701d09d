"""File reference schemas — the unit of the user's curated list."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string (UTC)."""
    return datetime.now(timezone.utc).isoformat()


class FileReference(BaseModel):
    """User-curated pointer to one remote design file."""
    model_config = ConfigDict(extra="ignore")

    key: str = Field(min_length=1)
    name: str = ""
    thumbnail_url: str | None = None
    last_modified: str = Field(default_factory=utc_now_iso)
    role: str = "viewer"
    project_id: str | None = None
    project_name: str | None = None
    team_id: str | None = None
    team_name: str | None = None


class UserDraftAction(BaseModel):
    """POST body for the user-drafts endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["add", "remove", "clear"]
    draft: FileReference | None = None
    file_key: str | None = Field(default=None, alias="fileKey")


class UserDraftsResponse(BaseModel):
    success: bool = True
    drafts: list[FileReference]
    count: int


class FileUrlRequest(BaseModel):
    """Body carrying a Figma file URL (verify / add-by-URL)."""
    url: str | None = None


class ThumbnailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_key: str | None = Field(default=None, alias="fileKey")


class TeamFilesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: str | None = Field(default=None, alias="teamId")
    team_url: str | None = Field(default=None, alias="teamUrl")
