"""Figma REST API payload shapes (the subset DraftDeck reads)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FigmaUser(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    email: str | None = None
    handle: str | None = None
    img_url: str | None = None


class FigmaProject(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    name: str


class FigmaProjectFile(BaseModel):
    """Entry of /projects/{id}/files."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    key: str
    name: str
    thumbnail_url: str | None = None
    last_modified: str | None = None


class FigmaFileMeta(BaseModel):
    """Top-level metadata of /files/{key} (document tree ignored)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    last_modified: str | None = Field(default=None, alias="lastModified")
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    version: str | None = None
    role: str | None = None


class ProjectSummary(BaseModel):
    id: str
    name: str


class TeamDetails(BaseModel):
    """Team overview with project and file counts."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    project_count: int = Field(default=0, alias="projectCount")
    total_files: int = Field(default=0, alias="totalFiles")
    projects: list[ProjectSummary] = []
    error: str | None = None
