"""User drafts routes — the server-side reference store."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from draftdeck.api.deps import get_client_id, get_reference_store
from draftdeck.errors import ValidationError
from draftdeck.schemas.files import UserDraftAction, UserDraftsResponse
from draftdeck.services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=UserDraftsResponse)
async def list_user_drafts(
    client_id: str = Depends(get_client_id),
    store: ReferenceStore = Depends(get_reference_store),
):
    drafts = store.list(client_id)
    return UserDraftsResponse(drafts=drafts, count=len(drafts))


@router.post("")
async def user_draft_action(
    body: UserDraftAction,
    client_id: str = Depends(get_client_id),
    store: ReferenceStore = Depends(get_reference_store),
):
    """Dispatch ``add`` / ``remove`` / ``clear`` on the caller's bucket."""
    if body.action == "add":
        if body.draft is None:
            raise ValidationError("Draft data is required")
        result = store.add(client_id, body.draft)
        return {
            "success": True,
            "added": result.added,
            "message": "Draft added successfully" if result.added else "Draft already exists",
            "draft": result.reference.model_dump(),
            "count": result.count,
        }

    if body.action == "remove":
        if not body.file_key:
            raise ValidationError("File key is required")
        result = store.remove(client_id, body.file_key)
        return {
            "success": True,
            "removed": result.removed,
            "message": "Draft removed successfully" if result.removed else "Draft not found",
            "count": result.count,
        }

    cleared = store.clear(client_id)
    return {
        "success": True,
        "message": f"Cleared {cleared.count} drafts",
        "cleared": cleared.count,
        "count": 0,
    }


@router.delete("")
async def clear_user_drafts(
    client_id: str = Depends(get_client_id),
    store: ReferenceStore = Depends(get_reference_store),
):
    cleared = store.clear(client_id)
    return {
        "success": True,
        "message": f"Cleared {cleared.count} drafts",
        "cleared": cleared.count,
        "count": 0,
    }
