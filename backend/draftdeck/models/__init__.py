"""SQLAlchemy ORM models for DraftDeck."""

from draftdeck.models.base import Base
from draftdeck.models.storage_item import StorageItem

__all__ = [
    "Base",
    "StorageItem",
]
