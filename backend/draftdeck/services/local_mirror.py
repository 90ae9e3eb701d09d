"""Device-local mirror of the user's reference list (JSON in local storage)."""

from __future__ import annotations

import json
import logging

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from draftdeck.errors import StorageError
from draftdeck.schemas.files import FileReference
from draftdeck.storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "draftdeck-user-files"

_references = TypeAdapter(list[FileReference])


class LocalMirror:
    """Persistent copy of the curated list, used for instant display.

    Never raises: unreadable or malformed data loads as an empty list and
    failed writes are logged and dropped.
    """

    def __init__(self, storage: LocalStorage, storage_key: str = STORAGE_KEY):
        self._storage = storage
        self._key = storage_key

    def load(self) -> list[FileReference]:
        try:
            raw = self._storage.get_item(self._key)
        except StorageError as e:
            logger.error("Error loading user files from local storage: %s", e.details or e)
            return []
        if not raw:
            return []
        try:
            return _references.validate_python(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Discarding malformed local user files: %s", e)
            return []

    def save(self, files: list[FileReference]) -> None:
        try:
            payload = _references.dump_json(files).decode("utf-8")
            self._storage.set_item(self._key, payload)
        except StorageError as e:
            logger.error("Error saving user files to local storage: %s", e.details or e)

    def clear(self) -> None:
        try:
            self._storage.remove_item(self._key)
        except StorageError as e:
            logger.error("Error clearing local user files: %s", e.details or e)
