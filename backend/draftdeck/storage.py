"""Device-local key-value storage backed by SQLite (synchronous SQLAlchemy)."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from draftdeck.config import settings
from draftdeck.errors import StorageError
from draftdeck.models.base import Base
from draftdeck.models.storage_item import StorageItem

logger = logging.getLogger(__name__)


def _configure_sqlite(dbapi_conn, _connection_record):
    """Apply SQLite PRAGMAs for a small single-writer store."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_storage_engine(path: str | None = None) -> Engine:
    """Engine for the storage file; ``":memory:"`` gives a throwaway store."""
    db_path = path or settings.local_storage_path
    if db_path == ":memory:":
        engine = create_engine("sqlite://")
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{db_path}")
        event.listen(engine, "connect", _configure_sqlite)
    Base.metadata.create_all(engine)
    return engine


class LocalStorage:
    """Synchronous get/set/remove string store scoped to one device.

    Every failure is raised as :class:`StorageError`; callers decide how to
    degrade.
    """

    def __init__(self, engine: Engine | None = None):
        self._engine = engine or create_storage_engine()
        self._session = sessionmaker(self._engine, class_=Session, expire_on_commit=False)

    def get_item(self, key: str) -> str | None:
        try:
            with self._session() as db:
                item = db.scalar(select(StorageItem).where(StorageItem.key == key))
                return item.value if item else None
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read '{key}'", details=str(e)) from e

    def set_item(self, key: str, value: str) -> None:
        try:
            with self._session() as db:
                db.merge(StorageItem(key=key, value=value))
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not write '{key}'", details=str(e)) from e

    def remove_item(self, key: str) -> None:
        try:
            with self._session() as db:
                item = db.get(StorageItem, key)
                if item is not None:
                    db.delete(item)
                    db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not remove '{key}'", details=str(e)) from e

    def dispose(self) -> None:
        self._engine.dispose()
