"""Durable key-value slots backing the history and goal stores."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from steptracker.core.exceptions import StorageError
from steptracker.core.logging import get_logger
from steptracker.models import StoredValue

logger = get_logger(__name__)


class KeyValueSlot(ABC):
    """String values stored under string keys.

    Both operations raise StorageError when the backend fails.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key was never set."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""


class InMemorySlot(KeyValueSlot):
    """Process-local slot; contents vanish with the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class DatabaseSlot(KeyValueSlot):
    """Slot persisted as rows of the ``stored_values`` table.

    A fresh session is opened per operation so the slot can be shared by
    long-lived services without holding a connection.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self._session_factory()
        try:
            row = db.query(StoredValue).filter(StoredValue.key == key).first()
            return row.value if row else None
        except SQLAlchemyError as e:
            raise StorageError("read", key, str(e)) from e
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        """Upsert the row for ``key``."""
        db = self._session_factory()
        try:
            row = db.query(StoredValue).filter(StoredValue.key == key).first()
            if row:
                row.value = value
                row.updated_at = datetime.utcnow()
            else:
                db.add(StoredValue(key=key, value=value))
            db.commit()
            logger.debug("slot_written", key=key, size=len(value))
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("write", key, str(e)) from e
        finally:
            db.close()
