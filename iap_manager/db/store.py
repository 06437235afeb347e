"""
Key-Value Stores - The durable storage boundary for entitlement flags.

Any store offering get(key, default) and set(key, value) with values that
survive a process restart can back the EntitlementStore.
"""

import threading
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from structlog import get_logger

from iap_manager.db.models import EntitlementFlag
from iap_manager.db.session import get_session_factory

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Persistent boolean key-value store protocol."""

    def get(self, key: str, default: bool = False) -> bool:
        """Return the stored value, or default if the key was never set."""
        ...

    def set(self, key: str, value: bool) -> None:
        """Upsert a value."""
        ...


class InMemoryKeyValueStore:
    """Process-local store. Used by tests and the sandbox demo."""

    def __init__(self) -> None:
        self._values: dict[str, bool] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: bool = False) -> bool:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: bool) -> None:
        with self._lock:
            self._values[key] = value

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)


class SQLKeyValueStore:
    """SQLAlchemy-backed store; defaults to a SQLite file from settings."""

    def __init__(
        self,
        url: str | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            url: Storage URL, falls back to settings.storage_url
            session_factory: Pre-built factory, overrides url
        """
        self._session_factory = session_factory or get_session_factory(url)
        # Serializes merge() so two racing upserts of one key cannot both INSERT
        self._lock = threading.Lock()

    def get(self, key: str, default: bool = False) -> bool:
        with self._session_factory() as session:
            flag = session.get(EntitlementFlag, key)
            if flag is None:
                return default
            return flag.value

    def set(self, key: str, value: bool) -> None:
        with self._lock:
            with self._session_factory() as session:
                try:
                    session.merge(EntitlementFlag(key=key, value=value))
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    logger.exception("entitlement_flag_write_failed", key=key)
                    raise

        logger.debug("entitlement_flag_written", key=key, value=value)
