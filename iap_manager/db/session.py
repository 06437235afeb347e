"""
Database Session Management - SQLAlchemy engine and session factory.

The entitlement database is local to the install, so a synchronous
engine is used; every statement is a single-row primary key access.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from iap_manager.config import settings
from iap_manager.db.models import Base

# Global engine instances keyed by URL
_engines: dict[str, Engine] = {}
_session_factories: dict[str, sessionmaker[Session]] = {}


def get_engine(url: str | None = None) -> Engine:
    """Get or create the engine for a storage URL, creating tables on first use."""
    url = url or settings.storage_url
    engine = _engines.get(url)
    if engine is None:
        connect_args: dict[str, object] = {}
        if url.startswith("sqlite"):
            # Backend completions may arrive on a binding's own thread
            connect_args["check_same_thread"] = False
        engine = create_engine(
            url,
            connect_args=connect_args,
            echo=settings.log_level.upper() == "DEBUG",
        )
        Base.metadata.create_all(engine)
        _engines[url] = engine
    return engine


def get_session_factory(url: str | None = None) -> sessionmaker[Session]:
    """Get or create the session factory for a storage URL."""
    url = url or settings.storage_url
    factory = _session_factories.get(url)
    if factory is None:
        factory = sessionmaker(get_engine(url), expire_on_commit=False)
        _session_factories[url] = factory
    return factory


def close_engines() -> None:
    """Dispose of all engines (call on shutdown)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()
