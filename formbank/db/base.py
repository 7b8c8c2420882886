"""SQLAlchemy engine management.

The service targets PostgreSQL in production but supports SQLite for local
development and CI. No declarative models are defined here; repositories
issue SQL through ``sqlalchemy.text`` and this module only manages the
connection lifecycle.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from formbank.config import get_config

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return get_config().database.dsn


# Module-level cached Engine so repositories share one pool
_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def get_engine(url: str | None = None) -> Engine:
    """Return a singleton SQLAlchemy Engine for the given URL.

    For SQLite in-memory URLs a StaticPool keeps a single connection alive
    across threads. File-backed SQLite gets a generous busy timeout so that
    short write transactions queue instead of failing immediately.
    """
    global _ENGINE, _ENGINE_URL
    resolved_url = url or _db_url()

    if _ENGINE is None or _ENGINE_URL != resolved_url:
        kwargs: dict = {"future": True, "pool_pre_ping": True}
        is_sqlite = resolved_url.startswith("sqlite")
        if is_sqlite and ":memory:" in resolved_url:
            kwargs.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })
        elif is_sqlite:
            kwargs.update({
                "connect_args": {"check_same_thread": False, "timeout": 30},
            })
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(resolved_url, **kwargs)
        _ENGINE_URL = resolved_url
        if is_sqlite:
            event.listen(_ENGINE, "connect", _enable_sqlite_foreign_keys)
        logger.info("engine_created dialect=%s", _ENGINE.dialect.name)

    return _ENGINE


def is_sqlite(engine: Engine | None = None) -> bool:
    eng = engine or get_engine()
    return (getattr(eng.dialect, "name", "") or "").lower() == "sqlite"


__all__ = ["get_engine", "is_sqlite"]
