"""Database bootstrap utilities for the forms service.

Exposes engine construction and the migrations runner that applies SQL files
from the local ``migrations/`` (PostgreSQL) or ``sqlite_migrations/``
directory. The DB layer does not leak ORM models into route handlers.
"""

from formbank.db.base import get_engine, is_sqlite
from formbank.db.migrations_runner import apply_migrations, default_migrations_dir

__all__ = [
    "get_engine",
    "is_sqlite",
    "apply_migrations",
    "default_migrations_dir",
]
