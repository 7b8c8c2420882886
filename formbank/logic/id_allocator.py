"""Sequential ID allocation per entity namespace.

Each namespace (``form``, ``question``, ``submission``) owns one row in
``id_counter``. ``next_id`` is a single ``UPDATE ... RETURNING`` statement, so
concurrent callers serialize on that row through ordinary row locking and
never on another namespace's row. A value is consumed as soon as the
allocating transaction commits; callers that abort afterwards leave a gap,
never a duplicate.
"""

from __future__ import annotations

import logging

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.config import get_config
from formbank.db.base import get_engine
from formbank.logic.errors import Fatal, ValidationError, storage_errors

logger = logging.getLogger(__name__)

FORM = "form"
QUESTION = "question"
SUBMISSION = "submission"

NAMESPACES: tuple[str, ...] = (FORM, QUESTION, SUBMISSION)

ID_PREFIXES: dict[str, str] = {
    FORM: "FORM",
    QUESTION: "Q",
    SUBMISSION: "SUB",
}

_INCREMENT_SQL = sql_text(
    "UPDATE id_counter SET current_value = current_value + 1 "
    "WHERE entity_type = :t RETURNING current_value"
)


def _increment(conn: Connection, entity_type: str) -> int:
    row = conn.execute(_INCREMENT_SQL, {"t": entity_type}).first()
    if row is None:
        # Namespaces are seeded by migrations; a missing row is misconfiguration
        logger.error("id_counter_missing entity_type=%s", entity_type)
        raise Fatal(
            f"ID namespace '{entity_type}' is not initialized",
            {"entity_type": entity_type},
        )
    return int(row[0])


def next_id(entity_type: str, conn: Connection | None = None) -> int:
    """Return the next integer for ``entity_type``.

    With ``conn`` the increment joins the caller's transaction; otherwise it
    commits in its own short transaction so the counter row lock is released
    immediately.
    """
    if not entity_type:
        raise ValidationError("entity_type is required")
    if conn is not None:
        with storage_errors(f"allocate {entity_type} id"):
            return _increment(conn, entity_type)
    with storage_errors(f"allocate {entity_type} id"):
        with get_engine().begin() as own:
            return _increment(own, entity_type)


def format_id(prefix: str, value: int, pad_width: int | None = None) -> str:
    """Render ``PREFIX-<zero padded value>``, e.g. ``Q-007``."""
    width = get_config().ids.pad_width if pad_width is None else pad_width
    return f"{prefix}-{str(int(value)).zfill(width)}"


def next_public_id(entity_type: str, conn: Connection | None = None) -> str:
    """Allocate and format an identifier using the namespace's default prefix."""
    prefix = ID_PREFIXES.get(entity_type)
    if prefix is None:
        raise Fatal(f"No ID prefix configured for namespace '{entity_type}'")
    return format_id(prefix, next_id(entity_type, conn))


def current_value(entity_type: str) -> int | None:
    """Return the last value issued for ``entity_type`` or None when unseeded."""
    with storage_errors(f"read {entity_type} counter"):
        with get_engine().connect() as conn:
            row = conn.execute(
                sql_text("SELECT current_value FROM id_counter WHERE entity_type = :t"),
                {"t": entity_type},
            ).fetchone()
    return int(row[0]) if row else None


def seed_namespace(entity_type: str, initial_value: int = 0) -> None:
    """Create the counter row for ``entity_type`` if it does not exist yet."""
    with storage_errors(f"seed {entity_type} counter"):
        with get_engine().begin() as conn:
            exists = conn.execute(
                sql_text("SELECT 1 FROM id_counter WHERE entity_type = :t"),
                {"t": entity_type},
            ).fetchone()
            if exists is None:
                conn.execute(
                    sql_text("INSERT INTO id_counter (entity_type, current_value) VALUES (:t, :v)"),
                    {"t": entity_type, "v": int(initial_value)},
                )
                logger.info("id_counter_seeded entity_type=%s value=%s", entity_type, initial_value)


__all__ = [
    "FORM",
    "QUESTION",
    "SUBMISSION",
    "NAMESPACES",
    "ID_PREFIXES",
    "next_id",
    "next_public_id",
    "format_id",
    "current_value",
    "seed_namespace",
]
