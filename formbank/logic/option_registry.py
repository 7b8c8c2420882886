"""Option key registry for choice-type questions.

Owns the ``(key, label)`` pairs of every choice question. Keys are minted
once from the initial label and never change; the label is the only mutable
field and changes only through ``rename_option``, which appends a ledger
record in the same transaction.

Keys are unique per question in the service (``derive_keys``) and in storage
(primary key on ``question_option``), so a concurrent writer that slips past
the service check fails at commit with ``Conflict``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.db.base import get_engine
from formbank.logic import label_history
from formbank.logic.errors import Conflict, NotFound, ValidationError, storage_errors
from formbank.logic.events import OPTION_RENAMED, publish
from formbank.logic.option_keys import clean_label, derive_keys, normalize_option_input
from formbank.logic.timestamps import utc_now
from formbank.models.question_type import is_choice

logger = logging.getLogger(__name__)

# Compare-and-swap attempts before a contended rename gives up with Conflict
_RENAME_ATTEMPTS = 5


# ---------------------------------------------------------------------------
# Pure lookups over an already loaded option list
# ---------------------------------------------------------------------------

def resolve_in(options: Iterable[Dict[str, Any]], label: str) -> Optional[str]:
    """Return the key whose current label equals ``label`` (first by position)."""
    for opt in options:
        if opt["label"] == label:
            return str(opt["key"])
    return None


def label_in(options: Iterable[Dict[str, Any]], key: str) -> Optional[str]:
    for opt in options:
        if opt["key"] == key:
            return str(opt["label"])
    return None


def label_map(options: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    return {str(o["key"]): str(o["label"]) for o in options}


# ---------------------------------------------------------------------------
# Storage helpers
# ---------------------------------------------------------------------------

def _row_to_option(row: Any) -> Dict[str, Any]:
    return {"key": str(row[0]), "label": str(row[1]), "position": int(row[2])}


def load_options(conn: Connection, question_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
    """Return ``question_id -> ordered options`` for the given questions."""
    ids = [str(q) for q in question_ids]
    out: Dict[str, List[Dict[str, Any]]] = {q: [] for q in ids}
    if not ids:
        return out
    params = {f"q{i}": q for i, q in enumerate(ids)}
    placeholders = ", ".join(f":q{i}" for i in range(len(ids)))
    rows = conn.execute(
        sql_text(
            "SELECT question_id, option_key, label, position FROM question_option "
            f"WHERE question_id IN ({placeholders}) ORDER BY question_id, position, option_key"
        ),
        params,
    ).fetchall()
    for r in rows:
        out[str(r[0])].append({"key": str(r[1]), "label": str(r[2]), "position": int(r[3])})
    return out


def _question_type(conn: Connection, question_id: str) -> str:
    row = conn.execute(
        sql_text("SELECT question_type FROM question WHERE question_id = :qid"),
        {"qid": question_id},
    ).fetchone()
    if row is None:
        raise NotFound.resource("Question", question_id)
    return str(row[0])


def _touch_question(conn: Connection, question_id: str) -> None:
    conn.execute(
        sql_text("UPDATE question SET updated_at = :at WHERE question_id = :qid"),
        {"at": utc_now(), "qid": question_id},
    )


def get_options(question_id: str) -> List[Dict[str, Any]]:
    """Return the current options of a question in display order."""
    with storage_errors("read options"):
        with get_engine().connect() as conn:
            _question_type(conn, question_id)
            return load_options(conn, [question_id])[question_id]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def _create_options(conn: Connection, question_id: str, options: Iterable[Any]) -> List[Dict[str, Any]]:
    qtype = _question_type(conn, question_id)
    if not is_choice(qtype):
        raise ValidationError(f"Question type '{qtype}' does not take options")
    pairs = normalize_option_input(options)
    if not pairs:
        raise ValidationError("At least one option is required")

    existing = conn.execute(
        sql_text("SELECT option_key, position FROM question_option WHERE question_id = :qid"),
        {"qid": question_id},
    ).fetchall()
    existing_keys = [str(r[0]) for r in existing]
    next_position = max((int(r[1]) for r in existing), default=0) + 1

    keyed = derive_keys(pairs, existing_keys)
    created_at = utc_now()
    created: List[Dict[str, Any]] = []
    for offset, (key, label) in enumerate(keyed):
        position = next_position + offset
        conn.execute(
            sql_text(
                """
                INSERT INTO question_option (question_id, option_key, label, position, created_at)
                VALUES (:qid, :key, :label, :pos, :at)
                """
            ),
            {"qid": question_id, "key": key, "label": label, "pos": position, "at": created_at},
        )
        created.append({"key": key, "label": label, "position": position})
    return created


def create_options(
    question_id: str,
    options: Iterable[Any],
    conn: Connection | None = None,
) -> List[Dict[str, Any]]:
    """Mint keys for ``options`` and attach them to ``question_id``.

    ``options`` holds plain labels or ``{key, label}`` objects. Derived keys
    depend only on the labels, their order and the keys already on the
    question. With ``conn`` the insert joins the caller's transaction.
    """
    if conn is not None:
        return _create_options(conn, question_id, options)
    with storage_errors("create options"):
        with get_engine().begin() as own:
            created = _create_options(own, question_id, options)
            _touch_question(own, question_id)
    logger.info("options_created qid=%s keys=%s", question_id, [o["key"] for o in created])
    return created


def add_options(question_id: str, options: Iterable[Any]) -> List[Dict[str, Any]]:
    """Append options to an existing choice question, deriving keys past the existing ones."""
    return create_options(question_id, options)


def rename_option(
    question_id: str,
    key: str,
    new_label: str,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Change an option's label and append one ledger record atomically.

    The returned option always carries ``key`` unchanged. Renaming to the
    current label is a no-op and records nothing.
    """
    label = clean_label(new_label)
    for attempt in range(1, _RENAME_ATTEMPTS + 1):
        with storage_errors("rename option"):
            with get_engine().begin() as conn:
                row = conn.execute(
                    sql_text(
                        "SELECT option_key, label, position FROM question_option "
                        "WHERE question_id = :qid AND option_key = :key"
                    ),
                    {"qid": question_id, "key": key},
                ).fetchone()
                if row is None:
                    _question_type(conn, question_id)
                    raise NotFound(
                        f"Option '{key}' not found on question '{question_id}'",
                        {"resource": "Option", "question_id": question_id, "key": key},
                    )
                current = _row_to_option(row)
                if current["label"] == label:
                    return current
                # Only swap if nobody renamed it since we read it
                result = conn.execute(
                    sql_text(
                        "UPDATE question_option SET label = :new "
                        "WHERE question_id = :qid AND option_key = :key AND label = :old"
                    ),
                    {"new": label, "qid": question_id, "key": key, "old": current["label"]},
                )
                if result.rowcount == 1:
                    change = label_history.record(
                        conn, question_id, key, current["label"], label, actor, reason
                    )
                    _touch_question(conn, question_id)
                    updated = {"key": key, "label": label, "position": current["position"]}
                    break
        logger.warning("rename_option_retry qid=%s key=%s attempt=%s", question_id, key, attempt)
    else:
        raise Conflict(
            f"Option '{key}' is being renamed concurrently; retry",
            {"question_id": question_id, "key": key},
        )

    logger.info(
        "option_renamed qid=%s key=%s old=%r new=%r by=%s",
        question_id, key, change["old_label"], label, actor,
    )
    publish(OPTION_RENAMED, change)
    return updated


def remove_option(question_id: str, key: str) -> Dict[str, Any]:
    """Detach an option from its question.

    Stored submissions keep the key and decode to the unknown-option marker;
    the option's label history is retained.
    """
    with storage_errors("remove option"):
        with get_engine().begin() as conn:
            row = conn.execute(
                sql_text(
                    "SELECT option_key, label, position FROM question_option "
                    "WHERE question_id = :qid AND option_key = :key"
                ),
                {"qid": question_id, "key": key},
            ).fetchone()
            if row is None:
                _question_type(conn, question_id)
                raise NotFound(
                    f"Option '{key}' not found on question '{question_id}'",
                    {"resource": "Option", "question_id": question_id, "key": key},
                )
            remaining = conn.execute(
                sql_text("SELECT COUNT(*) FROM question_option WHERE question_id = :qid"),
                {"qid": question_id},
            ).scalar_one()
            if int(remaining) <= 1:
                raise ValidationError("Choice questions require at least one option")
            conn.execute(
                sql_text("DELETE FROM question_option WHERE question_id = :qid AND option_key = :key"),
                {"qid": question_id, "key": key},
            )
            _touch_question(conn, question_id)
    logger.info("option_removed qid=%s key=%s", question_id, key)
    return _row_to_option(row)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def resolve(question_id: str, label: str) -> str:
    """Return the key currently labelled ``label``; renamed-away labels do not resolve."""
    key = resolve_in(get_options(question_id), label)
    if key is None:
        raise NotFound(
            f"No option labelled '{label}' on question '{question_id}'",
            {"resource": "Option", "question_id": question_id, "label": label},
        )
    return key


def current_label(question_id: str, key: str) -> str:
    label = label_in(get_options(question_id), key)
    if label is None:
        raise NotFound(
            f"Option '{key}' not found on question '{question_id}'",
            {"resource": "Option", "question_id": question_id, "key": key},
        )
    return label


__all__ = [
    "resolve_in",
    "label_in",
    "label_map",
    "load_options",
    "get_options",
    "create_options",
    "add_options",
    "rename_option",
    "remove_option",
    "resolve",
    "current_label",
]
