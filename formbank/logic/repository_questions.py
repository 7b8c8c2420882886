"""Question bank repository.

Encapsulates DB reads/writes for questions, keeping the HTTP layer free of
direct SQL. Options are stored in ``question_option`` and assembled onto the
question document on read; option mutations go through the option registry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.db.base import get_engine
from formbank.logic import id_allocator
from formbank.logic.errors import Conflict, NotFound, ValidationError, storage_errors
from formbank.logic.json_columns import dumps, loads
from formbank.logic.option_registry import create_options, load_options
from formbank.logic.timestamps import utc_now
from formbank.logic.validation import (
    MAX_QUESTION_TEXT,
    validate_mapping,
    validate_question_type,
    validate_required_text,
    validate_rules,
)
from formbank.models.question_type import is_choice

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_COLUMNS = (
    "question_id, question_text, question_type, validation_rules, metadata, is_active, created_at, updated_at"
)


def _row_to_question(row: Any, options: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    qtype = str(row[2])
    return {
        "question_id": str(row[0]),
        "question_text": row[1],
        "question_type": qtype,
        "options": options if is_choice(qtype) else None,
        "validation_rules": loads(row[3]),
        "metadata": loads(row[4], {}),
        "is_active": bool(row[5]),
        "created_at": row[6],
        "updated_at": row[7],
    }


def fetch_questions(conn: Connection, question_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Load questions with their options on ``conn``; unknown ids are omitted."""
    ids = list(dict.fromkeys(str(q) for q in question_ids))
    if not ids:
        return {}
    params = {f"q{i}": q for i, q in enumerate(ids)}
    placeholders = ", ".join(f":q{i}" for i in range(len(ids)))
    rows = conn.execute(
        sql_text(f"SELECT {_COLUMNS} FROM question WHERE question_id IN ({placeholders})"),
        params,
    ).fetchall()
    options = load_options(conn, [str(r[0]) for r in rows])
    return {str(r[0]): _row_to_question(r, options.get(str(r[0]))) for r in rows}


def create_question(
    *,
    question_text: str,
    question_type: str,
    options: Optional[List[Any]] = None,
    validation_rules: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Insert a question (and its options) and return the stored document."""
    text = validate_required_text(question_text, "Question text", MAX_QUESTION_TEXT)
    qtype = validate_question_type(question_type)
    rules = validate_rules(qtype, validation_rules)
    meta = validate_mapping(metadata, "metadata")
    if is_choice(qtype) and not options:
        raise ValidationError(f"Question type '{qtype}' requires options")
    if not is_choice(qtype) and options:
        raise ValidationError(f"Question type '{qtype}' does not take options")

    # Allocated in its own transaction: an aborted insert leaves a gap, not a duplicate
    question_id = id_allocator.next_public_id(id_allocator.QUESTION)
    now = utc_now()
    with storage_errors("create question"):
        with get_engine().begin() as conn:
            conn.execute(
                sql_text(
                    """
                    INSERT INTO question (
                        question_id, question_text, question_type, validation_rules, metadata,
                        is_active, created_at, updated_at
                    )
                    VALUES (:qid, :text, :qtype, :rules, :meta, :active, :now, :now)
                    """
                ),
                {
                    "qid": question_id,
                    "text": text,
                    "qtype": qtype,
                    "rules": dumps(rules),
                    "meta": dumps(meta),
                    "active": True,
                    "now": now,
                },
            )
            if is_choice(qtype):
                create_options(question_id, options or [], conn=conn)
            created = fetch_questions(conn, [question_id])[question_id]
    logger.info("question_created qid=%s type=%s", question_id, qtype)
    return created


def get_question(question_id: str) -> Dict[str, Any]:
    with storage_errors("read question"):
        with get_engine().connect() as conn:
            found = fetch_questions(conn, [question_id])
    if question_id not in found:
        raise NotFound.resource("Question", question_id)
    return found[question_id]


def get_questions(question_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """Return the questions that exist among ``question_ids`` in input order."""
    ids = [str(q) for q in question_ids]
    with storage_errors("read questions"):
        with get_engine().connect() as conn:
            found = fetch_questions(conn, ids)
    return [found[q] for q in dict.fromkeys(ids) if q in found]


def _filters(question_type: Optional[str], is_active: Optional[bool]) -> tuple[str, Dict[str, Any]]:
    clauses: List[str] = []
    params: Dict[str, Any] = {}
    if question_type is not None:
        clauses.append("question_type = :qtype")
        params["qtype"] = validate_question_type(question_type)
    if is_active is not None:
        clauses.append("is_active = :active")
        params["active"] = bool(is_active)
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def list_questions(
    *,
    question_type: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    where, params = _filters(question_type, is_active)
    params.update({"limit": int(limit), "offset": int(offset)})
    with storage_errors("list questions"):
        with get_engine().connect() as conn:
            rows = conn.execute(
                sql_text(
                    f"SELECT {_COLUMNS} FROM question{where} "
                    "ORDER BY created_at DESC, LENGTH(question_id) DESC, question_id DESC "
                    "LIMIT :limit OFFSET :offset"
                ),
                params,
            ).fetchall()
            options = load_options(conn, [str(r[0]) for r in rows])
    return [_row_to_question(r, options.get(str(r[0]))) for r in rows]


def count_questions(*, question_type: Optional[str] = None, is_active: Optional[bool] = None) -> int:
    where, params = _filters(question_type, is_active)
    with storage_errors("count questions"):
        with get_engine().connect() as conn:
            return int(conn.execute(sql_text(f"SELECT COUNT(*) FROM question{where}"), params).scalar_one())


def update_question(
    question_id: str,
    *,
    question_text: Optional[str] = None,
    validation_rules: Any = _UNSET,
    metadata: Optional[Dict[str, Any]] = None,
    is_active: Optional[bool] = None,
) -> Dict[str, Any]:
    """Update mutable question fields. The type and option keys never change here."""
    sets: List[str] = []
    params: Dict[str, Any] = {"qid": question_id}
    if question_text is not None:
        sets.append("question_text = :text")
        params["text"] = validate_required_text(question_text, "Question text", MAX_QUESTION_TEXT)
    if validation_rules is not _UNSET:
        sets.append("validation_rules = :rules")
        params["rules"] = dumps(validate_rules(None, validation_rules))
    if metadata is not None:
        sets.append("metadata = :meta")
        params["meta"] = dumps(validate_mapping(metadata, "metadata"))
    if is_active is not None:
        sets.append("is_active = :active")
        params["active"] = bool(is_active)

    with storage_errors("update question"):
        with get_engine().begin() as conn:
            if sets:
                sets.append("updated_at = :now")
                params["now"] = utc_now()
                result = conn.execute(
                    sql_text(f"UPDATE question SET {', '.join(sets)} WHERE question_id = :qid"),
                    params,
                )
                if result.rowcount == 0:
                    raise NotFound.resource("Question", question_id)
            found = fetch_questions(conn, [question_id])
    if question_id not in found:
        raise NotFound.resource("Question", question_id)
    return found[question_id]


def set_question_active(question_id: str, active: bool) -> Dict[str, Any]:
    return update_question(question_id, is_active=active)


def delete_question(question_id: str) -> Dict[str, Any]:
    """Delete a question with its options and label history.

    Questions still referenced by a form cannot be deleted; deactivate them.
    """
    with storage_errors("delete question"):
        with get_engine().begin() as conn:
            found = fetch_questions(conn, [question_id])
            if question_id not in found:
                raise NotFound.resource("Question", question_id)
            forms = conn.execute(
                sql_text("SELECT form_id FROM form_question WHERE question_id = :qid ORDER BY form_id"),
                {"qid": question_id},
            ).fetchall()
            if forms:
                raise Conflict(
                    f"Question '{question_id}' is used by forms; deactivate it instead",
                    {"forms": [str(r[0]) for r in forms]},
                )
            conn.execute(sql_text("DELETE FROM option_label_history WHERE question_id = :qid"), {"qid": question_id})
            conn.execute(sql_text("DELETE FROM question_option WHERE question_id = :qid"), {"qid": question_id})
            conn.execute(sql_text("DELETE FROM question WHERE question_id = :qid"), {"qid": question_id})
    logger.info("question_deleted qid=%s", question_id)
    return found[question_id]


__all__ = [
    "fetch_questions",
    "create_question",
    "get_question",
    "get_questions",
    "list_questions",
    "count_questions",
    "update_question",
    "set_question_active",
    "delete_question",
]
