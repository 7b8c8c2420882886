"""Form repository.

Forms reference question-bank entries by id through ``form_question``; the
question documents themselves are never copied into the form.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.db.base import get_engine
from formbank.logic import id_allocator
from formbank.logic.errors import NotFound, ValidationError, storage_errors
from formbank.logic.json_columns import dumps, loads
from formbank.logic.timestamps import utc_now
from formbank.logic.validation import MAX_TITLE, validate_mapping, validate_required_text

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_COLUMNS = "form_id, title, description, metadata, is_active, created_at, updated_at"


def _normalize_form_questions(questions: Any) -> List[Dict[str, Any]]:
    if not isinstance(questions, list) or not questions:
        raise ValidationError("Form must have at least one question")
    out: List[Dict[str, Any]] = []
    seen: set[str] = set()
    for index, item in enumerate(questions):
        if isinstance(item, str):
            item = {"question_id": item}
        if not isinstance(item, dict) or not item.get("question_id"):
            raise ValidationError(f"Question at index {index} must have a question_id")
        qid = str(item["question_id"])
        if qid in seen:
            raise ValidationError(f"Question '{qid}' appears more than once on the form")
        required = item.get("required", False)
        if not isinstance(required, bool):
            raise ValidationError(f"Question at index {index}: required must be a boolean")
        seen.add(qid)
        out.append({"question_id": qid, "required": required})
    return out


def _load_form_questions(conn: Connection, form_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
    ids = [str(f) for f in form_ids]
    out: Dict[str, List[Dict[str, Any]]] = {f: [] for f in ids}
    if not ids:
        return out
    params = {f"f{i}": f for i, f in enumerate(ids)}
    placeholders = ", ".join(f":f{i}" for i in range(len(ids)))
    rows = conn.execute(
        sql_text(
            "SELECT form_id, question_id, required FROM form_question "
            f"WHERE form_id IN ({placeholders}) ORDER BY form_id, position"
        ),
        params,
    ).fetchall()
    for r in rows:
        out[str(r[0])].append({"question_id": str(r[1]), "required": bool(r[2])})
    return out


def _row_to_form(row: Any, questions: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "form_id": str(row[0]),
        "title": row[1],
        "description": row[2],
        "questions": questions,
        "metadata": loads(row[3], {}),
        "is_active": bool(row[4]),
        "created_at": row[5],
        "updated_at": row[6],
    }


def fetch_form(conn: Connection, form_id: str) -> Dict[str, Any]:
    """Load one form on ``conn`` or raise NotFound."""
    row = conn.execute(
        sql_text(f"SELECT {_COLUMNS} FROM form WHERE form_id = :fid"), {"fid": form_id}
    ).fetchone()
    if row is None:
        raise NotFound.resource("Form", form_id)
    return _row_to_form(row, _load_form_questions(conn, [form_id])[form_id])


def _replace_questions(conn: Connection, form_id: str, questions: List[Dict[str, Any]]) -> None:
    ids = [q["question_id"] for q in questions]
    params = {f"q{i}": q for i, q in enumerate(ids)}
    placeholders = ", ".join(f":q{i}" for i in range(len(ids)))
    found = {
        str(r[0])
        for r in conn.execute(
            sql_text(f"SELECT question_id FROM question WHERE question_id IN ({placeholders})"), params
        ).fetchall()
    }
    missing = [q for q in ids if q not in found]
    if missing:
        raise NotFound(f"Question with id '{missing[0]}' not found", {"resource": "Question", "ids": missing})
    conn.execute(sql_text("DELETE FROM form_question WHERE form_id = :fid"), {"fid": form_id})
    for position, q in enumerate(questions, start=1):
        conn.execute(
            sql_text(
                "INSERT INTO form_question (form_id, question_id, position, required) "
                "VALUES (:fid, :qid, :pos, :req)"
            ),
            {"fid": form_id, "qid": q["question_id"], "pos": position, "req": q["required"]},
        )


def create_form(
    *,
    title: str,
    questions: List[Any],
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    clean_title = validate_required_text(title, "Title", MAX_TITLE)
    form_questions = _normalize_form_questions(questions)
    meta = validate_mapping(metadata, "metadata")

    form_id = id_allocator.next_public_id(id_allocator.FORM)
    now = utc_now()
    with storage_errors("create form"):
        with get_engine().begin() as conn:
            conn.execute(
                sql_text(
                    """
                    INSERT INTO form (form_id, title, description, metadata, is_active, created_at, updated_at)
                    VALUES (:fid, :title, :descr, :meta, :active, :now, :now)
                    """
                ),
                {
                    "fid": form_id,
                    "title": clean_title,
                    "descr": description,
                    "meta": dumps(meta),
                    "active": True,
                    "now": now,
                },
            )
            _replace_questions(conn, form_id, form_questions)
            created = fetch_form(conn, form_id)
    logger.info("form_created fid=%s questions=%s", form_id, len(form_questions))
    return created


def get_form(form_id: str) -> Dict[str, Any]:
    with storage_errors("read form"):
        with get_engine().connect() as conn:
            return fetch_form(conn, form_id)


def list_forms(*, is_active: Optional[bool] = None, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
    where = " WHERE is_active = :active" if is_active is not None else ""
    params: Dict[str, Any] = {"limit": int(limit), "offset": int(offset)}
    if is_active is not None:
        params["active"] = bool(is_active)
    with storage_errors("list forms"):
        with get_engine().connect() as conn:
            rows = conn.execute(
                sql_text(
                    f"SELECT {_COLUMNS} FROM form{where} "
                    "ORDER BY created_at DESC, LENGTH(form_id) DESC, form_id DESC LIMIT :limit OFFSET :offset"
                ),
                params,
            ).fetchall()
            questions = _load_form_questions(conn, [str(r[0]) for r in rows])
    return [_row_to_form(r, questions[str(r[0])]) for r in rows]


def count_forms(*, is_active: Optional[bool] = None) -> int:
    where = " WHERE is_active = :active" if is_active is not None else ""
    params = {"active": bool(is_active)} if is_active is not None else {}
    with storage_errors("count forms"):
        with get_engine().connect() as conn:
            return int(conn.execute(sql_text(f"SELECT COUNT(*) FROM form{where}"), params).scalar_one())


def update_form(
    form_id: str,
    *,
    title: Optional[str] = None,
    description: Any = _UNSET,
    questions: Optional[List[Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    is_active: Optional[bool] = None,
) -> Dict[str, Any]:
    sets: List[str] = []
    params: Dict[str, Any] = {"fid": form_id}
    if title is not None:
        sets.append("title = :title")
        params["title"] = validate_required_text(title, "Title", MAX_TITLE)
    if description is not _UNSET:
        sets.append("description = :descr")
        params["descr"] = description
    if metadata is not None:
        sets.append("metadata = :meta")
        params["meta"] = dumps(validate_mapping(metadata, "metadata"))
    if is_active is not None:
        sets.append("is_active = :active")
        params["active"] = bool(is_active)
    form_questions = _normalize_form_questions(questions) if questions is not None else None

    with storage_errors("update form"):
        with get_engine().begin() as conn:
            fetch_form(conn, form_id)
            sets.append("updated_at = :now")
            params["now"] = utc_now()
            conn.execute(sql_text(f"UPDATE form SET {', '.join(sets)} WHERE form_id = :fid"), params)
            if form_questions is not None:
                _replace_questions(conn, form_id, form_questions)
            updated = fetch_form(conn, form_id)
    logger.info("form_updated fid=%s", form_id)
    return updated


def set_form_active(form_id: str, active: bool) -> Dict[str, Any]:
    return update_form(form_id, is_active=active)


def delete_form(form_id: str) -> Dict[str, Any]:
    """Delete a form together with its question links and submissions."""
    with storage_errors("delete form"):
        with get_engine().begin() as conn:
            form = fetch_form(conn, form_id)
            removed = conn.execute(
                sql_text("DELETE FROM submission WHERE form_id = :fid"), {"fid": form_id}
            ).rowcount
            conn.execute(sql_text("DELETE FROM form_question WHERE form_id = :fid"), {"fid": form_id})
            conn.execute(sql_text("DELETE FROM form WHERE form_id = :fid"), {"fid": form_id})
    logger.info("form_deleted fid=%s submissions_removed=%s", form_id, removed)
    return form


__all__ = [
    "fetch_form",
    "create_form",
    "get_form",
    "list_forms",
    "count_forms",
    "update_form",
    "set_form_active",
    "delete_form",
]
