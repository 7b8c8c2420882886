"""Append-only ledger of option label changes.

``record`` is only ever called by the option registry, inside the same
transaction that changes the label, so a label change and its ledger row
commit together or not at all. There are no update or
delete helpers; rows disappear only when their question is deleted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.db.base import get_engine
from formbank.logic.errors import NotFound, storage_errors
from formbank.logic.timestamps import utc_now

logger = logging.getLogger(__name__)


def record(
    conn: Connection,
    question_id: str,
    option_key: str,
    old_label: str,
    new_label: str,
    changed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Append one label change inside the caller's transaction."""
    changed_at = utc_now()
    conn.execute(
        sql_text(
            """
            INSERT INTO option_label_history (
                question_id, option_key, old_label, new_label, changed_at, changed_by, change_reason
            )
            VALUES (:qid, :key, :old, :new, :at, :by, :reason)
            """
        ),
        {
            "qid": question_id,
            "key": option_key,
            "old": old_label,
            "new": new_label,
            "at": changed_at,
            "by": changed_by,
            "reason": reason,
        },
    )
    logger.info(
        "option_label_recorded qid=%s key=%s by=%s", question_id, option_key, changed_by
    )
    return {
        "question_id": question_id,
        "option_key": option_key,
        "old_label": old_label,
        "new_label": new_label,
        "changed_at": changed_at,
        "changed_by": changed_by,
        "reason": reason,
    }


def _row_to_record(row: Any) -> Dict[str, Any]:
    return {
        "history_id": int(row[0]),
        "question_id": str(row[1]),
        "option_key": str(row[2]),
        "old_label": row[3],
        "new_label": row[4],
        "changed_at": row[5],
        "changed_by": row[6],
        "reason": row[7],
    }


def history(
    question_id: str,
    option_key: Optional[str] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Return label changes for a question (optionally one key), oldest first.

    Keys that were removed from the question keep their history.
    """
    clauses = ["question_id = :qid"]
    params: Dict[str, Any] = {"qid": question_id}
    if option_key is not None:
        clauses.append("option_key = :key")
        params["key"] = option_key
    sql = (
        "SELECT history_id, question_id, option_key, old_label, new_label, changed_at, changed_by, change_reason "
        "FROM option_label_history WHERE " + " AND ".join(clauses) + " ORDER BY changed_at ASC, history_id ASC"
    )
    if limit is not None:
        sql += " LIMIT :limit OFFSET :offset"
        params.update({"limit": int(limit), "offset": int(offset)})
    elif offset:
        # LIMIT -1 is SQLite-only; a large bound keeps the query portable
        sql += " LIMIT :limit OFFSET :offset"
        params.update({"limit": 2**62, "offset": int(offset)})

    with storage_errors("read option history"):
        with get_engine().connect() as conn:
            exists = conn.execute(
                sql_text("SELECT 1 FROM question WHERE question_id = :qid"), {"qid": question_id}
            ).fetchone()
            if exists is None:
                raise NotFound.resource("Question", question_id)
            rows = conn.execute(sql_text(sql), params).fetchall()
    return [_row_to_record(r) for r in rows]


__all__ = ["record", "history"]
