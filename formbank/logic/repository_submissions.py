"""Submission repository.

Submissions arrive label-based and are stored key-based: every answer is run
through the submission codec inside the same transaction that inserts the
row, so a submission is either fully encoded and persisted or not persisted
at all. Reads decode stored keys against the current option labels.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from formbank.db.base import get_engine
from formbank.logic import id_allocator
from formbank.logic.errors import NotFound, ValidationError, storage_errors
from formbank.logic.events import SUBMISSION_CREATED, publish
from formbank.logic.json_columns import dumps, loads
from formbank.logic.repository_forms import fetch_form
from formbank.logic.repository_questions import fetch_questions
from formbank.logic.submission_codec import decode, encode
from formbank.logic.timestamps import utc_now
from formbank.logic.validation import is_empty_answer, validate_mapping

logger = logging.getLogger(__name__)

_COLUMNS = "submission_id, form_id, submission_data, metadata, submitted_at"


def _encode_submission(
    form: Dict[str, Any],
    questions: Dict[str, Dict[str, Any]],
    data: Dict[str, Any],
) -> Dict[str, Any]:
    """Validate ``data`` against the form and return the key-encoded answer map."""
    on_form = {q["question_id"]: q for q in form["questions"]}
    unknown = sorted(str(q) for q in data if str(q) not in on_form)
    if unknown:
        raise ValidationError(
            f"Question '{unknown[0]}' is not part of form '{form['form_id']}'",
            {"form_id": form["form_id"], "question_ids": unknown},
        )

    errors: List[ValidationError] = []
    encoded: Dict[str, Any] = {}
    for link in form["questions"]:
        qid = link["question_id"]
        value = data.get(qid)
        if is_empty_answer(value):
            if link["required"]:
                errors.append(ValidationError(f"Answer for question '{qid}' is required", {"question_id": qid}))
            continue
        question = questions.get(qid)
        if question is None:
            raise NotFound.resource("Question", qid)
        try:
            encoded[qid] = encode(question, value)
        except ValidationError as exc:
            errors.append(exc)

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ValidationError(
            "; ".join(e.message for e in errors),
            {"errors": [e.to_dict() for e in errors]},
        )
    return encoded


def _decode_data(questions: Dict[str, Dict[str, Any]], stored: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for qid, value in stored.items():
        question = questions.get(qid)
        # Answers to questions since removed from the bank are shown as stored
        out[qid] = decode(question, value) if question is not None else value
    return out


def _view(row: Any, questions: Dict[str, Dict[str, Any]], include_raw: bool) -> Dict[str, Any]:
    stored = loads(row[2], {})
    view = {
        "submission_id": str(row[0]),
        "form_id": str(row[1]),
        "submission_data": _decode_data(questions, stored),
        "metadata": loads(row[3], {}),
        "submitted_at": row[4],
    }
    if include_raw:
        view["raw_data"] = stored
    return view


def create_submission(
    *,
    form_id: str,
    submission_data: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Encode and persist a submission; return its decoded view (with raw keys)."""
    if not isinstance(submission_data, dict) or not submission_data:
        raise ValidationError("Submission data is required and must be an object")
    meta = validate_mapping(metadata, "metadata")
    data = {str(k): v for k, v in submission_data.items()}

    submission_id = id_allocator.next_public_id(id_allocator.SUBMISSION)
    submitted_at = utc_now()
    with storage_errors("create submission"):
        with get_engine().begin() as conn:
            form = fetch_form(conn, form_id)
            if not form["is_active"]:
                raise ValidationError(
                    f"Cannot submit to inactive form '{form_id}'", {"form_id": form_id}
                )
            questions = fetch_questions(conn, [q["question_id"] for q in form["questions"]])
            encoded = _encode_submission(form, questions, data)
            conn.execute(
                sql_text(
                    """
                    INSERT INTO submission (submission_id, form_id, submission_data, metadata, submitted_at)
                    VALUES (:sid, :fid, :data, :meta, :at)
                    """
                ),
                {
                    "sid": submission_id,
                    "fid": form_id,
                    "data": dumps(encoded),
                    "meta": dumps(meta),
                    "at": submitted_at,
                },
            )
    view = {
        "submission_id": submission_id,
        "form_id": form_id,
        "submission_data": _decode_data(questions, encoded),
        "metadata": meta,
        "submitted_at": submitted_at,
        "raw_data": encoded,
    }
    logger.info("submission_created sid=%s fid=%s answers=%s", submission_id, form_id, len(encoded))
    publish(SUBMISSION_CREATED, {"submission_id": submission_id, "form_id": form_id})
    return view


def _fetch_row(conn: Connection, submission_id: str) -> Any:
    row = conn.execute(
        sql_text(f"SELECT {_COLUMNS} FROM submission WHERE submission_id = :sid"),
        {"sid": submission_id},
    ).fetchone()
    if row is None:
        raise NotFound.resource("Submission", submission_id)
    return row


def get_submission(submission_id: str, *, include_raw: bool = False) -> Dict[str, Any]:
    """Return the label-based view of a submission using current labels."""
    with storage_errors("read submission"):
        with get_engine().connect() as conn:
            row = _fetch_row(conn, submission_id)
            questions = fetch_questions(conn, loads(row[2], {}).keys())
    return _view(row, questions, include_raw)


def list_submissions(
    form_id: str,
    *,
    limit: int = 100,
    offset: int = 0,
    include_raw: bool = False,
) -> List[Dict[str, Any]]:
    with storage_errors("list submissions"):
        with get_engine().connect() as conn:
            form = fetch_form(conn, form_id)
            rows = conn.execute(
                sql_text(
                    f"SELECT {_COLUMNS} FROM submission WHERE form_id = :fid "
                    # Ids outgrow their zero padding, so order by length before text
                    "ORDER BY submitted_at DESC, LENGTH(submission_id) DESC, submission_id DESC "
                    "LIMIT :limit OFFSET :offset"
                ),
                {"fid": form_id, "limit": int(limit), "offset": int(offset)},
            ).fetchall()
            qids = {q["question_id"] for q in form["questions"]}
            for r in rows:
                qids.update(loads(r[2], {}).keys())
            questions = fetch_questions(conn, sorted(qids))
    return [_view(r, questions, include_raw) for r in rows]


def count_submissions(*, form_id: Optional[str] = None) -> int:
    where = " WHERE form_id = :fid" if form_id is not None else ""
    params = {"fid": form_id} if form_id is not None else {}
    with storage_errors("count submissions"):
        with get_engine().connect() as conn:
            return int(conn.execute(sql_text(f"SELECT COUNT(*) FROM submission{where}"), params).scalar_one())


def update_submission_metadata(submission_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Replace a submission's metadata; answers are immutable."""
    meta = validate_mapping(metadata, "metadata")
    with storage_errors("update submission"):
        with get_engine().begin() as conn:
            _fetch_row(conn, submission_id)
            conn.execute(
                sql_text("UPDATE submission SET metadata = :meta WHERE submission_id = :sid"),
                {"meta": dumps(meta), "sid": submission_id},
            )
            row = _fetch_row(conn, submission_id)
            questions = fetch_questions(conn, loads(row[2], {}).keys())
    logger.info("submission_metadata_updated sid=%s", submission_id)
    return _view(row, questions, False)


def delete_submission(submission_id: str) -> Dict[str, Any]:
    with storage_errors("delete submission"):
        with get_engine().begin() as conn:
            row = _fetch_row(conn, submission_id)
            questions = fetch_questions(conn, loads(row[2], {}).keys())
            conn.execute(sql_text("DELETE FROM submission WHERE submission_id = :sid"), {"sid": submission_id})
    logger.info("submission_deleted sid=%s", submission_id)
    return _view(row, questions, False)


def iter_submission_data(form_id: str, batch_size: int = 500) -> Iterator[Dict[str, Any]]:
    """Stream the stored (key-based) answer maps of a form's submissions.

    Rows are fetched ``batch_size`` at a time from a single SELECT, so each
    committed submission is seen at most once per scan.
    """
    with storage_errors("scan submissions"):
        with get_engine().connect() as conn:
            result = conn.execution_options(yield_per=int(batch_size)).execute(
                sql_text(
                    "SELECT submission_data FROM submission WHERE form_id = :fid "
                    "ORDER BY LENGTH(submission_id), submission_id"
                ),
                {"fid": form_id},
            )
            for partition in result.partitions():
                for row in partition:
                    yield loads(row[0], {})


__all__ = [
    "create_submission",
    "get_submission",
    "list_submissions",
    "count_submissions",
    "update_submission_metadata",
    "delete_submission",
    "iter_submission_data",
]
