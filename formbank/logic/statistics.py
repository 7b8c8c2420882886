"""Answer-frequency statistics over stored submissions.

Submissions are scanned in their stored, key-based form and tallied by key.
Only at the end are keys projected onto the question's *current* labels, so
every historical label an option ever carried counts toward one bucket.
Two keys whose labels have converged are summed into the same bucket.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Dict, Iterable, Optional

from formbank.config import get_config
from formbank.db.base import get_engine
from formbank.logic.errors import NotFound, storage_errors
from formbank.logic.option_registry import label_map
from formbank.logic.repository_forms import fetch_form
from formbank.logic.repository_questions import fetch_questions
from formbank.logic.repository_submissions import iter_submission_data
from formbank.logic.submission_codec import UNKNOWN_OPTION, stored_keys
from formbank.logic.validation import is_empty_answer
from formbank.models.question_type import is_choice

logger = logging.getLogger(__name__)


def _value_bucket(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(_value_bucket(v) for v in value)
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True)


def project_to_labels(key_counts: Dict[str, int], labels: Dict[str, str]) -> Dict[str, int]:
    """Map ``key -> count`` onto ``current label -> count``.

    Keys that resolve to the same label add up; keys with no current option
    are gathered under ``UNKNOWN_OPTION``.
    """
    distribution: Dict[str, int] = {}
    for key in sorted(key_counts):
        label = labels.get(key, UNKNOWN_OPTION)
        distribution[label] = distribution.get(label, 0) + key_counts[key]
    return distribution


class _QuestionTally:
    """Running counters for one question during a scan."""

    def __init__(self, question: Dict[str, Any]) -> None:
        self.question = question
        self.choice = is_choice(question["question_type"])
        self.total_answers = 0
        self.empty_answers = 0
        self.counts: Counter[str] = Counter()
        self.unique: set[str] = set()

    def add(self, value: Any) -> None:
        if is_empty_answer(value):
            self.empty_answers += 1
            return
        self.total_answers += 1
        self.unique.add(json.dumps(value, sort_keys=True))
        if self.choice:
            # One increment per selected key, not per submission
            self.counts.update(stored_keys(self.question, value))
        else:
            self.counts[_value_bucket(value)] += 1

    def distribution(self) -> Dict[str, int]:
        if not self.choice:
            return dict(sorted(self.counts.items()))
        return project_to_labels(dict(self.counts), label_map(self.question.get("options") or []))


def _scan(form_id: str, tallies: Iterable[_QuestionTally], batch_size: Optional[int]) -> int:
    size = batch_size or get_config().statistics.batch_size
    tallies = list(tallies)
    scanned = 0
    for data in iter_submission_data(form_id, size):
        scanned += 1
        for tally in tallies:
            tally.add(data.get(tally.question["question_id"]))
    return scanned


def _load(form_id: str) -> tuple[Dict[str, Any], Dict[str, Dict[str, Any]]]:
    with storage_errors("load statistics scope"):
        with get_engine().connect() as conn:
            form = fetch_form(conn, form_id)
            questions = fetch_questions(conn, [q["question_id"] for q in form["questions"]])
    return form, questions


def aggregate(form_id: str, question_id: str, *, batch_size: Optional[int] = None) -> Dict[str, Any]:
    """Return ``{question_id, total_answers, distribution, key_distribution}``.

    ``distribution`` is keyed by current labels; ``key_distribution`` holds
    the raw per-key tally for choice questions. Raises NotFound when the
    question is not on the form.
    """
    form, questions = _load(form_id)
    if question_id not in {q["question_id"] for q in form["questions"]} or question_id not in questions:
        raise NotFound(
            f"Question '{question_id}' is not part of form '{form_id}'",
            {"resource": "Question", "form_id": form_id, "question_id": question_id},
        )
    tally = _QuestionTally(questions[question_id])
    scanned = _scan(form_id, [tally], batch_size)
    logger.info(
        "statistics_aggregated fid=%s qid=%s submissions=%s answers=%s",
        form_id, question_id, scanned, tally.total_answers,
    )
    return {
        "question_id": question_id,
        "total_answers": tally.total_answers,
        "distribution": tally.distribution(),
        "key_distribution": dict(sorted(tally.counts.items())) if tally.choice else None,
    }


def form_statistics(form_id: str, *, batch_size: Optional[int] = None) -> Dict[str, Any]:
    """Per-question statistics for every question on a form in a single scan."""
    form, questions = _load(form_id)
    tallies = [_QuestionTally(questions[q["question_id"]]) for q in form["questions"] if q["question_id"] in questions]
    scanned = _scan(form_id, tallies, batch_size)
    logger.info("form_statistics fid=%s submissions=%s questions=%s", form_id, scanned, len(tallies))
    return {
        "form_id": form_id,
        "total_submissions": scanned,
        "questions": {
            t.question["question_id"]: {
                "question_text": t.question["question_text"],
                "question_type": t.question["question_type"],
                "total_answers": t.total_answers,
                "empty_answers": t.empty_answers,
                "unique_answer_count": len(t.unique),
                "distribution": t.distribution(),
            }
            for t in tallies
        },
    }


__all__ = ["aggregate", "form_statistics", "project_to_labels"]
