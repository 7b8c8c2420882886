"""Functional tests for the statistics aggregator."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from formbank.logic.errors import NotFound
from formbank.logic.option_registry import create_options, remove_option, rename_option
from formbank.logic.repository_forms import create_form
from formbank.logic.repository_questions import create_question
from formbank.logic.repository_submissions import create_submission, get_submission
from formbank.logic.statistics import aggregate, form_statistics, project_to_labels
from formbank.logic.submission_codec import UNKNOWN_OPTION


def _submit(form_id, answers):
    return create_submission(form_id=form_id, submission_data=answers)


def test_concrete_rename_scenario(priority_question, priority_form):
    """Verifies counts recorded under an old label merge into the current label."""
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    first = _submit(fid, {qid: "High"})
    _submit(fid, {qid: "High"})
    _submit(fid, {qid: "Low"})

    rename_option(qid, "high", "Critical")
    _submit(fid, {qid: "Critical"})

    stats = aggregate(fid, qid)
    assert stats["distribution"] == {"Critical": 3, "Low": 1}
    assert stats["total_answers"] == 4
    assert stats["key_distribution"] == {"high": 3, "low": 1}

    fetched = get_submission(first["submission_id"], include_raw=True)
    assert fetched["submission_data"] == {qid: "Critical"}
    assert fetched["raw_data"] == {qid: "high"}


def test_rename_does_not_split_buckets(priority_question, priority_form):
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    _submit(fid, {qid: "High"})
    rename_option(qid, "high", "Critical")
    _submit(fid, {qid: "Critical"})

    assert aggregate(fid, qid)["distribution"] == {"Critical": 2}


def test_converged_labels_are_summed(priority_question, priority_form):
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    _submit(fid, {qid: "High"})
    _submit(fid, {qid: "Low"})
    _submit(fid, {qid: "Low"})

    rename_option(qid, "low", "High")

    stats = aggregate(fid, qid)
    assert stats["distribution"] == {"High": 3}
    assert stats["key_distribution"] == {"high": 1, "low": 2}


def test_multiselect_counts_each_selected_key():
    q = create_question(question_text="Hobbies", question_type="multiselect", options=["Art", "Music", "Sport"])
    qid = q["question_id"]
    fid = create_form(title="Hobbies", questions=[qid])["form_id"]
    _submit(fid, {qid: ["Art", "Music"]})
    _submit(fid, {qid: ["Music"]})

    stats = aggregate(fid, qid)
    assert stats["distribution"] == {"Art": 1, "Music": 2}
    assert stats["total_answers"] == 2


def test_removed_option_counts_under_unknown_marker(priority_question, priority_form):
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    _submit(fid, {qid: "Low"})
    _submit(fid, {qid: "High"})
    remove_option(qid, "low")

    assert aggregate(fid, qid)["distribution"] == {"High": 1, UNKNOWN_OPTION: 1}


def test_aggregate_is_deterministic_and_batch_size_independent(priority_question, priority_form):
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    for label in ["High", "Low", "High", "High", "Low"]:
        _submit(fid, {qid: label})

    first = aggregate(fid, qid)
    assert aggregate(fid, qid) == first
    assert aggregate(fid, qid, batch_size=2) == first
    assert aggregate(fid, qid, batch_size=1) == first


def test_aggregate_unknown_question_or_form(priority_question, priority_form):
    other = create_question(question_text="Other", question_type="text")
    with pytest.raises(NotFound):
        aggregate(priority_form["form_id"], other["question_id"])
    with pytest.raises(NotFound):
        aggregate("FORM-404", priority_question["question_id"])


def test_empty_form_has_empty_distribution(priority_question, priority_form):
    stats = aggregate(priority_form["form_id"], priority_question["question_id"])
    assert stats == {
        "question_id": priority_question["question_id"],
        "total_answers": 0,
        "distribution": {},
        "key_distribution": {},
    }


def test_form_statistics_covers_every_question(priority_question):
    name = create_question(question_text="Name", question_type="text")
    fid = create_form(
        title="Mixed",
        questions=[priority_question["question_id"], {"question_id": name["question_id"], "required": False}],
    )["form_id"]
    _submit(fid, {priority_question["question_id"]: "High", name["question_id"]: "Ada"})
    _submit(fid, {priority_question["question_id"]: "High"})

    stats = form_statistics(fid)
    assert stats["form_id"] == fid
    assert stats["total_submissions"] == 2
    choice = stats["questions"][priority_question["question_id"]]
    assert choice["distribution"] == {"High": 2}
    assert choice["unique_answer_count"] == 1
    assert choice["empty_answers"] == 0
    text = stats["questions"][name["question_id"]]
    assert text["question_type"] == "text"
    assert text["total_answers"] == 1
    assert text["empty_answers"] == 1
    assert text["distribution"] == {"Ada": 1}


def test_statistics_during_concurrent_submissions(priority_question, priority_form):
    """Committed submissions are counted exactly once while writers are active."""
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    for _ in range(10):
        _submit(fid, {qid: "Low"})

    def write(i):
        _submit(fid, {qid: "High"})

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(write, i) for i in range(20)]
        snapshot = aggregate(fid, qid)
        for f in futures:
            f.result()

    assert snapshot["distribution"]["Low"] == 10
    assert 10 <= snapshot["total_answers"] <= 30
    final = aggregate(fid, qid)
    assert final["distribution"] == {"High": 20, "Low": 10}


def test_project_to_labels_pure():
    assert project_to_labels({"a": 2, "b": 3, "c": 1}, {"a": "X", "b": "X"}) == {"X": 5, UNKNOWN_OPTION: 1}


def test_options_added_later_appear_in_statistics(priority_question, priority_form):
    qid = priority_question["question_id"]
    fid = priority_form["form_id"]
    create_options(qid, ["Medium"])
    _submit(fid, {qid: "Medium"})
    assert aggregate(fid, qid)["distribution"] == {"Medium": 1}
