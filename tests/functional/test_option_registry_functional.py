"""Functional tests for the option key registry and label history ledger."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from formbank.logic import label_history, option_registry
from formbank.logic.errors import Conflict, Fatal, NotFound, ValidationError
from formbank.logic.events import OPTION_RENAMED, get_buffered_events
from formbank.logic.repository_questions import create_question, get_question


def test_question_options_get_keys_from_labels(priority_question):
    options = priority_question["options"]
    assert [(o["key"], o["label"], o["position"]) for o in options] == [("high", "High", 1), ("low", "Low", 2)]


def test_rename_keeps_key_and_records_history(priority_question):
    """Verifies a rename changes only the label and appends exactly one ledger row."""
    qid = priority_question["question_id"]

    renamed = option_registry.rename_option(qid, "high", "Critical", actor="alice", reason="clearer wording")

    assert renamed == {"key": "high", "label": "Critical", "position": 1}
    assert option_registry.current_label(qid, "high") == "Critical"
    assert option_registry.resolve(qid, "Critical") == "high"
    records = label_history.history(qid, "high")
    assert len(records) == 1
    assert records[0]["old_label"] == "High"
    assert records[0]["new_label"] == "Critical"
    assert records[0]["changed_by"] == "alice"
    assert records[0]["reason"] == "clearer wording"


def test_stale_label_no_longer_resolves(priority_question):
    qid = priority_question["question_id"]
    option_registry.rename_option(qid, "high", "Critical")
    with pytest.raises(NotFound):
        option_registry.resolve(qid, "High")


def test_history_chain_reconstructs_every_label(priority_question):
    qid = priority_question["question_id"]
    for label in ["Urgent", "Critical", "Blocker"]:
        option_registry.rename_option(qid, "high", label)

    records = label_history.history(qid, "high")
    assert [(r["old_label"], r["new_label"]) for r in records] == [
        ("High", "Urgent"),
        ("Urgent", "Critical"),
        ("Critical", "Blocker"),
    ]
    # Each record's new label is the next record's old label
    assert all(a["new_label"] == b["old_label"] for a, b in zip(records, records[1:]))
    assert records[-1]["new_label"] == option_registry.current_label(qid, "high")
    assert len(label_history.history(qid)) == 3
    assert label_history.history(qid, "low") == []


def test_failed_ledger_write_rolls_back_rename(priority_question, mocker):
    """A ledger failure leaves both the label and the ledger as they were."""
    qid = priority_question["question_id"]
    mocker.patch.object(
        label_history, "record", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    )

    with pytest.raises(Fatal):
        option_registry.rename_option(qid, "high", "Critical")

    assert option_registry.current_label(qid, "high") == "High"
    assert option_registry.resolve(qid, "High") == "high"
    assert label_history.history(qid) == []
    assert [e for e in get_buffered_events() if e["type"] == OPTION_RENAMED] == []


def test_rename_to_same_label_records_nothing(priority_question):
    qid = priority_question["question_id"]
    option_registry.rename_option(qid, "low", "Low")
    assert label_history.history(qid) == []
    assert [e for e in get_buffered_events() if e["type"] == OPTION_RENAMED] == []


def test_rename_publishes_event(priority_question):
    qid = priority_question["question_id"]
    option_registry.rename_option(qid, "low", "Minor", actor="bob")
    events = [e for e in get_buffered_events() if e["type"] == OPTION_RENAMED]
    assert len(events) == 1
    assert events[0]["payload"]["option_key"] == "low"
    assert events[0]["payload"]["new_label"] == "Minor"


def test_rename_errors(priority_question):
    qid = priority_question["question_id"]
    with pytest.raises(NotFound):
        option_registry.rename_option(qid, "missing", "X")
    with pytest.raises(NotFound):
        option_registry.rename_option("Q-999", "high", "X")
    with pytest.raises(ValidationError):
        option_registry.rename_option(qid, "high", "   ")


def test_history_of_unknown_question_is_not_found():
    with pytest.raises(NotFound):
        label_history.history("Q-404")


def test_add_options_disambiguates_against_existing(priority_question):
    qid = priority_question["question_id"]
    created = option_registry.add_options(qid, ["High", "Medium"])
    assert [(o["key"], o["label"], o["position"]) for o in created] == [("high_2", "High", 3), ("medium", "Medium", 4)]
    assert [o["key"] for o in get_question(qid)["options"]] == ["high", "low", "high_2", "medium"]


def test_add_options_rejects_non_choice_question():
    q = create_question(question_text="Name?", question_type="text")
    with pytest.raises(ValidationError):
        option_registry.create_options(q["question_id"], ["A"])


def test_remove_option_keeps_history(priority_question):
    qid = priority_question["question_id"]
    option_registry.rename_option(qid, "low", "Minor")
    removed = option_registry.remove_option(qid, "low")

    assert removed["key"] == "low"
    assert [o["key"] for o in option_registry.get_options(qid)] == ["high"]
    assert len(label_history.history(qid, "low")) == 1
    with pytest.raises(ValidationError):
        option_registry.remove_option(qid, "high")


def test_duplicate_current_labels_resolve_to_first_by_position(priority_question):
    qid = priority_question["question_id"]
    option_registry.rename_option(qid, "low", "High")
    assert option_registry.resolve(qid, "High") == "high"


def test_concurrent_option_creation_never_duplicates_keys(priority_question):
    """Concurrent writers either succeed or fail with Conflict; keys stay unique."""
    qid = priority_question["question_id"]
    start = threading.Barrier(6)

    def add(_):
        start.wait()
        for _attempt in range(20):
            try:
                return option_registry.create_options(qid, ["Extra"])[0]["key"]
            except Conflict:
                continue
        return None

    with ThreadPoolExecutor(max_workers=6) as pool:
        keys = list(pool.map(add, range(6)))

    stored = [o["key"] for o in option_registry.get_options(qid)]
    successful = [k for k in keys if k is not None]
    assert len(stored) == len(set(stored))
    assert set(successful) <= set(stored)
    assert len(set(successful)) == len(successful)


def test_concurrent_renames_leave_consistent_history(priority_question):
    qid = priority_question["question_id"]
    labels = [f"Label {i}" for i in range(8)]

    def rename(label):
        try:
            option_registry.rename_option(qid, "high", label)
            return True
        except Conflict:
            return False

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(rename, labels))

    records = label_history.history(qid, "high")
    assert len(records) == sum(results)
    current = option_registry.current_label(qid, "high")
    if records:
        assert records[-1]["new_label"] == current
        assert records[0]["old_label"] == "High"
    assert option_registry.resolve(qid, current) == "high"
