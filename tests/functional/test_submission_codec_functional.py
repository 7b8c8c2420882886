"""Functional tests for label/key encoding of submission answers."""

from __future__ import annotations

import pytest

from formbank.logic.errors import ValidationError
from formbank.logic.option_registry import rename_option
from formbank.logic.repository_forms import create_form
from formbank.logic.repository_questions import create_question, get_question
from formbank.logic.repository_submissions import count_submissions, create_submission, get_submission
from formbank.logic.submission_codec import UNKNOWN_OPTION, decode, encode, stored_keys


def _question(qtype="select", options=None, rules=None):
    return {
        "question_id": "Q-001",
        "question_type": qtype,
        "options": options,
        "validation_rules": rules,
    }


COLOURS = [
    {"key": "red", "label": "Red", "position": 1},
    {"key": "blue", "label": "Blue", "position": 2},
    {"key": "green", "label": "Green", "position": 3},
]


def test_encode_decode_single_choice():
    q = _question(options=COLOURS)
    assert encode(q, "Blue") == "blue"
    assert decode(q, "blue") == "Blue"


def test_encode_multi_choice_preserves_order():
    q = _question("multiselect", COLOURS)
    assert encode(q, ["Green", "Red"]) == ["green", "red"]
    assert decode(q, ["green", "red"]) == ["Green", "Red"]
    assert stored_keys(q, ["green", "red"]) == ["green", "red"]


def test_unknown_label_is_rejected_with_label_named():
    q = _question(options=COLOURS)
    with pytest.raises(ValidationError) as exc:
        encode(q, "Purple")
    assert "Purple" in exc.value.message


def test_key_pass_through_and_label_precedence():
    q = _question(options=[{"key": "a", "label": "b", "position": 1}, {"key": "b", "label": "Other", "position": 2}])
    # "b" is a current label, so it wins over the key "b"
    assert encode(q, "b") == "a"
    assert encode(q, "a") == "a"


def test_multi_choice_rejects_duplicates_and_non_lists():
    q = _question("checkbox", COLOURS)
    with pytest.raises(ValidationError):
        encode(q, ["Red", "Red"])
    with pytest.raises(ValidationError):
        encode(q, ["Red", "red"])
    with pytest.raises(ValidationError):
        encode(q, "Red")


def test_multi_choice_selection_bounds():
    q = _question("multiselect", COLOURS, {"min_selections": 2, "max_selections": 2})
    with pytest.raises(ValidationError):
        encode(q, ["Red"])
    with pytest.raises(ValidationError):
        encode(q, ["Red", "Blue", "Green"])
    assert encode(q, ["Red", "Blue"]) == ["red", "blue"]


def test_removed_option_decodes_to_marker():
    q = _question(options=COLOURS[:1])
    assert decode(q, "blue") == UNKNOWN_OPTION
    assert decode(_question("multiselect", COLOURS[:1]), ["red", "blue"]) == ["Red", UNKNOWN_OPTION]


@pytest.mark.parametrize(
    "qtype, rules, raw, stored",
    [
        ("number", {"min": 0, "max": 10}, 4.0, 4),
        ("rating", None, 5, 5),
        ("boolean", None, "true", True),
        ("email", None, "a@example.com", "a@example.com"),
        ("date", None, "2024-02-29", "2024-02-29"),
        ("text", {"max_length": 5}, "short", "short"),
    ],
)
def test_typed_values_are_coerced(qtype, rules, raw, stored):
    assert encode(_question(qtype, None, rules), raw) == stored


@pytest.mark.parametrize(
    "qtype, rules, raw",
    [
        ("number", {"max": 10}, 11),
        ("number", None, True),
        ("rating", None, 6),
        ("email", None, "not-an-email"),
        ("phone", None, "call me"),
        ("date", None, "31/12/2024"),
        ("text", {"max_length": 3}, "too long"),
    ],
)
def test_invalid_typed_values_are_rejected(qtype, rules, raw):
    with pytest.raises(ValidationError):
        encode(_question(qtype, None, rules), raw)


def test_unknown_label_persists_nothing(priority_question, priority_form):
    """Verifies a submission with an unknown label fails and stores no row."""
    qid = priority_question["question_id"]
    with pytest.raises(ValidationError) as exc:
        create_submission(form_id=priority_form["form_id"], submission_data={qid: "Medium"})
    assert "Medium" in exc.value.message
    assert count_submissions() == 0


def test_stored_keys_survive_rename(priority_question, priority_form):
    qid = priority_question["question_id"]
    created = create_submission(form_id=priority_form["form_id"], submission_data={qid: "High"})
    assert created["raw_data"] == {qid: "high"}

    rename_option(qid, "high", "Critical")

    fetched = get_submission(created["submission_id"], include_raw=True)
    assert fetched["submission_data"] == {qid: "Critical"}
    assert fetched["raw_data"] == {qid: "high"}


def test_decode_after_encode_returns_current_labels():
    q = create_question(
        question_text="Pick colours", question_type="multiselect", options=["Red", "Blue", "Green"]
    )
    qid = q["question_id"]
    form = create_form(title="Colours", questions=[qid])
    sub = create_submission(form_id=form["form_id"], submission_data={qid: ["Blue", "Red"]})
    rename_option(qid, "blue", "Navy")
    assert decode(get_question(qid), sub["raw_data"][qid]) == ["Navy", "Red"]


@pytest.mark.parametrize(
    "qtype, options, rules, raw",
    [
        ("number", None, {"min": "1"}, 5),
        ("rating", None, {"max": [5]}, 3),
        ("text", None, {"min_length": "two"}, "abc"),
        ("textarea", None, {"max_length": 2.5}, "abc"),
        ("multiselect", COLOURS, {"min_selections": "two"}, ["Red"]),
        ("checkbox", COLOURS, {"max_selections": True}, ["Red"]),
    ],
)
def test_malformed_stored_rules_raise_validation_error(qtype, options, rules, raw):
    with pytest.raises(ValidationError) as exc:
        encode(_question(qtype, options, rules), raw)
    assert exc.value.details["question_id"] == "Q-001"
