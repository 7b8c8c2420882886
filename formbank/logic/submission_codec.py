"""Label/key translation for submission answers.

``encode`` turns the label-based value a client submits into what is
stored: option keys for choice questions, a validated typed value for the
rest. ``decode`` turns stored keys back into the question's *current* labels.
Both are pure functions of the question document (with its options) and the
value, so the caller decides which registry snapshot they run against.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from formbank.logic.errors import ValidationError
from formbank.logic.option_registry import label_in, resolve_in
from formbank.logic.validation import coerce_typed_value, rule_count
from formbank.models.question_type import is_choice, is_multi_choice

logger = logging.getLogger(__name__)

# Display value for a stored key whose option no longer exists
UNKNOWN_OPTION = "[unknown option]"


def _resolve_one(question: Dict[str, Any], value: Any) -> str:
    qid = question["question_id"]
    if not isinstance(value, str):
        raise ValidationError(
            f"Answer for question '{qid}' must be an option label",
            {"question_id": qid, "value": value},
        )
    options = question.get("options") or []
    key = resolve_in(options, value)
    if key is None and label_in(options, value) is not None:
        # Clients holding keys may submit them directly; labels win on overlap
        key = value
    if key is None:
        raise ValidationError(
            f"Unknown option '{value}' for question '{qid}'",
            {"question_id": qid, "label": value},
        )
    return key


def encode(question: Dict[str, Any], raw_value: Any) -> Any:
    """Return the storage form of ``raw_value`` for ``question``.

    Raises ValidationError naming the first offending label or value.
    """
    qtype = question["question_type"]
    qid = question["question_id"]
    rules = question.get("validation_rules") or {}

    if not is_choice(qtype):
        return coerce_typed_value(qtype, raw_value, rules, qid)

    if not is_multi_choice(qtype):
        return _resolve_one(question, raw_value)

    if not isinstance(raw_value, list):
        raise ValidationError(
            f"Answer for question '{qid}' must be a list of option labels",
            {"question_id": qid, "value": raw_value},
        )
    seen: set = set()
    for label in raw_value:
        if isinstance(label, str) and label in seen:
            raise ValidationError(
                f"Duplicate selection '{label}' for question '{qid}'",
                {"question_id": qid, "label": label},
            )
        if isinstance(label, str):
            seen.add(label)

    keys: List[str] = []
    for label in raw_value:
        key = _resolve_one(question, label)
        if key in keys:
            raise ValidationError(
                f"Option '{key}' selected more than once for question '{qid}'",
                {"question_id": qid, "key": key},
            )
        keys.append(key)

    lo = rule_count(rules, "min_selections", qid)
    hi = rule_count(rules, "max_selections", qid)
    if lo is not None and len(keys) < lo:
        raise ValidationError(f"Select at least {lo} options for question '{qid}'")
    if hi is not None and len(keys) > hi:
        raise ValidationError(f"Select at most {hi} options for question '{qid}'")
    return keys


def decode(question: Dict[str, Any], encoded: Any) -> Any:
    """Return the display form of a stored value using current labels.

    Keys without a current option decode to ``UNKNOWN_OPTION`` so historical
    submissions stay readable after options are removed.
    """
    qtype = question["question_type"]
    if not is_choice(qtype) or encoded is None:
        return encoded
    options = question.get("options") or []

    def _label(key: Any) -> str:
        label = label_in(options, str(key))
        if label is None:
            logger.info("decode_unknown_option qid=%s key=%s", question["question_id"], key)
            return UNKNOWN_OPTION
        return label

    if isinstance(encoded, list):
        return [_label(k) for k in encoded]
    return _label(encoded)


def stored_keys(question: Dict[str, Any], encoded: Any) -> List[str]:
    """Return the option keys contained in a stored choice value."""
    if encoded is None or not is_choice(question["question_type"]):
        return []
    if isinstance(encoded, list):
        return [str(k) for k in encoded]
    return [str(encoded)]


__all__ = ["UNKNOWN_OPTION", "encode", "decode", "stored_keys"]
