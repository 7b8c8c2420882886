"""Input validation for question bank, forms and typed answers.

Covers request-level field checks and the per-type coercion applied to
non-choice answers before they are stored. Choice answers are handled by the
submission codec.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from formbank.logic.errors import ValidationError
from formbank.models.question_type import ALL_TYPES, QuestionType

MAX_QUESTION_TEXT = 5000
MAX_TITLE = 255

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")


def validate_required_text(value: Any, field: str, max_length: int) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    cleaned = value.strip()
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} must not exceed {max_length} characters")
    return cleaned


def validate_question_type(question_type: Any) -> str:
    if question_type not in ALL_TYPES:
        raise ValidationError(
            f"Invalid question type: {question_type}", {"allowed": sorted(ALL_TYPES)}
        )
    return str(question_type)


def validate_mapping(value: Any, field: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object")
    return dict(value)


_NUMBER_RULES = ("min", "max")
_COUNT_RULES = ("min_length", "max_length", "min_selections", "max_selections")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_rules(question_type: Optional[str], rules: Any) -> Optional[Dict[str, Any]]:
    """Check the known keys of a question's ``validation_rules``.

    Bounds must be numbers and length or selection counts non-negative
    integers. Unknown keys are kept as given.
    """
    if rules is None:
        return None
    checked = validate_mapping(rules, "validation_rules")
    for name in _NUMBER_RULES:
        if name in checked and checked[name] is not None and not _is_number(checked[name]):
            raise ValidationError(
                f"validation_rules.{name} must be a number", {"question_type": question_type, "rule": name}
            )
    for name in _COUNT_RULES:
        value = checked.get(name)
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise ValidationError(
                f"validation_rules.{name} must be a non-negative integer",
                {"question_type": question_type, "rule": name},
            )
    for lo, hi in (("min", "max"), ("min_length", "max_length"), ("min_selections", "max_selections")):
        if checked.get(lo) is not None and checked.get(hi) is not None and checked[lo] > checked[hi]:
            raise ValidationError(f"validation_rules.{lo} must not exceed {hi}", {"question_type": question_type})
    return checked


def rule_count(rules: Dict[str, Any], name: str, question_id: str) -> Optional[int]:
    """Read a stored length or selection rule, rejecting values that are not integers."""
    value = rules.get(name)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"Question '{question_id}' has an invalid {name} rule", {"question_id": question_id, "rule": name}
        )
    return value


def validate_pagination(limit: Any, offset: Any, max_limit: int) -> tuple[int, int]:
    try:
        lim = int(limit)
        off = int(offset)
    except (TypeError, ValueError) as exc:
        raise ValidationError("limit and offset must be integers") from exc
    if lim < 1 or lim > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    if off < 0:
        raise ValidationError("offset must be non-negative")
    return lim, off


def is_empty_answer(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list) and len(value) == 0)


def _as_number(value: Any, question_id: str) -> int | float:
    if isinstance(value, bool):
        raise ValidationError(f"Answer for question '{question_id}' must be a number")
    if isinstance(value, (int, float)):
        num: float | int = value
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError as exc:
            raise ValidationError(f"Answer for question '{question_id}' must be a number") from exc
    else:
        raise ValidationError(f"Answer for question '{question_id}' must be a number")
    if isinstance(num, float):
        if num != num or num in (float("inf"), float("-inf")):
            raise ValidationError(f"Answer for question '{question_id}' must be a finite number")
        if num.is_integer():
            return int(num)
    return num


def _bounded(num: int | float, rules: Dict[str, Any], question_id: str, lo: Any = None, hi: Any = None) -> None:
    lo = rules.get("min", lo)
    hi = rules.get("max", hi)
    for bound in (lo, hi):
        if bound is not None and not _is_number(bound):
            raise ValidationError(
                f"Question '{question_id}' has an invalid min/max rule", {"question_id": question_id}
            )
    if lo is not None and num < lo:
        raise ValidationError(f"Answer for question '{question_id}' must be at least {lo}")
    if hi is not None and num > hi:
        raise ValidationError(f"Answer for question '{question_id}' must not exceed {hi}")


def coerce_typed_value(
    question_type: str,
    value: Any,
    rules: Optional[Dict[str, Any]] = None,
    question_id: str = "",
) -> Any:
    """Validate and normalise a non-choice answer for storage."""
    rules = rules or {}
    qt = question_type

    if qt in (QuestionType.TEXT, QuestionType.TEXTAREA):
        if not isinstance(value, str):
            raise ValidationError(f"Answer for question '{question_id}' must be a string")
        min_len = rule_count(rules, "min_length", question_id) or 0
        max_len = rule_count(rules, "max_length", question_id)
        if len(value) < min_len:
            raise ValidationError(
                f"Answer for question '{question_id}' must be at least {min_len} characters"
            )
        if max_len is not None and len(value) > max_len:
            raise ValidationError(
                f"Answer for question '{question_id}' must not exceed {max_len} characters"
            )
        return value

    if qt == QuestionType.NUMBER:
        num = _as_number(value, question_id)
        _bounded(num, rules, question_id)
        return num

    if qt == QuestionType.RATING:
        num = _as_number(value, question_id)
        if not isinstance(num, int):
            raise ValidationError(f"Answer for question '{question_id}' must be a whole number")
        _bounded(num, rules, question_id, lo=1, hi=5)
        return num

    if qt == QuestionType.EMAIL:
        if not isinstance(value, str) or not _EMAIL_RE.match(value.strip()):
            raise ValidationError(f"Invalid email format for question '{question_id}'")
        return value.strip()

    if qt == QuestionType.PHONE:
        if not isinstance(value, str) or not _PHONE_RE.match(value.strip()):
            raise ValidationError(f"Invalid phone format for question '{question_id}'")
        return value.strip()

    if qt in (QuestionType.DATE, QuestionType.TIME, QuestionType.DATETIME):
        if not isinstance(value, str):
            raise ValidationError(f"Answer for question '{question_id}' must be an ISO-8601 string")
        parser = {QuestionType.DATE: date, QuestionType.TIME: time, QuestionType.DATETIME: datetime}[qt]
        text = value.strip()
        if qt != QuestionType.DATE and text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parser.fromisoformat(text).isoformat()
        except ValueError as exc:
            raise ValidationError(f"Invalid {qt} for question '{question_id}': {value}") from exc

    if qt == QuestionType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"Answer for question '{question_id}' must be a boolean")

    if qt == QuestionType.FILE:
        if not isinstance(value, (str, dict)):
            raise ValidationError(f"Answer for question '{question_id}' must be a file reference")
        return value

    raise ValidationError(f"Question type '{qt}' does not accept typed values")


__all__ = [
    "MAX_QUESTION_TEXT",
    "MAX_TITLE",
    "validate_required_text",
    "validate_question_type",
    "validate_mapping",
    "validate_rules",
    "rule_count",
    "validate_pagination",
    "is_empty_answer",
    "coerce_typed_value",
]
