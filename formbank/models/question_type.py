"""QuestionType constants for the question bank.

A constants container instead of an Enum keeps the stored type tag a plain
string in SQL and JSON.
"""

from __future__ import annotations


class QuestionType:
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    BOOLEAN = "boolean"
    FILE = "file"
    RATING = "rating"


ALL_TYPES: frozenset[str] = frozenset(
    v for k, v in vars(QuestionType).items() if k.isupper()
)

# Types whose answers are option keys
CHOICE_TYPES: frozenset[str] = frozenset(
    {QuestionType.SELECT, QuestionType.MULTISELECT, QuestionType.RADIO, QuestionType.CHECKBOX}
)

# Choice types answered with an ordered set of keys
MULTI_CHOICE_TYPES: frozenset[str] = frozenset({QuestionType.MULTISELECT, QuestionType.CHECKBOX})


def is_choice(question_type: str) -> bool:
    return question_type in CHOICE_TYPES


def is_multi_choice(question_type: str) -> bool:
    return question_type in MULTI_CHOICE_TYPES


__all__ = [
    "QuestionType",
    "ALL_TYPES",
    "CHOICE_TYPES",
    "MULTI_CHOICE_TYPES",
    "is_choice",
    "is_multi_choice",
]
