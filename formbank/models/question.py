"""Pydantic request models for question bank endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class OptionInput(BaseModel):
    key: Optional[str] = None
    label: str


# Options arrive as plain labels or as {key, label} objects
OptionsPayload = Union[List[str], List[OptionInput]]


class QuestionCreate(BaseModel):
    question_text: str
    question_type: str
    options: Optional[OptionsPayload] = None
    validation_rules: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class QuestionUpdate(BaseModel):
    # question_type is deliberately absent; it cannot change after creation
    model_config = ConfigDict(extra="forbid")

    question_text: Optional[str] = None
    validation_rules: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class OptionsAdd(BaseModel):
    options: OptionsPayload


class OptionRename(BaseModel):
    label: str
    changed_by: Optional[str] = None
    change_reason: Optional[str] = None


def options_to_input(options: Optional[OptionsPayload]) -> Optional[List[Any]]:
    """Convert validated option payloads back to the plain shapes the registry takes."""
    if options is None:
        return None
    return [o.model_dump(exclude_none=True) if isinstance(o, OptionInput) else o for o in options]


__all__ = [
    "OptionInput",
    "QuestionCreate",
    "QuestionUpdate",
    "OptionsAdd",
    "OptionRename",
    "options_to_input",
]
