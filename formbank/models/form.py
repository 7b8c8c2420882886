"""Pydantic request models for form endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel


class FormQuestionRef(BaseModel):
    question_id: str
    required: bool = False


class FormCreate(BaseModel):
    title: str
    description: Optional[str] = None
    questions: List[Union[str, FormQuestionRef]]
    metadata: Optional[Dict[str, Any]] = None


class FormUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[Union[str, FormQuestionRef]]] = None
    metadata: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


def questions_to_input(questions: Optional[List[Union[str, FormQuestionRef]]]) -> Optional[List[Any]]:
    if questions is None:
        return None
    return [q.model_dump() if isinstance(q, FormQuestionRef) else q for q in questions]


__all__ = ["FormQuestionRef", "FormCreate", "FormUpdate", "questions_to_input"]
