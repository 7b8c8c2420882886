"""Question bank, option and label-history endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from formbank.logic import label_history, option_registry
from formbank.logic.repository_questions import (
    count_questions,
    create_question,
    delete_question,
    get_question,
    list_questions,
    set_question_active,
    update_question,
)
from formbank.models.question import (
    OptionRename,
    OptionsAdd,
    QuestionCreate,
    QuestionUpdate,
    options_to_input,
)
from formbank.routes.pagination import Page, page_params

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/questions",
    status_code=status.HTTP_201_CREATED,
    summary="Create a question in the bank",
    operation_id="createQuestion",
)
def post_question(body: QuestionCreate):
    return create_question(
        question_text=body.question_text,
        question_type=body.question_type,
        options=options_to_input(body.options),
        validation_rules=body.validation_rules,
        metadata=body.metadata,
    )


@router.get("/questions", summary="List questions", operation_id="listQuestions")
def get_questions(
    response: Response,
    question_type: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: Page = Depends(page_params),
):
    items = list_questions(
        question_type=question_type, is_active=is_active, limit=page.limit, offset=page.offset
    )
    total = count_questions(question_type=question_type, is_active=is_active)
    return page.envelope(response, items, total)


@router.get("/questions/{question_id}", summary="Get a question", operation_id="getQuestion")
def get_question_route(question_id: str):
    return get_question(question_id)


@router.patch("/questions/{question_id}", summary="Update a question", operation_id="updateQuestion")
def patch_question(question_id: str, body: QuestionUpdate):
    # Only fields present in the body are touched; an explicit null clears validation_rules
    return update_question(question_id, **body.model_dump(exclude_unset=True))


@router.delete("/questions/{question_id}", summary="Delete a question", operation_id="deleteQuestion")
def delete_question_route(question_id: str):
    return delete_question(question_id)


@router.post("/questions/{question_id}/activate", summary="Activate a question", operation_id="activateQuestion")
def activate_question(question_id: str):
    return set_question_active(question_id, True)


@router.post(
    "/questions/{question_id}/deactivate", summary="Deactivate a question", operation_id="deactivateQuestion"
)
def deactivate_question(question_id: str):
    return set_question_active(question_id, False)


@router.get("/questions/{question_id}/options", summary="List current options", operation_id="listOptions")
def get_options(question_id: str):
    return {"question_id": question_id, "options": option_registry.get_options(question_id)}


@router.post(
    "/questions/{question_id}/options",
    status_code=status.HTTP_201_CREATED,
    summary="Append options to a choice question",
    operation_id="addOptions",
)
def add_options(question_id: str, body: OptionsAdd):
    created = option_registry.add_options(question_id, options_to_input(body.options) or [])
    return {"question_id": question_id, "options": created}


@router.patch(
    "/questions/{question_id}/options/{key}",
    summary="Rename an option label; the key never changes",
    operation_id="renameOption",
)
def rename_option(question_id: str, key: str, body: OptionRename):
    return option_registry.rename_option(
        question_id, key, body.label, actor=body.changed_by, reason=body.change_reason
    )


@router.delete("/questions/{question_id}/options/{key}", summary="Remove an option", operation_id="removeOption")
def remove_option(question_id: str, key: str):
    return option_registry.remove_option(question_id, key)


@router.get(
    "/questions/{question_id}/options/{key}/history",
    summary="Label history of one option",
    operation_id="getOptionHistory",
)
def get_option_history(question_id: str, key: str, page: Page = Depends(page_params)):
    records = label_history.history(question_id, key, limit=page.limit, offset=page.offset)
    return {
        "question_id": question_id,
        "option_key": key,
        "history": records,
        "limit": page.limit,
        "offset": page.offset,
    }


@router.get("/questions/{question_id}/history", summary="Label history of a question", operation_id="getQuestionHistory")
def get_question_history(question_id: str, page: Page = Depends(page_params)):
    records = label_history.history(question_id, limit=page.limit, offset=page.offset)
    return {"question_id": question_id, "history": records, "limit": page.limit, "offset": page.offset}


__all__ = ["router"]
