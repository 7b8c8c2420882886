"""Form endpoints, including per-form submissions and statistics."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from formbank.logic.repository_forms import (
    count_forms,
    create_form,
    delete_form,
    get_form,
    list_forms,
    set_form_active,
    update_form,
)
from formbank.logic.repository_submissions import count_submissions, list_submissions
from formbank.logic.statistics import aggregate, form_statistics
from formbank.models.form import FormCreate, FormUpdate, questions_to_input
from formbank.routes.pagination import Page, page_params

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/forms", status_code=status.HTTP_201_CREATED, summary="Create a form", operation_id="createForm")
def post_form(body: FormCreate):
    return create_form(
        title=body.title,
        description=body.description,
        questions=questions_to_input(body.questions) or [],
        metadata=body.metadata,
    )


@router.get("/forms", summary="List forms", operation_id="listForms")
def get_forms(
    response: Response,
    is_active: Optional[bool] = Query(None),
    page: Page = Depends(page_params),
):
    items = list_forms(is_active=is_active, limit=page.limit, offset=page.offset)
    return page.envelope(response, items, count_forms(is_active=is_active))


@router.get("/forms/{form_id}", summary="Get a form", operation_id="getForm")
def get_form_route(form_id: str):
    return get_form(form_id)


@router.patch("/forms/{form_id}", summary="Update a form", operation_id="updateForm")
def patch_form(form_id: str, body: FormUpdate):
    changes = body.model_dump(exclude_unset=True)
    if "questions" in changes:
        changes["questions"] = questions_to_input(body.questions)
    return update_form(form_id, **changes)


@router.delete("/forms/{form_id}", summary="Delete a form and its submissions", operation_id="deleteForm")
def delete_form_route(form_id: str):
    return delete_form(form_id)


@router.post("/forms/{form_id}/activate", summary="Activate a form", operation_id="activateForm")
def activate_form(form_id: str):
    return set_form_active(form_id, True)


@router.post("/forms/{form_id}/deactivate", summary="Deactivate a form", operation_id="deactivateForm")
def deactivate_form(form_id: str):
    return set_form_active(form_id, False)


@router.get("/forms/{form_id}/submissions", summary="List a form's submissions", operation_id="listFormSubmissions")
def get_form_submissions(
    form_id: str,
    response: Response,
    include_raw: bool = Query(False),
    page: Page = Depends(page_params),
):
    items = list_submissions(form_id, limit=page.limit, offset=page.offset, include_raw=include_raw)
    return page.envelope(response, items, count_submissions(form_id=form_id))


@router.get("/forms/{form_id}/statistics", summary="Statistics for every question on a form", operation_id="getFormStatistics")
def get_form_statistics(form_id: str):
    return form_statistics(form_id)


@router.get(
    "/forms/{form_id}/questions/{question_id}/statistics",
    summary="Answer distribution for one question, by current label",
    operation_id="getQuestionStatistics",
)
def get_question_statistics(form_id: str, question_id: str):
    return aggregate(form_id, question_id)


__all__ = ["router"]
