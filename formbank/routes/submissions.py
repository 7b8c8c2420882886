"""Submission endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status

from formbank.logic.repository_submissions import (
    create_submission,
    delete_submission,
    get_submission,
    update_submission_metadata,
)
from formbank.models.submission import SubmissionCreate, SubmissionMetadataUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/submissions",
    status_code=status.HTTP_201_CREATED,
    summary="Submit answers to a form using option labels",
    operation_id="createSubmission",
)
def post_submission(body: SubmissionCreate):
    return create_submission(
        form_id=body.form_id, submission_data=body.submission_data, metadata=body.metadata
    )


@router.get("/submissions/{submission_id}", summary="Get a submission with current labels", operation_id="getSubmission")
def get_submission_route(submission_id: str, include_raw: bool = Query(False)):
    return get_submission(submission_id, include_raw=include_raw)


@router.patch(
    "/submissions/{submission_id}", summary="Replace a submission's metadata", operation_id="updateSubmission"
)
def patch_submission(submission_id: str, body: SubmissionMetadataUpdate):
    return update_submission_metadata(submission_id, body.metadata)


@router.delete("/submissions/{submission_id}", summary="Delete a submission", operation_id="deleteSubmission")
def delete_submission_route(submission_id: str):
    return delete_submission(submission_id)


__all__ = ["router"]
