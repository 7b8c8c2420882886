"""Problem+JSON utilities and global exception handlers.

Defines the RFC 7807 media type and the handler callables that turn domain
errors, request validation failures and unexpected exceptions into
application/problem+json responses.
"""

from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from formbank.logic.errors import Conflict, Fatal, FormbankError, NotFound, ValidationError

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)

# Most specific class first
STATUS_BY_ERROR: list[tuple[type[FormbankError], int, str]] = [
    (ValidationError, 422, "Validation Failed"),
    (NotFound, 404, "Not Found"),
    (Conflict, 409, "Conflict"),
    (Fatal, 500, "Internal Server Error"),
]


def status_for(exc: FormbankError) -> tuple[int, str]:
    for cls, status, title in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status, title
    return 500, "Internal Server Error"


def problem_response(status: int, title: str, detail: str | None = None, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"title": title, "status": status}
    if detail is not None:
        body["detail"] = detail
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(jsonable_encoder(body), status_code=status, media_type=PROBLEM_MEDIA_TYPE)


async def handle_domain_error(request: Request, exc: FormbankError) -> JSONResponse:  # noqa: D401
    status, title = status_for(exc)
    if status >= 500:
        logger.error("domain_error path=%s code=%s", request.url.path, exc.code, exc_info=exc)
    else:
        logger.info("domain_error path=%s code=%s status=%s", request.url.path, exc.code, status)
    return problem_response(status, title, exc.message, code=exc.code, details=exc.details)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status = int(exc.status_code or 500)
    if isinstance(exc.detail, dict):
        return JSONResponse(
            jsonable_encoder(exc.detail), status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=exc.headers
        )
    return problem_response(status, "Error", str(exc.detail) if exc.detail else None)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    logger.info("request_validation_failed path=%s errors=%s", request.url.path, len(exc.errors()))
    return problem_response(
        422,
        "Invalid Request",
        "Request validation failed",
        code="VALIDATION_ERROR",
        errors=list(exc.errors()),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return problem_response(500, "Internal Server Error", code="FATAL")


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "STATUS_BY_ERROR",
    "status_for",
    "problem_response",
    "handle_domain_error",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_unexpected_error",
]
