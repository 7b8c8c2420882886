"""APIRouter registration for the forms service."""

from __future__ import annotations

from fastapi import APIRouter

from formbank.routes.events import router as events_router
from formbank.routes.forms import router as forms_router
from formbank.routes.questions import router as questions_router
from formbank.routes.submissions import router as submissions_router

api_router = APIRouter()
api_router.include_router(questions_router, tags=["Questions", "Options"])
api_router.include_router(forms_router, tags=["Forms", "Statistics"])
api_router.include_router(submissions_router, tags=["Submissions"])
api_router.include_router(events_router, tags=["Events"])

__all__ = ["api_router"]
