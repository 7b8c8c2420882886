"""Domain events feed.

Exposes the in-memory buffer of recent option-renamed and submission-created
events so a surrounding application (and the test suite) can observe them.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from formbank.logic.events import get_buffered_events

router = APIRouter()


@router.get("/events", summary="Recently published domain events", operation_id="getEvents")
def get_events(clear: bool = Query(False)):
    return {"events": get_buffered_events(clear=clear)}


__all__ = ["router"]
