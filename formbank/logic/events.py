"""Domain event constants and publisher.

Defines event type constants and a publish() callable used by the rename
and submission flows. Events are logged for observability and buffered
in-memory so the surrounding application (and tests) can observe them;
subscribers registered with ``subscribe`` are called synchronously.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, List
import logging

logger = logging.getLogger(__name__)

OPTION_RENAMED = "option.renamed"
SUBMISSION_CREATED = "submission.created"

Subscriber = Callable[[str, Dict[str, Any]], None]

# Bounded in-memory buffer of recent domain events
EVENT_BUFFER: Deque[Dict[str, Any]] = deque(maxlen=1000)
_SUBSCRIBERS: List[Subscriber] = []


def subscribe(callback: Subscriber) -> None:
    """Register ``callback(event_type, payload)`` for every published event."""
    if callback not in _SUBSCRIBERS:
        _SUBSCRIBERS.append(callback)


def unsubscribe(callback: Subscriber) -> None:
    if callback in _SUBSCRIBERS:
        _SUBSCRIBERS.remove(callback)


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """Publish a domain event after the originating transaction committed.

    Subscriber failures are logged and never undo the committed write.
    """
    logger.info("event_publish type=%s payload=%s", event_type, payload)
    EVENT_BUFFER.append({"type": event_type, "payload": payload})
    for callback in list(_SUBSCRIBERS):
        try:
            callback(event_type, payload)
        except Exception:
            logger.error("event_subscriber_failed type=%s", event_type, exc_info=True)


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered domain events; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events

__all__ = [
    "OPTION_RENAMED",
    "SUBMISSION_CREATED",
    "publish",
    "subscribe",
    "unsubscribe",
    "get_buffered_events",
    "EVENT_BUFFER",
]
