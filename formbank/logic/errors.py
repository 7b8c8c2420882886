"""Domain error taxonomy.

Every component raises one of four kinds and never a bare storage error:

- ``ValidationError``: malformed input, unresolvable label, type mismatch.
- ``NotFound``: unknown question, option, form or submission.
- ``Conflict``: a uniqueness or contention failure detected at commit; the
  caller may retry, possibly with corrected input.
- ``Fatal``: configuration or storage failures that adjusting input cannot fix.

The HTTP layer maps these to problem+json responses.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

logger = logging.getLogger(__name__)


class FormbankError(Exception):
    code = "FORMBANK_ERROR"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(FormbankError, ValueError):
    code = "VALIDATION_ERROR"


class NotFound(FormbankError, LookupError):
    code = "NOT_FOUND"

    @classmethod
    def resource(cls, kind: str, ident: str) -> "NotFound":
        return cls(f"{kind} with id '{ident}' not found", {"resource": kind, "id": ident})


class Conflict(FormbankError):
    code = "CONFLICT"


class Fatal(FormbankError):
    code = "FATAL"


def _is_lock_contention(exc: OperationalError) -> bool:
    msg = str(getattr(exc, "orig", exc)).lower()
    return "database is locked" in msg or "database table is locked" in msg or "deadlock" in msg


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy exceptions raised inside the block into domain errors.

    Domain errors raised inside the block propagate untouched.
    """
    try:
        yield
    except FormbankError:
        raise
    except IntegrityError as exc:
        logger.warning("storage_conflict op=%s error=%s", operation, exc.orig)
        raise Conflict(f"{operation} conflicts with concurrent or existing data") from exc
    except OperationalError as exc:
        if _is_lock_contention(exc):
            logger.warning("storage_contention op=%s error=%s", operation, exc.orig)
            raise Conflict(f"{operation} lost a race with a concurrent writer; retry") from exc
        logger.error("storage_failure op=%s", operation, exc_info=True)
        raise Fatal(f"{operation} failed: storage unavailable") from exc
    except SQLAlchemyError as exc:
        logger.error("storage_failure op=%s", operation, exc_info=True)
        raise Fatal(f"{operation} failed: storage error") from exc


__all__ = [
    "FormbankError",
    "ValidationError",
    "NotFound",
    "Conflict",
    "Fatal",
    "storage_errors",
]
