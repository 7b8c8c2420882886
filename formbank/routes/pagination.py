"""Shared pagination parameters for list endpoints."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Query, Response

from formbank.config import get_config
from formbank.logic.validation import validate_pagination


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int

    def envelope(self, response: Response, items: list, total: int) -> dict:
        response.headers["X-Total-Count"] = str(total)
        return {"items": items, "total": total, "limit": self.limit, "offset": self.offset}


def page_params(
    limit: int = Query(100, description="Maximum number of items to return"),
    offset: int = Query(0, description="Number of items to skip"),
) -> Page:
    lim, off = validate_pagination(limit, offset, get_config().pagination.max_limit)
    return Page(lim, off)


__all__ = ["Page", "page_params"]
