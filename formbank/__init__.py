"""Forms and question bank service.

This package exposes a FastAPI application factory. Business logic lives in
`formbank/logic/` (option keys, label history, submission codec, statistics,
ID allocation and repositories) and route handlers in `formbank/routes/`.
"""

from __future__ import annotations

from formbank.main import create_app

__all__ = ["create_app"]
