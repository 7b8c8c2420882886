"""JSON (de)serialisation for TEXT-backed document columns.

Documents are stored as JSON text so the same SQL runs on SQLite and
PostgreSQL.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from formbank.logic.errors import Fatal

logger = logging.getLogger(__name__)


def dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def loads(text: Any, default: Any = None) -> Any:
    if text is None or text == "":
        return default
    if isinstance(text, (dict, list)):
        # Drivers with native JSON support hand back decoded values
        return text
    try:
        return json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.error("json_column_decode_failed preview=%r", str(text)[:80], exc_info=True)
        raise Fatal("Stored document is not valid JSON") from exc


__all__ = ["dumps", "loads"]
