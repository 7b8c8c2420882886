"""UTC timestamp helper shared by repositories."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> str:
    """Return the current UTC time as RFC3339 with microseconds and trailing 'Z'.

    Microsecond precision keeps lexical order equal to chronological order for
    rows written in quick succession.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = ["utc_now"]
