"""Option key derivation.

Pure helpers that turn option input (plain labels or ``{key, label}``
objects) into ``(key, label)`` pairs. Nothing here touches storage or the
clock, so the same input always yields the same keys.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple

from formbank.logic.errors import Conflict, ValidationError

KEY_SEPARATOR = "_"
MAX_SLUG_LENGTH = 60
MAX_KEY_LENGTH = 100
MAX_LABEL_LENGTH = 500
FALLBACK_SLUG = "option"

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
_EXPLICIT_KEY = re.compile(r"^[A-Za-z0-9_-]{1,%d}$" % MAX_KEY_LENGTH)


def slugify(label: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one separator, trim ends.

    >>> slugify("  High -- Priority! ")
    'high_priority'
    """
    slug = _NON_ALNUM_RUN.sub(KEY_SEPARATOR, str(label).lower()).strip(KEY_SEPARATOR)
    slug = slug[:MAX_SLUG_LENGTH].rstrip(KEY_SEPARATOR)
    return slug or FALLBACK_SLUG


def clean_label(label: Any) -> str:
    if not isinstance(label, str):
        raise ValidationError("Option label must be a string", {"label": label})
    cleaned = label.strip()
    if not cleaned:
        raise ValidationError("Option label cannot be empty")
    if len(cleaned) > MAX_LABEL_LENGTH:
        raise ValidationError(
            f"Option label cannot exceed {MAX_LABEL_LENGTH} characters", {"label": cleaned[:40]}
        )
    return cleaned


def clean_explicit_key(key: Any) -> str:
    if not isinstance(key, str):
        raise ValidationError("Option key must be a string", {"key": key})
    cleaned = key.strip()
    if not _EXPLICIT_KEY.match(cleaned):
        raise ValidationError(
            "Option key must be 1-100 characters of letters, digits, underscores or hyphens",
            {"key": cleaned},
        )
    return cleaned


def normalize_option_input(options: Iterable[Any]) -> List[Tuple[Optional[str], str]]:
    """Return ``(explicit_key or None, label)`` pairs for raw option input.

    Accepts either all strings or all mappings with ``key`` and ``label``.
    """
    items = list(options)
    if not items:
        return []
    if all(isinstance(o, str) for o in items):
        return [(None, clean_label(o)) for o in items]
    if all(isinstance(o, dict) for o in items):
        pairs: List[Tuple[Optional[str], str]] = []
        for o in items:
            if "label" not in o:
                raise ValidationError("Structured options require a label", {"option": o})
            key = o.get("key")
            pairs.append((clean_explicit_key(key) if key is not None else None, clean_label(o["label"])))
        return pairs
    raise ValidationError("Options must be either all strings or all objects with key and label")


def derive_keys(
    options: Iterable[Tuple[Optional[str], str]],
    existing_keys: Iterable[str] = (),
) -> List[Tuple[str, str]]:
    """Assign a key to every ``(explicit_key, label)`` pair.

    Explicit keys are kept verbatim; they must not repeat within the batch
    (ValidationError) or reuse an existing key (Conflict). Derived keys are
    the label slug, suffixed ``_2``, ``_3``... in occurrence order until free of
    both existing keys and the batch's other keys.
    """
    pairs = list(options)
    taken = set(existing_keys)

    explicit = [k for k, _ in pairs if k is not None]
    if len(explicit) != len(set(explicit)):
        raise ValidationError("Option keys must be unique within a question", {"keys": explicit})
    reused = sorted(set(explicit) & taken)
    if reused:
        raise Conflict("Option keys already exist on this question", {"keys": reused})
    taken.update(explicit)

    result: List[Tuple[str, str]] = []
    for key, label in pairs:
        if key is None:
            base = slugify(label)
            key = base
            n = 2
            while key in taken:
                key = f"{base}{KEY_SEPARATOR}{n}"
                n += 1
            taken.add(key)
        result.append((key, label))

    keys = [k for k, _ in result]
    if len(keys) != len(set(keys)):
        raise ValidationError("Option key derivation produced duplicates", {"keys": keys})
    return result


__all__ = [
    "slugify",
    "clean_label",
    "clean_explicit_key",
    "normalize_option_input",
    "derive_keys",
    "MAX_LABEL_LENGTH",
]
