"""Input validation shared by the CLI and the dashboard.

Pure functions with no FastAPI or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_ACTOR_LENGTH = 64


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Reject "\nbad" rather than letting strip() absorb the newline.
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def split_tags(raw: str | list[str] | tuple[str, ...] | None) -> list[str] | None:
    """Accept ``"a, b"`` or ``["a", "b"]``; ``None`` passes through (no change)."""
    if raw is None:
        return None
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return [p.strip() for p in parts if isinstance(p, str) and p.strip()]


def parse_drop_target(raw: Any) -> tuple[str | None, str | None]:
    """Validate a drop target from a request body: a non-empty string or null.

    Returns (target, None) or (None, error_message).
    """
    if raw is None:
        return (None, None)
    if not isinstance(raw, str) or not raw.strip():
        return (None, "drop target must be a non-empty string or null")
    return (raw.strip(), None)
