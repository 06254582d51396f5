from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

COUNT_FIELDS = ("likes", "comments", "plays", "shares")


def coerce_count(value: Any) -> int:
    """Read a count that may be a plain integer or a ``[{"count": n}]`` aggregate.

    Anything else (missing, negative, malformed) reads as 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if not value:
            return 0
        head = value[0]
        if isinstance(head, Mapping):
            return coerce_count(head.get("count"))
    return 0


def normalize_voice_note_counts(note: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if note is None:
        return None
    normalized = dict(note)
    for field in COUNT_FIELDS:
        normalized[field] = coerce_count(note.get(field))
    return normalized
