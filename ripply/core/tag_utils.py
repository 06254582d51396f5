from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def normalize_tag_name(raw: str | None) -> str | None:
    if not isinstance(raw, str):
        return None
    value = raw.strip().lstrip("#").strip().lower()
    if not value:
        return None
    return value


def flatten_tags(raw: Any) -> list[str]:
    """Accept either plain tag names or ``{"tag_name": ...}`` rows and return the names."""
    if not raw or isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        return []
    tags: list[str] = []
    for item in raw:
        if isinstance(item, Mapping):
            item = item.get("tag_name")
        if isinstance(item, str) and item:
            tags.append(item)
    return tags


def unique_tags(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result
