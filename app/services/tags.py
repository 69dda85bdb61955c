"""Tag list helpers shared by the card, mini and stat block services."""

from __future__ import annotations

from typing import Iterable


def unique_tags(tags: Iterable[str]) -> list[str]:
    """Trimmed, non-empty tags with duplicates removed, first occurrence wins."""
    return list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))


def matches_any(item_tags: list[str], wanted: list[str] | None) -> bool:
    """True when no filter is given or *item_tags* shares a tag with *wanted*."""
    return not wanted or bool(set(wanted).intersection(item_tags))
