"""
Label Service – sheet-code markers and placement labels.

Placement labels may contain the marker ``***`` standing for the owning
sheet's short code (``"*** A1"`` prints as ``"GOB A1"`` on a sheet coded
``GOB``). The PDF engines never interpret the marker; everything that moves
placements across sheets or hands them to a renderer resolves it here first.
"""

from __future__ import annotations

import re
import string
import uuid
from typing import Iterable, Optional

from app.models.schemas import MiniSheet, Placement

CODE_MARKER = "***"

_AUTO_LABEL_RE = re.compile(r"\*\*\* ([A-Z]+)(\d+)")
_MAX_LABEL_NUMBER = 99


def new_placement_id() -> str:
    return uuid.uuid4().hex[:9]


def resolve_label(text: Optional[str], code: str) -> Optional[str]:
    """Substitute the first marker with *code*, or drop ``"*** "`` when there is no code."""
    if not text:
        return text
    if code:
        return text.replace(CODE_MARKER, code, 1)
    return text.replace(CODE_MARKER + " ", "", 1)


def resolve_placements(placements: Iterable[Placement], code: str) -> list[Placement]:
    return [
        p.model_copy(update={"text": resolve_label(p.text, code)})
        for p in placements
    ]


def next_label(placements: list[Placement], mini_id: str) -> str:
    """
    Default label for a new placement of *mini_id*.

    Each distinct mini gets a letter in order of first appearance and each
    copy the lowest number not yet used for that letter: ``*** A1``,
    ``*** A2``, ``*** B1`` …
    """
    letters = string.ascii_uppercase
    letter_for_mini: dict[str, str] = {}
    used_numbers: dict[str, set[int]] = {}

    for p in placements:
        if p.mini_id not in letter_for_mini and len(letter_for_mini) < len(letters):
            letter_for_mini[p.mini_id] = letters[len(letter_for_mini)]
        if p.text:
            match = _AUTO_LABEL_RE.search(p.text)
            if match:
                used_numbers.setdefault(match.group(1), set()).add(int(match.group(2)))

    letter = letter_for_mini.get(mini_id)
    if letter is None:
        next_idx = len(letter_for_mini)
        letter = letters[next_idx] if next_idx < len(letters) else "Z"

    taken = used_numbers.get(letter, set())
    number = 1
    while number in taken and number <= _MAX_LABEL_NUMBER:
        number += 1

    return f"{CODE_MARKER} {letter}{number}"


def import_from_sheet(
    source: MiniSheet, placement_ids: Optional[list[str]] = None
) -> list[Placement]:
    """Copy placements out of *source* with fresh ids and the source code baked in."""
    wanted = set(placement_ids) if placement_ids else None
    copied = []
    for p in source.placements:
        if wanted is not None and p.id not in wanted:
            continue
        copied.append(
            p.model_copy(
                update={
                    "id": new_placement_id(),
                    "text": resolve_label(p.text, source.code),
                }
            )
        )
    return copied


def conglomerate(sheets: Iterable[MiniSheet]) -> list[Placement]:
    """Concatenate the placements of several sheets, each resolved with its own code."""
    placements: list[Placement] = []
    for sheet in sheets:
        placements.extend(import_from_sheet(sheet))
    return placements
