"""
Layout Service – mini sheet pagination and auto-arrange.

Buckets free-positioned placements into printed pages by their Y position
and packs a sheet's placements into compact rows across pages. Both
operations are pure: they return new objects and never mutate the input.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from app.models.schemas import Placement, SheetSettings
from app.services.geometry import (
    LABEL_MARGIN_IN,
    inches_to_points,
    page_count,
    page_of,
    printable_height,
    printable_width,
)

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^(.*?)([A-Z]+)(\d+)$")


@dataclass
class PositionedPlacement:
    """A placement with its computed page and page-relative box in points."""
    placement: Placement
    page: int
    x: float       # points from the LEFT edge
    top: float     # points from the TOP edge
    width: float
    height: float


@dataclass
class SheetPage:
    index: int
    items: list[PositionedPlacement]


def arrange_sort_key(placement: Placement) -> tuple:
    """
    Ordering used by auto-arrange.

    Taller items first (height rounded to 0.1 in so near-equal sizes share
    a row), then labels of the form ``<prefix><LETTERS><number>`` by prefix,
    letters and numeric value. Labels that do not match sort after those
    that do, lexicographically.
    """
    rounded_height = math.floor(placement.height * 10 + 0.5) / 10
    text = (placement.text or "").strip()
    match = _LABEL_RE.match(text)
    if match:
        prefix, letters, number = match.groups()
        label_key = (0, prefix, letters, int(number), "")
    else:
        label_key = (1, "", "", 0, text)
    return (-rounded_height,) + label_key


class LayoutService:
    """Page bucketing and shelf packing for one sheet's settings."""

    def __init__(self, settings: SheetSettings):
        self.settings = settings
        self.usable_width = printable_width(settings)
        self.usable_height = printable_height(settings)

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def paginate(self, placements: list[Placement]) -> list[SheetPage]:
        """
        Assign every placement to a page and translate it to page space.

        Pages run from 0 to the last occupied page, so gaps yield empty
        pages and an empty sheet yields one empty page. Within a page the
        input order is kept.
        """
        pages = [
            SheetPage(index=i, items=[])
            for i in range(page_count(placements, self.settings))
        ]

        for p in placements:
            page = page_of(p, self.settings)
            y_on_page = p.y - page * self.usable_height
            pages[page].items.append(
                PositionedPlacement(
                    placement=p,
                    page=page,
                    x=inches_to_points(p.x),
                    top=inches_to_points(y_on_page),
                    width=inches_to_points(p.width),
                    height=inches_to_points(p.height),
                )
            )

        return pages

    # ------------------------------------------------------------------
    # Auto-arrange
    # ------------------------------------------------------------------

    def auto_arrange(self, placements: list[Placement]) -> list[Placement]:
        """
        Re-position placements into left-to-right, top-to-bottom rows.

        Greedy shelf packing: a row closes when the next item would cross
        the printable width, a page closes when ``page_of`` would put the
        next item on a later page (so an item ending exactly on the
        printable height moves on). Every row reserves the label band below
        its tallest item. Sizes are preserved; the result keeps input order.
        """
        if not placements:
            return []

        order = sorted(range(len(placements)), key=lambda i: arrange_sort_key(placements[i]))
        new_positions: dict[int, tuple[float, float]] = {}

        current_x = 0.0
        current_y = 0.0
        row_height = 0.0
        current_page = 0

        for idx in order:
            p = placements[idx]
            item_height = p.height + LABEL_MARGIN_IN

            if current_x > 0 and current_x + p.width > self.usable_width:
                current_x = 0.0
                current_y += row_height
                row_height = 0.0

            y = self.settings.margin_top + current_y + current_page * self.usable_height
            if current_y > 0 and self._ends_past_page(p, y, current_page):
                current_page += 1
                current_x = 0.0
                current_y = 0.0
                row_height = 0.0
                y = self.settings.margin_top + current_page * self.usable_height

            new_positions[idx] = (self.settings.margin_left + current_x, y)
            current_x += p.width
            row_height = max(row_height, item_height)

        logger.info(
            "Auto-arranged %d placements over %d page(s)",
            len(placements), current_page + 1,
        )
        return [
            p.model_copy(update={"x": new_positions[i][0], "y": new_positions[i][1]})
            for i, p in enumerate(placements)
        ]

    def _ends_past_page(self, placement: Placement, y: float, page: int) -> bool:
        return page_of(placement.model_copy(update={"y": y}), self.settings) > page
