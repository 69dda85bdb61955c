"""
Geometry helpers – unit conversion and page bucketing.

Sheet coordinates are absolute inches measured from the top-left corner of
the first page; pages are derived from a placement's Y position and are
never stored. PDF point space is inches × 72.
"""

from __future__ import annotations

import math

from reportlab.lib.units import inch, mm

from app.models.schemas import Placement, SheetSettings

# Band reserved below every mini for its text label (inches)
LABEL_MARGIN_IN = 0.2


def inches_to_points(inches: float) -> float:
    return inches * inch


def mm_to_points(millimetres: float) -> float:
    return millimetres * mm


def printable_width(settings: SheetSettings) -> float:
    return settings.page_width - settings.margin_left - settings.margin_right


def printable_height(settings: SheetSettings) -> float:
    """Usable height of one page; callers must reject settings where this is <= 0."""
    return settings.page_height - settings.margin_top - settings.margin_bottom


def page_of(placement: Placement, settings: SheetSettings) -> int:
    """
    Zero-based page a placement renders on.

    Bucketed by the bottom edge of the placement plus its label band, so an
    item straddling a page boundary lands on the page where it finishes.
    """
    bottom_y = placement.y - settings.margin_top + placement.height + LABEL_MARGIN_IN
    page = math.floor(bottom_y / printable_height(settings))
    return max(page, 0)


def page_count(placements: list[Placement], settings: SheetSettings) -> int:
    """Number of pages needed; an empty sheet still has one page."""
    if not placements:
        return 1
    return max(page_of(p, settings) for p in placements) + 1


def snap_to_grid(value: float, grid: float) -> float:
    """Round *value* to the nearest multiple of *grid* (no-op when grid <= 0)."""
    if grid <= 0:
        return value
    return round(value / grid) * grid


def clamp_to_page(
    x: float, y: float, width: float, height: float, settings: SheetSettings
) -> tuple[float, float]:
    """Keep a rectangle inside the printable area of the first page."""
    min_x = settings.margin_left
    max_x = settings.page_width - settings.margin_right - width
    min_y = settings.margin_top
    max_y = settings.page_height - settings.margin_bottom - height
    return max(min_x, min(max_x, x)), max(min_y, min(max_y, y))
