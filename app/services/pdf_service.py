"""
PDF Service – renders double-sided index-card decks.

Produces a landscape US-Letter PDF with six card slots per page:
  - Cards padded with blanks to a multiple of six
  - A front page followed by its back page for every group of six
  - Back slots remapped so faces line up after duplex printing
  - Cut guides through the gutters on both sides
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from typing import Literal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import letter, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph

from app.models.schemas import Card, CardPdfOptions, Duplex
from app.services.geometry import inches_to_points, mm_to_points

logger = logging.getLogger(__name__)

CARDS_PER_PAGE = 6
COLUMNS = 3
ROWS = 2

PAGE_WIDTH, PAGE_HEIGHT = landscape(letter)  # 792 x 612 pt
GUTTER = inches_to_points(0.5)
SLOT_WIDTH = inches_to_points(3)
SLOT_HEIGHT = (PAGE_HEIGHT - (ROWS + 1) * GUTTER) / ROWS

# Slot receiving card i's back face (slots are row-major, 0..2 top row)
BACK_MAPPING: dict[Duplex, list[int]] = {
    Duplex.LONG: [2, 1, 0, 5, 4, 3],
    Duplex.SHORT: [3, 4, 5, 0, 1, 2],
}

# Average glyph width / line height as fractions of the font size
_CHAR_WIDTH_FACTOR = 0.6
_LINE_HEIGHT_FACTOR = 1.2


@dataclass
class SlotRect:
    """Card slot in PDF points, origin bottom-left."""
    x: float
    y: float
    width: float
    height: float


@dataclass
class DeckPage:
    side: Literal["front", "back"]
    slots: list[Card]  # index = slot position on this page


def blank_card() -> Card:
    return Card(id="_blank", title="", front_text="", back_text="")


def slot_rects() -> list[SlotRect]:
    """The six slot rectangles of a page, row-major from the top-left."""
    col_gap = (PAGE_WIDTH - COLUMNS * SLOT_WIDTH) / (COLUMNS + 1)
    rects = []
    for row in range(ROWS):
        top = PAGE_HEIGHT - GUTTER - row * (SLOT_HEIGHT + GUTTER)
        for col in range(COLUMNS):
            x = col_gap + col * (SLOT_WIDTH + col_gap)
            rects.append(SlotRect(x=x, y=top - SLOT_HEIGHT, width=SLOT_WIDTH, height=SLOT_HEIGHT))
    return rects


def estimate_text_height(text: str, width: float, font_size: float) -> float:
    """Rough wrapped height used only to centre front text vertically."""
    chars_per_line = max(1, math.floor(width / (font_size * _CHAR_WIDTH_FACTOR)))
    lines = math.ceil(len(text) / chars_per_line)
    return lines * font_size * _LINE_HEIGHT_FACTOR


class PdfService:
    """Generates card deck PDFs from resolved Card records."""

    def __init__(self):
        self._slots = slot_rects()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @staticmethod
    def pad_cards(cards: list[Card]) -> list[Card]:
        padded = list(cards)
        while len(padded) % CARDS_PER_PAGE != 0:
            padded.append(blank_card())
        return padded

    def plan_pages(self, cards: list[Card], duplex: Duplex = Duplex.LONG) -> list[DeckPage]:
        """Front/back page pairs with the back faces moved to their duplex slots."""
        mapping = BACK_MAPPING[Duplex(duplex)]
        padded = self.pad_cards(cards)
        pages: list[DeckPage] = []

        for start in range(0, len(padded), CARDS_PER_PAGE):
            group = padded[start:start + CARDS_PER_PAGE]
            back_slots = [blank_card()] * CARDS_PER_PAGE
            for i, card in enumerate(group):
                back_slots[mapping[i]] = card
            pages.append(DeckPage(side="front", slots=group))
            pages.append(DeckPage(side="back", slots=back_slots))

        return pages

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def generate(self, cards: list[Card], options: CardPdfOptions) -> bytes:
        """Render the deck and return the PDF bytes."""
        if not cards:
            raise ValueError("At least one card is required to build a deck")

        pages = self.plan_pages(cards, options.duplex)
        margin = mm_to_points(options.margin_mm)

        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
        c.setTitle("RPG Cards")

        for page in pages:
            self._draw_cut_guides(c)
            is_front = page.side == "front"
            for slot_idx, card in enumerate(page.slots):
                body = card.front_text if is_front else card.back_text
                if not card.title and not body:
                    continue
                self._draw_card(
                    c,
                    self._slots[slot_idx],
                    title=card.title or "",
                    body=body or "",
                    title_size=options.title_size,
                    body_size=options.body_size,
                    margin=margin,
                    center=is_front,
                )
            c.showPage()

        c.save()
        logger.info("Card deck PDF rendered: %d cards, %d pages", len(cards), len(pages))
        return buf.getvalue()

    def generate_preview(self, card: Card, options: CardPdfOptions) -> bytes:
        """Front/back pair for a single card that may not be saved yet."""
        return self.generate([card], options)

    def _draw_cut_guides(self, c: canvas.Canvas) -> None:
        rects = self._slots
        left = rects[0].x
        right = rects[COLUMNS - 1].x + SLOT_WIDTH
        top = rects[0].y + SLOT_HEIGHT
        bottom = rects[-1].y

        c.saveState()
        c.setStrokeColor(colors.grey)
        c.setLineWidth(0.5)
        for col in range(COLUMNS - 1):
            x = (rects[col].x + SLOT_WIDTH + rects[col + 1].x) / 2
            c.line(x, bottom, x, top)
        y = (rects[COLUMNS].y + SLOT_HEIGHT + rects[0].y) / 2
        c.line(left, y, right, y)
        c.restoreState()

    def _draw_card(
        self,
        c: canvas.Canvas,
        rect: SlotRect,
        title: str,
        body: str,
        title_size: float,
        body_size: float,
        margin: float,
        center: bool,
    ) -> None:
        c.saveState()
        c.setStrokeColor(colors.black)
        c.setLineWidth(2)
        c.rect(rect.x, rect.y, rect.width, rect.height, stroke=1, fill=0)
        c.restoreState()

        inner_x = rect.x + margin
        inner_top = rect.y + rect.height - margin
        inner_width = rect.width - 2 * margin
        inner_height = rect.height - 2 * margin

        title_text = title.upper()
        if title_text:
            title_style = ParagraphStyle(
                "CardTitle",
                fontName="Helvetica-Bold",
                fontSize=title_size,
                leading=title_size * _LINE_HEIGHT_FACTOR,
                alignment=TA_LEFT,
            )
            self._draw_paragraph(c, title_text, title_style, inner_x, inner_top, inner_width, title_style.leading)

        body_text = body.upper()
        if not body_text:
            return

        title_block = title_size * _LINE_HEIGHT_FACTOR + margin if title_text else 0
        body_top = inner_top - title_block
        available = inner_height - title_block

        # Vertical centring uses the estimate; the real wrap comes from Paragraph
        if center:
            estimated = estimate_text_height(body_text, inner_width, body_size)
            body_top -= max(0.0, (available - estimated) / 2)

        body_style = ParagraphStyle(
            "CardBody",
            fontName="Helvetica",
            fontSize=body_size,
            leading=body_size * _LINE_HEIGHT_FACTOR,
            alignment=TA_CENTER if center else TA_LEFT,
        )
        self._draw_paragraph(c, body_text, body_style, inner_x, body_top, inner_width, available)

    @staticmethod
    def _draw_paragraph(
        c: canvas.Canvas,
        text: str,
        style: ParagraphStyle,
        x: float,
        top: float,
        width: float,
        max_height: float,
    ) -> None:
        """Wrap *text* into *width* and draw it hanging from *top*, cut at *max_height*."""
        para = Paragraph(escape(text).replace("\n", "<br/>"), style)
        _, height = para.wrap(width, max_height)
        if height > max_height:
            parts = para.split(width, max_height)
            if not parts:
                return
            para = parts[0]
            _, height = para.wrap(width, max_height)
        para.drawOn(c, x, top - height)
