"""
Mini PDF Service – renders miniature print sheets.

Every placement becomes an image fitted into its rectangle with a thin
border and an optional haloed text label. Pages come from the placement Y
positions (see ``LayoutService.paginate``); page size is taken from the
sheet settings.
"""

from __future__ import annotations

import io
import logging
from typing import Mapping, Optional, Protocol

from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from app.models.schemas import BackMode, Placement, SheetSettings, TextPosition
from app.services.geometry import inches_to_points
from app.services.layout_service import LayoutService, PositionedPlacement

logger = logging.getLogger(__name__)

LABEL_FONT = "Helvetica-Bold"
DEFAULT_LABEL_SIZE = 8
LABEL_GAP = inches_to_points(0.05)
BORDER_COLOR = colors.HexColor("#cccccc")
BORDER_WIDTH = 0.5
HALO_OFFSET = 0.5


class MiniImages(Protocol):
    """What the renderer needs from a stored mini."""
    image_data: bytes
    back_image_data: Optional[bytes]


class MiniPdfService:
    """Generates mini sheet PDFs from placements and pre-fetched minis."""

    def generate(
        self,
        placements: list[Placement],
        settings: SheetSettings,
        minis: Mapping[str, MiniImages],
    ) -> bytes:
        """
        Render *placements* to PDF bytes.

        Placements whose mini is missing are skipped entirely. Image decode
        failures are logged and leave a border-only box.
        """
        page_width = inches_to_points(settings.page_width)
        page_height = inches_to_points(settings.page_height)
        pages = LayoutService(settings).paginate(placements)

        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(page_width, page_height))
        c.setTitle("Mini Sheet")

        for page in pages:
            for item in page.items:
                mini = minis.get(item.placement.mini_id)
                if mini is None or not mini.image_data:
                    continue
                self._draw_placement(c, item, mini, page_height)
            c.showPage()

        c.save()
        logger.info(
            "Mini sheet PDF rendered: %d placements, %d pages",
            len(placements), len(pages),
        )
        return buf.getvalue()

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def _draw_placement(
        self,
        c: canvas.Canvas,
        item: PositionedPlacement,
        mini: MiniImages,
        page_height: float,
    ) -> None:
        p = item.placement
        x = item.x
        y = page_height - item.top - item.height

        image_data = mini.image_data
        if p.back_mode == BackMode.BACK_IMAGE and mini.back_image_data:
            image_data = mini.back_image_data

        try:
            c.drawImage(
                ImageReader(io.BytesIO(image_data)),
                x, y,
                width=item.width,
                height=item.height,
                preserveAspectRatio=True,
                anchor="c",
                mask="auto",
            )
        except Exception as e:
            logger.warning("Could not draw image for mini %s: %s", p.mini_id, e)

        c.saveState()
        c.setStrokeColor(BORDER_COLOR)
        c.setLineWidth(BORDER_WIDTH)
        c.rect(x, y, item.width, item.height, stroke=1, fill=0)
        c.restoreState()

        if p.text:
            self._draw_label(c, p, item, page_height)

    def _draw_label(
        self,
        c: canvas.Canvas,
        p: Placement,
        item: PositionedPlacement,
        page_height: float,
    ) -> None:
        font_size = p.text_size or DEFAULT_LABEL_SIZE
        text_width = pdfmetrics.stringWidth(p.text, LABEL_FONT, font_size)
        text_x = item.x + item.width / 2 - text_width / 2
        text_top = self.label_top(p.text_position, item.top, item.height, font_size)
        baseline = page_height - text_top - pdfmetrics.getAscent(LABEL_FONT, font_size)

        c.saveState()
        c.setFont(LABEL_FONT, font_size)

        # White halo for legibility over any artwork
        c.setFillColor(colors.white)
        for dx in (-HALO_OFFSET, 0, HALO_OFFSET):
            for dy in (-HALO_OFFSET, 0, HALO_OFFSET):
                if dx or dy:
                    c.drawString(text_x + dx, baseline + dy, p.text)

        c.setFillColor(colors.black)
        c.drawString(text_x, baseline, p.text)
        c.restoreState()

    @staticmethod
    def label_top(
        position: TextPosition, box_top: float, box_height: float, font_size: float
    ) -> float:
        """Top of the label text, in points from the top of the page."""
        if position == TextPosition.TOP:
            return box_top - font_size - LABEL_GAP
        if position == TextPosition.CENTER:
            return box_top + box_height / 2 - font_size / 2
        return box_top + box_height + LABEL_GAP
