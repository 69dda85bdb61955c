"""
Mini Service – minis, their images and the sheets they are placed on.

Sheet-level editing operations (adding a placement, auto-arrange,
combining sheets) live here so the PDF engine only ever receives
resolved, ready-to-draw placements.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional

from app.models.schemas import (
    DEFAULT_SHEET_SETTINGS,
    MiniRecord,
    MiniSheet,
    MiniUpdate,
    Placement,
    SheetCreate,
    SheetSettings,
    SheetUpdate,
)
from app.repository.sqlite_repository import MiniRepository, SheetRepository
from app.services import label_service
from app.services.geometry import clamp_to_page, printable_height, snap_to_grid
from app.services.layout_service import LayoutService
from app.services.tags import matches_any, unique_tags

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class InvalidImageError(ValueError):
    """Raised for image payloads that are not valid base64."""


def decode_image_payload(data: str, default_mime: str = "image/png") -> tuple[bytes, str]:
    """Decode a data URL or raw base64 string into ``(bytes, mime)``."""
    mime = default_mime
    payload = data
    match = _DATA_URL_RE.match(data)
    if match:
        mime, payload = match.group(1), match.group(2)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Image data is not valid base64: {e}") from e
    if not raw:
        raise InvalidImageError("Image data is empty")
    return raw, mime


def merge_settings(base: SheetSettings, partial: Optional[dict]) -> SheetSettings:
    """Overlay a partial settings dict (camelCase or snake_case keys) on *base*."""
    if not partial:
        return base
    names = {(f.alias or name): name for name, f in SheetSettings.model_fields.items()}
    data = base.model_dump()
    for key, value in partial.items():
        data[names.get(key, key)] = value
    settings = SheetSettings.model_validate(data)
    if printable_height(settings) <= 0:
        raise ValueError("Page height must exceed the top and bottom margins")
    return settings


class MiniService:
    """CRUD and editing rules for minis and mini sheets."""

    def __init__(self, minis: MiniRepository, sheets: SheetRepository):
        self._minis = minis
        self._sheets = sheets

    # ------------------------------------------------------------------
    # Minis
    # ------------------------------------------------------------------

    def list_minis(
        self, search: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[MiniRecord]:
        return [m for m in self._minis.list(search) if matches_any(m.tags, tags)]

    def get_mini(self, mini_id: str) -> Optional[MiniRecord]:
        return self._minis.get(mini_id)

    def get_minis(self, ids: list[str]) -> dict[str, MiniRecord]:
        return self._minis.get_many(ids)

    def create_mini(
        self, name: str, image_data: bytes, image_mime: str, tags: Optional[list[str]] = None
    ) -> MiniRecord:
        record = MiniRecord(
            id="",
            name=name or "Unnamed Mini",
            image_data=image_data,
            image_mime=image_mime,
            tags=unique_tags(tags or []),
        )
        return self._minis.save(record)

    def update_mini(self, mini_id: str, data: MiniUpdate) -> Optional[MiniRecord]:
        mini = self._minis.get(mini_id)
        if mini is None:
            return None
        changes = data.model_dump(exclude_none=True)
        if "tags" in changes:
            changes["tags"] = unique_tags(changes["tags"])
        return self._minis.save(mini.model_copy(update=changes))

    def delete_mini(self, mini_id: str) -> bool:
        return self._minis.delete(mini_id)

    def delete_minis(self, ids: list[str]) -> int:
        return self._minis.delete_many(ids)

    def get_tags(self) -> list[str]:
        return sorted({t for m in self._minis.list() for t in m.tags})

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def set_front_image(self, mini_id: str, data: bytes, mime: str) -> bool:
        mini = self._minis.get(mini_id)
        if mini is None:
            return False
        self._minis.save(mini.model_copy(update={"image_data": data, "image_mime": mime}))
        return True

    def set_back_image(self, mini_id: str, data: bytes, mime: str) -> bool:
        mini = self._minis.get(mini_id)
        if mini is None:
            return False
        self._minis.save(
            mini.model_copy(update={"back_image_data": data, "back_image_mime": mime})
        )
        return True

    def delete_back_image(self, mini_id: str) -> bool:
        mini = self._minis.get(mini_id)
        if mini is None:
            return False
        self._minis.save(
            mini.model_copy(update={"back_image_data": None, "back_image_mime": None})
        )
        return True

    def swap_images(self, mini_id: str) -> bool:
        """Exchange front and back images; False when there is no back image."""
        mini = self._minis.get(mini_id)
        if mini is None or not mini.back_image_data:
            return False
        self._minis.save(
            mini.model_copy(
                update={
                    "image_data": mini.back_image_data,
                    "image_mime": mini.back_image_mime,
                    "back_image_data": mini.image_data,
                    "back_image_mime": mini.image_mime,
                }
            )
        )
        return True

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def list_sheets(self) -> list[MiniSheet]:
        return self._sheets.list()

    def get_sheet(self, sheet_id: str) -> Optional[MiniSheet]:
        return self._sheets.get(sheet_id)

    def create_sheet(self, data: SheetCreate) -> MiniSheet:
        sheet = MiniSheet(
            id="",
            name=data.name,
            code=data.code,
            placements=data.placements,
            settings=merge_settings(DEFAULT_SHEET_SETTINGS, data.settings),
        )
        return self._sheets.save(sheet)

    def update_sheet(self, sheet_id: str, data: SheetUpdate) -> Optional[MiniSheet]:
        sheet = self._sheets.get(sheet_id)
        if sheet is None:
            return None
        changes: dict = {}
        if data.name is not None:
            changes["name"] = data.name
        if data.code is not None:
            changes["code"] = data.code
        if data.placements is not None:
            changes["placements"] = data.placements
        if data.settings is not None:
            changes["settings"] = merge_settings(sheet.settings, data.settings)
        return self._sheets.save(sheet.model_copy(update=changes))

    def delete_sheet(self, sheet_id: str) -> bool:
        return self._sheets.delete(sheet_id)

    def get_minis_for_sheet(self, sheet: MiniSheet) -> dict[str, MiniRecord]:
        return self._minis.get_many([p.mini_id for p in sheet.placements])

    def printable_placements(self, sheet: MiniSheet, code: Optional[str] = None) -> list[Placement]:
        """Placements with the sheet code (or an override) substituted into labels."""
        return label_service.resolve_placements(
            sheet.placements, sheet.code if code is None else code
        )

    # ------------------------------------------------------------------
    # Sheet editing
    # ------------------------------------------------------------------

    def add_placement(
        self, sheet_id: str, mini_id: str, x: float, y: float, width: float, height: float
    ) -> Optional[MiniSheet]:
        """Drop a mini onto a sheet: snap to the grid, keep it on the page, label it."""
        sheet = self._sheets.get(sheet_id)
        if sheet is None:
            return None
        settings = sheet.settings
        x = snap_to_grid(x, settings.grid_snap)
        y = snap_to_grid(y, settings.grid_snap)
        x, y = clamp_to_page(x, y, width, height, settings)

        placement = Placement(
            id=label_service.new_placement_id(),
            mini_id=mini_id,
            x=x,
            y=y,
            width=width,
            height=height,
            text=label_service.next_label(sheet.placements, mini_id),
        )
        return self._sheets.save(
            sheet.model_copy(update={"placements": sheet.placements + [placement]})
        )

    def auto_arrange(self, sheet_id: str) -> Optional[MiniSheet]:
        sheet = self._sheets.get(sheet_id)
        if sheet is None:
            return None
        arranged = LayoutService(sheet.settings).auto_arrange(sheet.placements)
        return self._sheets.save(sheet.model_copy(update={"placements": arranged}))

    def import_placements(
        self, sheet_id: str, source_id: str, placement_ids: Optional[list[str]] = None
    ) -> Optional[MiniSheet]:
        """Append copies of another sheet's placements (labels resolved with its code)."""
        sheet = self._sheets.get(sheet_id)
        source = self._sheets.get(source_id)
        if sheet is None or source is None:
            return None
        copied = label_service.import_from_sheet(source, placement_ids)
        logger.info("Importing %d placements from sheet %s into %s", len(copied), source_id, sheet_id)
        return self._sheets.save(
            sheet.model_copy(update={"placements": sheet.placements + copied})
        )

    def conglomerate(self, name: str, sheet_ids: list[str], code: str = "") -> Optional[MiniSheet]:
        """New sheet holding every placement of *sheet_ids*, auto-arranged."""
        sources = [self._sheets.get(sid) for sid in sheet_ids]
        if any(s is None for s in sources):
            return None
        placements = label_service.conglomerate(sources)
        settings = sources[0].settings if sources else DEFAULT_SHEET_SETTINGS
        arranged = LayoutService(settings).auto_arrange(placements)
        sheet = MiniSheet(id="", name=name, code=code, placements=arranged, settings=settings)
        return self._sheets.save(sheet)
