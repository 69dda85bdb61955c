"""
StatBlock Service – monster/NPC stat blocks and their portrait images.

Portraits can be uploaded, pasted as base64 or fetched from a URL. Each
portrait carries display preferences (vertical offset and scale) that the
UI uses to crop it; they are clamped here rather than trusted.
"""

from __future__ import annotations

import logging
import math
from typing import Optional
from urllib.parse import urlparse

import requests

from app.models.schemas import (
    ImageSettings,
    StatBlock,
    StatBlockCreate,
    StatBlockImage,
    StatBlockUpdate,
)
from app.repository.sqlite_repository import StatBlockRepository
from app.services.tags import matches_any, unique_tags

logger = logging.getLogger(__name__)

MIN_IMAGE_SCALE = 0.1
MAX_IMAGE_SCALE = 4.0
URL_FETCH_TIMEOUT = 25


class ImageFetchError(ValueError):
    """Raised when a portrait URL cannot be downloaded."""


def download_image(url: str, timeout: int = URL_FETCH_TIMEOUT) -> tuple[bytes, str]:
    """Fetch *url* and return ``(bytes, mime)``."""
    try:
        resp = requests.get(url, timeout=timeout, headers={"User-Agent": "print-studio/1.0"})
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ImageFetchError(f"Failed to fetch URL: {e}") from e
    ctype = resp.headers.get("Content-Type", "").split(";")[0].strip().lower()
    return resp.content, ctype or "application/octet-stream"


class StatBlockService:
    """CRUD for stat blocks plus portrait storage."""

    def __init__(self, repo: StatBlockRepository):
        self._repo = repo

    # ------------------------------------------------------------------
    # Stat blocks
    # ------------------------------------------------------------------

    def list_statblocks(
        self, search: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[StatBlock]:
        return [sb for sb in self._repo.list(search) if matches_any(sb.tags, tags)]

    def get_statblock(self, statblock_id: str) -> Optional[StatBlock]:
        return self._repo.get(statblock_id)

    def create_statblock(self, data: StatBlockCreate) -> StatBlock:
        fields = data.model_dump()
        fields["tags"] = unique_tags(fields["tags"])
        return self._repo.save(StatBlock.model_validate({**fields, "id": ""}))

    def update_statblock(self, statblock_id: str, data: StatBlockUpdate) -> Optional[StatBlock]:
        statblock = self._repo.get(statblock_id)
        if statblock is None:
            return None
        changes = data.model_dump(exclude_none=True)
        if "tags" in changes:
            changes["tags"] = unique_tags(changes["tags"])
        # Re-validate so nested attacks/spells come back as models
        return self._repo.save(StatBlock.model_validate({**statblock.model_dump(), **changes}))

    def delete_statblock(self, statblock_id: str) -> bool:
        return self._repo.delete(statblock_id)

    def delete_statblocks(self, ids: list[str]) -> int:
        return self._repo.delete_many(ids)

    def get_tags(self) -> list[str]:
        return sorted({t for sb in self._repo.list() for t in sb.tags})

    # ------------------------------------------------------------------
    # Portrait
    # ------------------------------------------------------------------

    def set_image(
        self, statblock_id: str, data: bytes, mime: str, filename: Optional[str] = None
    ) -> bool:
        """Store a portrait, replacing any previous one and resetting its crop."""
        if self._repo.get(statblock_id) is None:
            return False
        self._repo.save_image(
            StatBlockImage(statblock_id=statblock_id, data=data, mime=mime, filename=filename)
        )
        return True

    def set_image_from_url(self, statblock_id: str, url: str) -> bool:
        if self._repo.get(statblock_id) is None:
            return False
        data, mime = download_image(url)
        filename = urlparse(url).path.rsplit("/", 1)[-1] or "image"
        logger.info("Fetched %d byte portrait for stat block %s", len(data), statblock_id)
        return self.set_image(statblock_id, data, mime, filename)

    def get_image(self, statblock_id: str) -> Optional[StatBlockImage]:
        return self._repo.get_image(statblock_id)

    def clear_image(self, statblock_id: str) -> bool:
        if self._repo.get(statblock_id) is None:
            return False
        self._repo.delete_image(statblock_id)
        return True

    def get_image_settings(self, statblock_id: str) -> Optional[ImageSettings]:
        image = self._repo.get_image(statblock_id)
        if image is None:
            return None
        return ImageSettings(offset=image.offset, scale=image.scale)

    def update_image_settings(
        self, statblock_id: str, offset: Optional[float] = None, scale: Optional[float] = None
    ) -> Optional[ImageSettings]:
        """Offset is floored at 0, scale clamped to 0.1–4.0; non-finite values are ignored."""
        image = self._repo.get_image(statblock_id)
        if image is None:
            return None
        changes: dict = {}
        if offset is not None and math.isfinite(offset):
            changes["offset"] = max(0, math.floor(offset))
        if scale is not None and math.isfinite(scale):
            changes["scale"] = max(MIN_IMAGE_SCALE, min(MAX_IMAGE_SCALE, scale))
        image = image.model_copy(update=changes)
        self._repo.save_image(image)
        return ImageSettings(offset=image.offset, scale=image.scale)
