"""
StatBlock Controller – stat block CRUD and portrait image endpoints.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from app.controllers.dependencies import get_statblock_service
from app.controllers.responses import image_response
from app.models.schemas import (
    BulkDeleteRequest,
    ImagePayload,
    ImageSettings,
    ImageSettingsUpdate,
    ImageUrlRequest,
    StatBlock,
    StatBlockCreate,
    StatBlockUpdate,
)
from app.services.mini_service import InvalidImageError, decode_image_payload
from app.services.statblock_service import ImageFetchError, StatBlockService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["statblocks"])

_NOT_FOUND = "StatBlock not found"


# ---------------------------------------------------------------------------
# Stat blocks
# ---------------------------------------------------------------------------

@router.get("/statblocks", response_model=list[StatBlock])
def list_statblocks(
    search: Optional[str] = None,
    tags: Optional[str] = Query(default=None, description="Comma separated tag names"),
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    wanted = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    return statblocks.list_statblocks(search=search, tags=wanted)


@router.get("/statblocks/tags", response_model=list[str])
def list_statblock_tags(statblocks: StatBlockService = Depends(get_statblock_service)):
    return statblocks.get_tags()


@router.delete("/statblocks/bulk", status_code=204)
def delete_statblocks(
    data: BulkDeleteRequest, statblocks: StatBlockService = Depends(get_statblock_service)
):
    statblocks.delete_statblocks(data.ids)
    return Response(status_code=204)


@router.get("/statblocks/{statblock_id}", response_model=StatBlock)
def get_statblock(statblock_id: str, statblocks: StatBlockService = Depends(get_statblock_service)):
    statblock = statblocks.get_statblock(statblock_id)
    if statblock is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return statblock


@router.post("/statblocks", response_model=StatBlock, status_code=201)
def create_statblock(
    data: StatBlockCreate, statblocks: StatBlockService = Depends(get_statblock_service)
):
    return statblocks.create_statblock(data)


@router.put("/statblocks/{statblock_id}", response_model=StatBlock)
def update_statblock(
    statblock_id: str,
    data: StatBlockUpdate,
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    statblock = statblocks.update_statblock(statblock_id, data)
    if statblock is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return statblock


@router.delete("/statblocks/{statblock_id}", status_code=204)
def delete_statblock(statblock_id: str, statblocks: StatBlockService = Depends(get_statblock_service)):
    if not statblocks.delete_statblock(statblock_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Portrait
# ---------------------------------------------------------------------------

@router.post("/statblocks/{statblock_id}/image", status_code=204)
async def upload_image(
    statblock_id: str,
    file: UploadFile = File(...),
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not statblocks.set_image(
        statblock_id, data, file.content_type or "application/octet-stream", file.filename
    ):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Response(status_code=204)


@router.post("/statblocks/{statblock_id}/image/url", status_code=204)
def set_image_from_url(
    statblock_id: str,
    payload: ImageUrlRequest,
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    try:
        found = statblocks.set_image_from_url(statblock_id, payload.url)
    except ImageFetchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Setting stat block image from URL failed")
        raise HTTPException(status_code=500, detail=f"Image download failed: {str(e)}")
    if not found:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Response(status_code=204)


@router.post("/statblocks/{statblock_id}/image/base64", status_code=204)
def set_image_from_base64(
    statblock_id: str,
    payload: ImagePayload,
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    try:
        data, mime = decode_image_payload(payload.data)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    extension = mime.split("/")[-1] or "png"
    if not statblocks.set_image(statblock_id, data, mime, f"clipboard.{extension}"):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Response(status_code=204)


@router.get("/statblocks/{statblock_id}/image")
def get_image(statblock_id: str, statblocks: StatBlockService = Depends(get_statblock_service)):
    image = statblocks.get_image(statblock_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return image_response(image.data, image.mime, image.filename)


@router.delete("/statblocks/{statblock_id}/image", status_code=204)
def delete_image(statblock_id: str, statblocks: StatBlockService = Depends(get_statblock_service)):
    if not statblocks.clear_image(statblock_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Response(status_code=204)


@router.get("/statblocks/{statblock_id}/image/settings", response_model=ImageSettings)
def get_image_settings(
    statblock_id: str, statblocks: StatBlockService = Depends(get_statblock_service)
):
    settings = statblocks.get_image_settings(statblock_id)
    if settings is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return settings


@router.put("/statblocks/{statblock_id}/image/settings", response_model=ImageSettings)
def update_image_settings(
    statblock_id: str,
    data: ImageSettingsUpdate,
    statblocks: StatBlockService = Depends(get_statblock_service),
):
    settings = statblocks.update_image_settings(statblock_id, data.offset, data.scale)
    if settings is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return settings
