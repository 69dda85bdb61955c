"""
Mini Controller – minis, mini images, sheets and sheet PDF endpoints.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response

from app.controllers.dependencies import get_mini_pdf_service, get_mini_service
from app.controllers.responses import pdf_response
from app.models.schemas import (
    AddPlacementRequest,
    BulkDeleteRequest,
    ConglomerateRequest,
    ImagePayload,
    ImportPlacementsRequest,
    Mini,
    MiniBase64Create,
    MiniSheet,
    MiniUpdate,
    SheetCreate,
    SheetPdfRequest,
    SheetUpdate,
)
from app.services import label_service
from app.services.geometry import printable_height
from app.services.mini_pdf_service import MiniPdfService
from app.services.mini_service import InvalidImageError, MiniService, decode_image_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["minis"])

_MINI_NOT_FOUND = "Mini not found"
_SHEET_NOT_FOUND = "Sheet not found"


def _parse_tags(raw: Optional[str]) -> list[str]:
    """Tags from a multipart form field: a JSON array or comma separated names."""
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = raw.split(",")
    if not isinstance(parsed, list):
        raise HTTPException(status_code=400, detail="Tags must be a list")
    return [str(t).strip() for t in parsed if str(t).strip()]


def _decode(data: str, default_mime: str = "image/png") -> tuple[bytes, str]:
    try:
        return decode_image_payload(data, default_mime)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ---------------------------------------------------------------------------
# Minis
# ---------------------------------------------------------------------------

@router.get("/minis", response_model=list[Mini])
def list_minis(
    search: Optional[str] = None,
    tags: Optional[str] = Query(default=None, description="Comma separated tag names"),
    minis: MiniService = Depends(get_mini_service),
):
    wanted = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    return [Mini.from_record(m) for m in minis.list_minis(search=search, tags=wanted)]


@router.get("/minis/tags", response_model=list[str])
def list_mini_tags(minis: MiniService = Depends(get_mini_service)):
    return minis.get_tags()


@router.delete("/minis/bulk", status_code=204)
def delete_minis(data: BulkDeleteRequest, minis: MiniService = Depends(get_mini_service)):
    minis.delete_minis(data.ids)
    return Response(status_code=204)


@router.get("/minis/{mini_id}", response_model=Mini)
def get_mini(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    mini = minis.get_mini(mini_id)
    if mini is None:
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return Mini.from_record(mini)


@router.post("/minis", response_model=Mini, status_code=201)
async def create_mini(
    image: UploadFile = File(...),
    name: str = Form("Unnamed Mini"),
    tags: Optional[str] = Form(None),
    minis: MiniService = Depends(get_mini_service),
):
    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="Image file is required")
    record = minis.create_mini(
        name, data, image.content_type or "image/png", _parse_tags(tags)
    )
    return Mini.from_record(record)


@router.post("/minis/base64", response_model=Mini, status_code=201)
def create_mini_from_base64(
    data: MiniBase64Create, minis: MiniService = Depends(get_mini_service)
):
    raw, mime = _decode(data.image_data, data.image_mime or "image/png")
    return Mini.from_record(minis.create_mini(data.name, raw, mime, data.tags))


@router.put("/minis/{mini_id}", response_model=Mini)
def update_mini(mini_id: str, data: MiniUpdate, minis: MiniService = Depends(get_mini_service)):
    mini = minis.update_mini(mini_id, data)
    if mini is None:
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return Mini.from_record(mini)


@router.delete("/minis/{mini_id}", status_code=204)
def delete_mini(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    if not minis.delete_mini(mini_id):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Mini images
# ---------------------------------------------------------------------------

@router.get("/minis/{mini_id}/image")
def get_front_image(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    mini = minis.get_mini(mini_id)
    if mini is None or not mini.image_data:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=mini.image_data, media_type=mini.image_mime or "image/png")


@router.post("/minis/{mini_id}/image")
async def upload_front_image(
    mini_id: str,
    file: UploadFile = File(...),
    minis: MiniService = Depends(get_mini_service),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Image file is required")
    if not minis.set_front_image(mini_id, data, file.content_type or "image/png"):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return {"success": True}


@router.post("/minis/{mini_id}/image/base64")
def set_front_image_from_base64(
    mini_id: str, payload: ImagePayload, minis: MiniService = Depends(get_mini_service)
):
    raw, mime = _decode(payload.data)
    if not minis.set_front_image(mini_id, raw, mime):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return {"success": True}


@router.get("/minis/{mini_id}/back-image")
def get_back_image(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    mini = minis.get_mini(mini_id)
    if mini is None or not mini.back_image_data:
        raise HTTPException(status_code=404, detail="Back image not found")
    return Response(content=mini.back_image_data, media_type=mini.back_image_mime or "image/png")


@router.post("/minis/{mini_id}/back-image")
async def upload_back_image(
    mini_id: str,
    file: UploadFile = File(...),
    minis: MiniService = Depends(get_mini_service),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Image file is required")
    if not minis.set_back_image(mini_id, data, file.content_type or "image/png"):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return {"success": True}


@router.post("/minis/{mini_id}/back-image/base64")
def set_back_image_from_base64(
    mini_id: str, payload: ImagePayload, minis: MiniService = Depends(get_mini_service)
):
    raw, mime = _decode(payload.data)
    if not minis.set_back_image(mini_id, raw, mime):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return {"success": True}


@router.delete("/minis/{mini_id}/back-image", status_code=204)
def delete_back_image(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    if not minis.delete_back_image(mini_id):
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    return Response(status_code=204)


@router.post("/minis/{mini_id}/swap-images")
def swap_images(mini_id: str, minis: MiniService = Depends(get_mini_service)):
    if not minis.swap_images(mini_id):
        raise HTTPException(status_code=404, detail="Mini not found or no back image to swap")
    return {"success": True}


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------

@router.get("/mini-sheets", response_model=list[MiniSheet])
def list_sheets(minis: MiniService = Depends(get_mini_service)):
    return minis.list_sheets()


@router.post("/mini-sheets", response_model=MiniSheet, status_code=201)
def create_sheet(data: SheetCreate, minis: MiniService = Depends(get_mini_service)):
    try:
        return minis.create_sheet(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/mini-sheets/pdf")
def generate_sheet_pdf_from_data(
    request: SheetPdfRequest,
    minis: MiniService = Depends(get_mini_service),
    pdf_svc: MiniPdfService = Depends(get_mini_pdf_service),
):
    """
    Render unsaved placements, e.g. for the editor's print preview.

    Labels are resolved with `code`; without one the `*** ` marker is dropped.
    """
    if printable_height(request.settings) <= 0:
        raise HTTPException(status_code=400, detail="Page height must exceed the top and bottom margins")

    placements = label_service.resolve_placements(request.placements, request.code or "")
    mini_ids = request.mini_ids or [p.mini_id for p in placements]

    try:
        pdf_bytes = pdf_svc.generate(placements, request.settings, minis.get_minis(mini_ids))
    except Exception as e:
        logger.exception("Sheet PDF generation failed")
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {str(e)}")

    return pdf_response(pdf_bytes, "mini-sheet.pdf")


@router.post("/mini-sheets/conglomerate", response_model=MiniSheet, status_code=201)
def conglomerate_sheets(
    data: ConglomerateRequest, minis: MiniService = Depends(get_mini_service)
):
    """Combine several sheets into a new one, baking each source code into its labels."""
    sheet = minis.conglomerate(data.name, data.sheet_ids, data.code)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet


@router.get("/mini-sheets/{sheet_id}", response_model=MiniSheet)
def get_sheet(sheet_id: str, minis: MiniService = Depends(get_mini_service)):
    sheet = minis.get_sheet(sheet_id)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet


@router.get("/mini-sheets/{sheet_id}/pdf")
def generate_sheet_pdf(
    sheet_id: str,
    code: Optional[str] = Query(default=None, description="Overrides the sheet code in labels"),
    minis: MiniService = Depends(get_mini_service),
    pdf_svc: MiniPdfService = Depends(get_mini_pdf_service),
):
    sheet = minis.get_sheet(sheet_id)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)

    try:
        pdf_bytes = pdf_svc.generate(
            minis.printable_placements(sheet, code),
            sheet.settings,
            minis.get_minis_for_sheet(sheet),
        )
    except Exception as e:
        logger.exception("Sheet PDF generation failed")
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {str(e)}")

    return pdf_response(pdf_bytes, f"{sheet.name or 'mini-sheet'}.pdf")


@router.put("/mini-sheets/{sheet_id}", response_model=MiniSheet)
def update_sheet(sheet_id: str, data: SheetUpdate, minis: MiniService = Depends(get_mini_service)):
    try:
        sheet = minis.update_sheet(sheet_id, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet


@router.delete("/mini-sheets/{sheet_id}", status_code=204)
def delete_sheet(sheet_id: str, minis: MiniService = Depends(get_mini_service)):
    if not minis.delete_sheet(sheet_id):
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return Response(status_code=204)


@router.post("/mini-sheets/{sheet_id}/placements", response_model=MiniSheet)
def add_placement(
    sheet_id: str, data: AddPlacementRequest, minis: MiniService = Depends(get_mini_service)
):
    if minis.get_mini(data.mini_id) is None:
        raise HTTPException(status_code=404, detail=_MINI_NOT_FOUND)
    sheet = minis.add_placement(sheet_id, data.mini_id, data.x, data.y, data.width, data.height)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet


@router.post("/mini-sheets/{sheet_id}/auto-arrange", response_model=MiniSheet)
def auto_arrange(sheet_id: str, minis: MiniService = Depends(get_mini_service)):
    sheet = minis.auto_arrange(sheet_id)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet


@router.post("/mini-sheets/{sheet_id}/import", response_model=MiniSheet)
def import_placements(
    sheet_id: str, data: ImportPlacementsRequest, minis: MiniService = Depends(get_mini_service)
):
    sheet = minis.import_placements(sheet_id, data.source_sheet_id, data.placement_ids)
    if sheet is None:
        raise HTTPException(status_code=404, detail=_SHEET_NOT_FOUND)
    return sheet
