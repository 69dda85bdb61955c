"""
Card Controller – card CRUD, tags, import and deck PDF endpoints.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from app.controllers.dependencies import get_card_service, get_pdf_service
from app.controllers.responses import pdf_response
from app.models.schemas import (
    BulkTagRequest,
    Card,
    CardCreate,
    CardPdfRequest,
    CardPreviewRequest,
    CardUpdate,
    ImportResult,
)
from app.services.card_service import CardService
from app.services.ingestion_service import CardImportError
from app.services.pdf_service import PdfService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cards"])


def _split_csv(raw: Optional[str]) -> Optional[list[str]]:
    if not raw:
        return None
    return [t.strip() for t in raw.split(",") if t.strip()]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@router.get("/cards", response_model=list[Card])
def list_cards(
    search: Optional[str] = None,
    tags: Optional[str] = Query(default=None, description="Comma separated tag names"),
    cards: CardService = Depends(get_card_service),
):
    return cards.list_cards(search=search, tags=_split_csv(tags))


@router.get("/cards/tags", response_model=list[str])
def list_card_tags(cards: CardService = Depends(get_card_service)):
    return cards.get_tags()


@router.get("/cards/{card_id}", response_model=Card)
def get_card(card_id: str, cards: CardService = Depends(get_card_service)):
    card = cards.get_card(card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("/cards", response_model=Card, status_code=201)
def create_card(data: CardCreate, cards: CardService = Depends(get_card_service)):
    return cards.create_card(data)


@router.put("/cards/{card_id}", response_model=Card)
def update_card(card_id: str, data: CardUpdate, cards: CardService = Depends(get_card_service)):
    card = cards.update_card(card_id, data)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


@router.delete("/cards/{card_id}", status_code=204)
def delete_card(card_id: str, cards: CardService = Depends(get_card_service)):
    if not cards.delete_card(card_id):
        raise HTTPException(status_code=404, detail="Card not found")
    return Response(status_code=204)


@router.post("/cards/tags/bulk-add", response_model=list[Card])
def bulk_add_tags(data: BulkTagRequest, cards: CardService = Depends(get_card_service)):
    return cards.bulk_add_tags(data.card_ids, data.tags)


@router.post("/cards/tags/bulk-remove", response_model=list[Card])
def bulk_remove_tags(data: BulkTagRequest, cards: CardService = Depends(get_card_service)):
    return cards.bulk_remove_tags(data.card_ids, data.tags)


@router.post("/cards/import", response_model=ImportResult, status_code=201)
async def import_cards(
    file: UploadFile = File(...),
    cards: CardService = Depends(get_card_service),
):
    """Create cards from an uploaded CSV, XLSX or JSON file."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="A card file is required")

    try:
        file_bytes = await file.read()
        created = cards.import_cards(file_bytes, file.filename)
    except CardImportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Card import failed")
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")

    return ImportResult(message=f"Imported {len(created)} cards", cards=created)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

@router.post("/cards/pdf")
def generate_deck_pdf(
    request: CardPdfRequest,
    cards: CardService = Depends(get_card_service),
    pdf_svc: PdfService = Depends(get_pdf_service),
):
    """
    Render the requested cards as a duplex-ready deck.

    Cards appear in request order; unknown ids are ignored, but at least
    one id must resolve.
    """
    resolved = cards.get_cards_by_ids(request.card_ids)
    if not resolved:
        raise HTTPException(status_code=404, detail="None of the requested cards exist")

    try:
        pdf_bytes = pdf_svc.generate(resolved, request)
    except Exception as e:
        logger.exception("Card PDF generation failed")
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {str(e)}")

    return pdf_response(pdf_bytes, "rpg-cards.pdf")


@router.post("/cards/preview-pdf")
def generate_preview_pdf(
    request: CardPreviewRequest,
    pdf_svc: PdfService = Depends(get_pdf_service),
):
    """Render an unsaved card (front and back page) for live preview."""
    draft = request.preview_card
    card = Card(
        id="_preview",
        title=draft.title,
        front_text=draft.front_text,
        back_text=draft.back_text,
    )
    try:
        pdf_bytes = pdf_svc.generate_preview(card, request)
    except Exception as e:
        logger.exception("Card preview generation failed")
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {str(e)}")

    return pdf_response(pdf_bytes, "card-preview.pdf")
