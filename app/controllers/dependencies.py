"""
Dependency injection helpers shared by the routers.

Repositories and services are cheap and built per request; the
``Database`` (and its schema bootstrap) is created once per SQLite file,
whose location comes from ``PRINTSTUDIO_DB_PATH``.
"""

from __future__ import annotations

import os
from functools import lru_cache

from fastapi import Depends

from app.repository.sqlite_repository import (
    CardRepository,
    Database,
    MiniRepository,
    SheetRepository,
    StatBlockRepository,
)
from app.services.card_service import CardService
from app.services.ingestion_service import IngestionService
from app.services.mini_pdf_service import MiniPdfService
from app.services.mini_service import MiniService
from app.services.pdf_service import PdfService
from app.services.statblock_service import StatBlockService


@lru_cache(maxsize=None)
def open_database(path: str) -> Database:
    return Database(path)


def get_database() -> Database:
    return open_database(os.getenv("PRINTSTUDIO_DB_PATH", "rpg_cards.db"))


def get_card_service(db: Database = Depends(get_database)) -> CardService:
    return CardService(CardRepository(db), IngestionService())


def get_mini_service(db: Database = Depends(get_database)) -> MiniService:
    return MiniService(MiniRepository(db), SheetRepository(db))


def get_statblock_service(db: Database = Depends(get_database)) -> StatBlockService:
    return StatBlockService(StatBlockRepository(db))


def get_pdf_service() -> PdfService:
    return PdfService()


def get_mini_pdf_service() -> MiniPdfService:
    return MiniPdfService()
