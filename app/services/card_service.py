"""
Card Service – card CRUD, tag management and bulk import.
"""

from __future__ import annotations

import logging
from typing import Optional

from app.models.schemas import Card, CardCreate, CardUpdate
from app.repository.sqlite_repository import CardRepository
from app.services.ingestion_service import IngestionService
from app.services.tags import matches_any, unique_tags

logger = logging.getLogger(__name__)


class CardService:
    """Business rules around stored cards."""

    def __init__(self, repo: CardRepository, ingestion: Optional[IngestionService] = None):
        self._repo = repo
        self._ingestion = ingestion or IngestionService()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_cards(
        self, search: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[Card]:
        """All cards ordered by title; *tags* keeps cards carrying any of them."""
        return [c for c in self._repo.list(search) if matches_any(c.tags, tags)]

    def get_card(self, card_id: str) -> Optional[Card]:
        return self._repo.get(card_id)

    def get_cards_by_ids(self, ids: list[str]) -> list[Card]:
        return self._repo.get_many(ids)

    def get_tags(self) -> list[str]:
        return sorted({t for c in self._repo.list() for t in c.tags})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_card(self, data: CardCreate) -> Card:
        card = Card(
            id="",
            title=data.title,
            front_text=data.front_text,
            back_text=data.back_text,
            tags=unique_tags(data.tags),
        )
        return self._repo.save(card)

    def update_card(self, card_id: str, data: CardUpdate) -> Optional[Card]:
        card = self._repo.get(card_id)
        if card is None:
            return None
        changes = data.model_dump(exclude_none=True)
        if "tags" in changes:
            changes["tags"] = unique_tags(changes["tags"])
        return self._repo.save(card.model_copy(update=changes))

    def delete_card(self, card_id: str) -> bool:
        return self._repo.delete(card_id)

    def bulk_add_tags(self, card_ids: list[str], tags: list[str]) -> list[Card]:
        updated = []
        for card in self._repo.get_many(card_ids):
            merged = unique_tags(card.tags + tags)
            updated.append(self._repo.save(card.model_copy(update={"tags": merged})))
        return updated

    def bulk_remove_tags(self, card_ids: list[str], tags: list[str]) -> list[Card]:
        drop = set(tags)
        updated = []
        for card in self._repo.get_many(card_ids):
            kept = [t for t in card.tags if t not in drop]
            updated.append(self._repo.save(card.model_copy(update={"tags": kept})))
        return updated

    def import_cards(self, file_bytes: bytes, filename: str) -> list[Card]:
        """Create one card per row of an uploaded CSV/XLSX/JSON file."""
        drafts = self._ingestion.parse(file_bytes, filename)
        created = [self.create_card(d) for d in drafts]
        logger.info("Imported %d cards from %s", len(created), filename)
        return created
