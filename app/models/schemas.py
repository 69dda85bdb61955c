"""
Pydantic schemas shared by controllers, services and the PDF engines.

All coordinates on placements and sheet settings are in inches; card
font sizes are in points. The wire format is camelCase (``frontText``,
``cardIds``, ``backMode``) while Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Duplex(str, Enum):
    LONG = "long"
    SHORT = "short"


class TextPosition(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    CENTER = "center"


class BackMode(str, Enum):
    NONE = "none"
    BACK_IMAGE = "back-image"


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------

class Card(CamelModel):
    id: str
    title: str = ""
    front_text: str = ""
    back_text: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CardCreate(CamelModel):
    title: str = Field(min_length=1)
    front_text: str = ""
    back_text: str = ""
    tags: list[str] = Field(default_factory=list)


class CardUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    front_text: Optional[str] = None
    back_text: Optional[str] = None
    tags: Optional[list[str]] = None


class CardPdfOptions(CamelModel):
    """Print options for a card deck (ids are resolved by the caller)."""
    duplex: Duplex = Duplex.LONG
    title_size: float = Field(default=26, ge=8, le=48)
    body_size: float = Field(default=18, ge=6, le=36)
    margin_mm: float = Field(default=4.0, ge=0, le=20)


class CardPdfRequest(CardPdfOptions):
    card_ids: list[str] = Field(min_length=1)


class CardPreviewRequest(CardPdfOptions):
    preview_card: CardCreate


class BulkTagRequest(CamelModel):
    card_ids: list[str] = Field(min_length=1)
    tags: list[str] = Field(min_length=1)


class ImportResult(CamelModel):
    message: str
    cards: list[Card]


# ---------------------------------------------------------------------------
# Minis
# ---------------------------------------------------------------------------

class MiniRecord(BaseModel):
    """A stored mini including its raw image bytes (never serialised to JSON)."""
    id: str
    name: str
    image_data: bytes
    image_mime: Optional[str] = None
    back_image_data: Optional[bytes] = None
    back_image_mime: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Mini(CamelModel):
    """API view of a mini without image payloads."""
    id: str
    name: str
    tags: list[str] = Field(default_factory=list)
    has_back_image: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: MiniRecord) -> "Mini":
        return cls(
            id=record.id,
            name=record.name,
            tags=record.tags,
            has_back_image=bool(record.back_image_data),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class MiniBase64Create(CamelModel):
    name: str = "Unnamed Mini"
    tags: list[str] = Field(default_factory=list)
    image_data: str = Field(min_length=1)
    image_mime: Optional[str] = None


class MiniUpdate(CamelModel):
    name: Optional[str] = None
    tags: Optional[list[str]] = None


class ImagePayload(CamelModel):
    data: str = Field(min_length=1)


class BulkDeleteRequest(CamelModel):
    ids: list[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------

class Placement(CamelModel):
    """One mini positioned on a sheet, in absolute sheet-space inches."""
    id: str
    mini_id: str
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    text: Optional[str] = None
    text_position: TextPosition = TextPosition.BOTTOM
    text_size: Optional[float] = Field(default=None, gt=0)
    rotation: Optional[float] = None
    back_mode: BackMode = BackMode.NONE


class SheetSettings(CamelModel):
    page_width: float = 8.5
    page_height: float = 11
    margin_top: float = 0.5
    margin_bottom: float = 0.5
    margin_left: float = 0.5
    margin_right: float = 0.5
    grid_snap: float = 0.25
    show_grid: bool = True


DEFAULT_SHEET_SETTINGS = SheetSettings()
DEFAULT_MINI_WIDTH = 0.75
DEFAULT_MINI_HEIGHT = 0.75


class MiniSheet(CamelModel):
    id: str
    name: str
    code: str = ""
    placements: list[Placement] = Field(default_factory=list)
    settings: SheetSettings = Field(default_factory=SheetSettings)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SheetCreate(CamelModel):
    name: str = Field(min_length=1)
    code: str = Field(default="", max_length=10)
    placements: list[Placement] = Field(default_factory=list)
    settings: Optional[dict] = None


class SheetUpdate(CamelModel):
    name: Optional[str] = None
    code: Optional[str] = Field(default=None, max_length=10)
    placements: Optional[list[Placement]] = None
    settings: Optional[dict] = None


class SheetPdfRequest(CamelModel):
    placements: list[Placement]
    settings: SheetSettings
    mini_ids: list[str] = Field(default_factory=list)
    code: Optional[str] = None


class AddPlacementRequest(CamelModel):
    mini_id: str
    x: float
    y: float
    width: float = Field(default=DEFAULT_MINI_WIDTH, gt=0)
    height: float = Field(default=DEFAULT_MINI_HEIGHT, gt=0)


class ConglomerateRequest(CamelModel):
    name: str = Field(min_length=1)
    sheet_ids: list[str] = Field(min_length=1)
    code: str = Field(default="", max_length=10)


class ImportPlacementsRequest(CamelModel):
    source_sheet_id: str
    placement_ids: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Stat blocks
# ---------------------------------------------------------------------------

class Attack(CamelModel):
    name: str
    to_hit_modifier: int = 0
    damage: str = ""
    additional_effect: Optional[str] = None


class Spell(CamelModel):
    name: str
    description: str = ""


class StatBlockFields(CamelModel):
    """Monster/NPC statistics; ability scores keep their short wire names."""
    creature_type: Optional[str] = Field(default=None, alias="type")
    cr: str = "0"
    hp: Optional[str] = None
    ac: str = "10"
    spell_save_dc: Optional[int] = Field(default=None, alias="spellSaveDC")
    spell_attack_modifier: Optional[int] = None
    strength: int = Field(default=10, alias="str")
    dexterity: int = Field(default=10, alias="dex")
    constitution: int = Field(default=10, alias="con")
    intelligence: int = Field(default=10, alias="int")
    wisdom: int = Field(default=10, alias="wis")
    charisma: int = Field(default=10, alias="cha")
    attacks: list[Attack] = Field(default_factory=list)
    spells: list[Spell] = Field(default_factory=list)
    spell_slots: list[int] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    resistances: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class StatBlock(StatBlockFields):
    id: str
    name: str
    has_image: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatBlockCreate(StatBlockFields):
    name: str = Field(min_length=1)


class StatBlockUpdate(CamelModel):
    """Partial update; only the fields sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1)
    creature_type: Optional[str] = Field(default=None, alias="type")
    cr: Optional[str] = None
    hp: Optional[str] = None
    ac: Optional[str] = None
    spell_save_dc: Optional[int] = Field(default=None, alias="spellSaveDC")
    spell_attack_modifier: Optional[int] = None
    strength: Optional[int] = Field(default=None, alias="str")
    dexterity: Optional[int] = Field(default=None, alias="dex")
    constitution: Optional[int] = Field(default=None, alias="con")
    intelligence: Optional[int] = Field(default=None, alias="int")
    wisdom: Optional[int] = Field(default=None, alias="wis")
    charisma: Optional[int] = Field(default=None, alias="cha")
    attacks: Optional[list[Attack]] = None
    spells: Optional[list[Spell]] = None
    spell_slots: Optional[list[int]] = None
    skills: Optional[list[str]] = None
    resistances: Optional[list[str]] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None


class StatBlockImage(BaseModel):
    """Stored portrait bytes plus the user's crop preferences."""
    statblock_id: str
    data: bytes
    mime: Optional[str] = None
    filename: Optional[str] = None
    offset: int = 0
    scale: float = 1.0


class ImageSettings(CamelModel):
    offset: int
    scale: float


class ImageSettingsUpdate(CamelModel):
    offset: Optional[float] = None
    scale: Optional[float] = None


class ImageUrlRequest(CamelModel):
    url: str = Field(min_length=1)
