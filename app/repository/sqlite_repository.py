"""
SQLite Repository – abstracts all persistence for cards, minis, sheets
and stat blocks.

One short-lived connection per operation; list-valued columns (tags,
placements, settings) are stored as JSON text. Writes are last-write-wins.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from app.models.schemas import (
    Card,
    MiniRecord,
    MiniSheet,
    Placement,
    SheetSettings,
    StatBlock,
    StatBlockImage,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    front_text  TEXT,
    back_text   TEXT,
    tags        TEXT,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS minis (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    image_data       BLOB NOT NULL,
    image_mime       TEXT,
    back_image_data  BLOB,
    back_image_mime  TEXT,
    tags             TEXT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS mini_sheets (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    code        TEXT NOT NULL DEFAULT '',
    placements  TEXT NOT NULL,
    settings    TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS statblocks (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    body        TEXT NOT NULL,
    tags        TEXT,
    has_image   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS statblock_images (
    statblock_id  TEXT PRIMARY KEY,
    data          BLOB NOT NULL,
    mime          TEXT,
    filename      TEXT,
    crop_offset   INTEGER NOT NULL DEFAULT 0,
    crop_scale    REAL NOT NULL DEFAULT 1.0
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class Database:
    """Location of the SQLite file plus schema bootstrap."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------

class CardRepository:

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            title=row["title"],
            front_text=row["front_text"] or "",
            back_text=row["back_text"] or "",
            tags=json.loads(row["tags"] or "[]"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def list(self, search: Optional[str] = None) -> list[Card]:
        sql = "SELECT * FROM cards"
        params: dict = {}
        if search:
            sql += (
                " WHERE LOWER(title) LIKE :q OR LOWER(front_text) LIKE :q"
                " OR LOWER(back_text) LIKE :q"
            )
            params = {"q": f"%{search.lower()}%"}
        sql += " ORDER BY title COLLATE NOCASE ASC"
        with self._db.connect() as conn:
            return [self._to_card(r) for r in conn.execute(sql, params)]

    def get(self, card_id: str) -> Optional[Card]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
        return self._to_card(row) if row else None

    def get_many(self, ids: list[str]) -> list[Card]:
        """Cards for *ids* in the order requested; unknown ids are dropped."""
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM cards WHERE id IN ({placeholders})", list(ids)
            ).fetchall()
        by_id = {r["id"]: self._to_card(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def save(self, card: Card) -> Card:
        """Insert or replace *card*; assigns id and timestamps as needed."""
        now = _now()
        card_id = card.id or _new_id()
        created = card.created_at.isoformat() if card.created_at else now
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cards "
                "(id, title, front_text, back_text, tags, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    card_id, card.title, card.front_text, card.back_text,
                    json.dumps(card.tags), created, now,
                ),
            )
        return self.get(card_id)

    def delete(self, card_id: str) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
        return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Minis
# ---------------------------------------------------------------------------

class MiniRepository:

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_mini(row: sqlite3.Row) -> MiniRecord:
        return MiniRecord(
            id=row["id"],
            name=row["name"],
            image_data=row["image_data"],
            image_mime=row["image_mime"],
            back_image_data=row["back_image_data"],
            back_image_mime=row["back_image_mime"],
            tags=json.loads(row["tags"] or "[]"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def list(self, search: Optional[str] = None) -> list[MiniRecord]:
        sql = "SELECT * FROM minis"
        params: dict = {}
        if search:
            sql += " WHERE LOWER(name) LIKE :q"
            params = {"q": f"%{search.lower()}%"}
        sql += " ORDER BY created_at DESC"
        with self._db.connect() as conn:
            return [self._to_mini(r) for r in conn.execute(sql, params)]

    def get(self, mini_id: str) -> Optional[MiniRecord]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM minis WHERE id = ?", (mini_id,)).fetchone()
        return self._to_mini(row) if row else None

    def get_many(self, ids: list[str]) -> dict[str, MiniRecord]:
        unique = list(dict.fromkeys(ids))
        if not unique:
            return {}
        placeholders = ",".join("?" * len(unique))
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM minis WHERE id IN ({placeholders})", unique
            ).fetchall()
        return {r["id"]: self._to_mini(r) for r in rows}

    def save(self, mini: MiniRecord) -> MiniRecord:
        now = _now()
        mini_id = mini.id or _new_id()
        created = mini.created_at.isoformat() if mini.created_at else now
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO minis "
                "(id, name, image_data, image_mime, back_image_data, back_image_mime,"
                " tags, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    mini_id, mini.name, mini.image_data, mini.image_mime,
                    mini.back_image_data, mini.back_image_mime,
                    json.dumps(mini.tags), created, now,
                ),
            )
        return self.get(mini_id)

    def delete(self, mini_id: str) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute("DELETE FROM minis WHERE id = ?", (mini_id,))
        return cur.rowcount > 0

    def delete_many(self, ids: list[str]) -> int:
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        with self._db.connect() as conn:
            cur = conn.execute(f"DELETE FROM minis WHERE id IN ({placeholders})", list(ids))
        return cur.rowcount


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------

class SheetRepository:

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_sheet(row: sqlite3.Row) -> MiniSheet:
        return MiniSheet(
            id=row["id"],
            name=row["name"],
            code=row["code"] or "",
            placements=[Placement.model_validate(p) for p in json.loads(row["placements"])],
            settings=SheetSettings.model_validate(json.loads(row["settings"])),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def list(self) -> list[MiniSheet]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM mini_sheets ORDER BY created_at DESC").fetchall()
        return [self._to_sheet(r) for r in rows]

    def get(self, sheet_id: str) -> Optional[MiniSheet]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM mini_sheets WHERE id = ?", (sheet_id,)).fetchone()
        return self._to_sheet(row) if row else None

    def save(self, sheet: MiniSheet) -> MiniSheet:
        now = _now()
        sheet_id = sheet.id or _new_id()
        created = sheet.created_at.isoformat() if sheet.created_at else now
        placements = json.dumps([p.model_dump(mode="json", by_alias=True) for p in sheet.placements])
        settings = json.dumps(sheet.settings.model_dump(mode="json", by_alias=True))
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO mini_sheets "
                "(id, name, code, placements, settings, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (sheet_id, sheet.name, sheet.code, placements, settings, created, now),
            )
        return self.get(sheet_id)

    def delete(self, sheet_id: str) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute("DELETE FROM mini_sheets WHERE id = ?", (sheet_id,))
        return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Stat blocks
# ---------------------------------------------------------------------------

class StatBlockRepository:
    """Stat blocks keep their statistics as one JSON body; portraits live in a side table."""

    _BODY_EXCLUDE = {"id", "name", "tags", "has_image", "created_at", "updated_at"}

    def __init__(self, db: Database) -> None:
        self._db = db

    @staticmethod
    def _to_statblock(row: sqlite3.Row) -> StatBlock:
        return StatBlock.model_validate(
            {
                **json.loads(row["body"]),
                "id": row["id"],
                "name": row["name"],
                "tags": json.loads(row["tags"] or "[]"),
                "has_image": bool(row["has_image"]),
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            }
        )

    def list(self, search: Optional[str] = None) -> list[StatBlock]:
        sql = "SELECT * FROM statblocks"
        params: dict = {}
        if search:
            sql += " WHERE LOWER(name) LIKE :q"
            params = {"q": f"%{search.lower()}%"}
        sql += " ORDER BY created_at DESC"
        with self._db.connect() as conn:
            return [self._to_statblock(r) for r in conn.execute(sql, params)]

    def get(self, statblock_id: str) -> Optional[StatBlock]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM statblocks WHERE id = ?", (statblock_id,)).fetchone()
        return self._to_statblock(row) if row else None

    def save(self, statblock: StatBlock) -> StatBlock:
        now = _now()
        statblock_id = statblock.id or _new_id()
        created = statblock.created_at.isoformat() if statblock.created_at else now
        body = statblock.model_dump(mode="json", by_alias=True, exclude=self._BODY_EXCLUDE)
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO statblocks "
                "(id, name, body, tags, has_image, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    statblock_id, statblock.name, json.dumps(body),
                    json.dumps(statblock.tags), int(statblock.has_image), created, now,
                ),
            )
        return self.get(statblock_id)

    def delete(self, statblock_id: str) -> bool:
        with self._db.connect() as conn:
            conn.execute("DELETE FROM statblock_images WHERE statblock_id = ?", (statblock_id,))
            cur = conn.execute("DELETE FROM statblocks WHERE id = ?", (statblock_id,))
        return cur.rowcount > 0

    def delete_many(self, ids: list[str]) -> int:
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        with self._db.connect() as conn:
            conn.execute(
                f"DELETE FROM statblock_images WHERE statblock_id IN ({placeholders})", list(ids)
            )
            cur = conn.execute(f"DELETE FROM statblocks WHERE id IN ({placeholders})", list(ids))
        return cur.rowcount

    # ------------------------------------------------------------------
    # Portrait
    # ------------------------------------------------------------------

    def get_image(self, statblock_id: str) -> Optional[StatBlockImage]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM statblock_images WHERE statblock_id = ?", (statblock_id,)
            ).fetchone()
        if row is None:
            return None
        return StatBlockImage(
            statblock_id=row["statblock_id"],
            data=row["data"],
            mime=row["mime"],
            filename=row["filename"],
            offset=row["crop_offset"],
            scale=row["crop_scale"],
        )

    def save_image(self, image: StatBlockImage) -> None:
        """Store *image* and flag its stat block in the same transaction."""
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO statblock_images "
                "(statblock_id, data, mime, filename, crop_offset, crop_scale) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    image.statblock_id, image.data, image.mime, image.filename,
                    image.offset, image.scale,
                ),
            )
            conn.execute(
                "UPDATE statblocks SET has_image = 1, updated_at = ? WHERE id = ?",
                (_now(), image.statblock_id),
            )

    def delete_image(self, statblock_id: str) -> None:
        with self._db.connect() as conn:
            conn.execute("DELETE FROM statblock_images WHERE statblock_id = ?", (statblock_id,))
            conn.execute(
                "UPDATE statblocks SET has_image = 0, updated_at = ? WHERE id = ?",
                (_now(), statblock_id),
            )
