"""
Ingestion Service – parses card spreadsheets into card drafts.

Accepts CSV, Excel (.xlsx) or JSON (array of objects). Header names
are matched loosely ("Front Text", "front_text", "frontText" and "Front"
all map to the front face). Rows without a title are skipped.
"""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path

import pandas as pd

from app.models.schemas import CardCreate
from app.services.tags import unique_tags

logger = logging.getLogger(__name__)

# Normalised header -> CardCreate field
_HEADER_ALIASES = {
    "title": "title",
    "name": "title",
    "fronttext": "front_text",
    "front": "front_text",
    "backtext": "back_text",
    "back": "back_text",
    "tags": "tags",
    "tag": "tags",
}

_TAG_SPLIT_RE = re.compile(r"[;,|]")


class CardImportError(ValueError):
    """Raised when an uploaded file cannot be turned into cards."""


class IngestionService:
    """Reads tabular card data from uploaded files."""

    SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".json")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, file_bytes: bytes, filename: str) -> list[CardCreate]:
        """
        Parse an uploaded card file.

        Parameters
        ----------
        file_bytes : raw upload contents
        filename : original file name, used to pick the reader

        Returns
        -------
        List of CardCreate drafts in file order.
        """
        df = self._read_frame(file_bytes, filename)
        df = self._normalise_columns(df)

        if "title" not in df.columns:
            raise CardImportError("Card file needs a 'title' column")

        drafts: list[CardCreate] = []
        for _, row in df.fillna("").iterrows():
            title = str(row["title"]).strip()
            if not title:
                continue
            drafts.append(
                CardCreate(
                    title=title,
                    front_text=self._cell(row, "front_text"),
                    back_text=self._cell(row, "back_text"),
                    tags=self._split_tags(row.get("tags", "")),
                )
            )

        logger.info("Parsed %d cards from %s", len(drafts), filename)
        return drafts

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_frame(self, file_bytes: bytes, filename: str) -> pd.DataFrame:
        suffix = Path(filename or "").suffix.lower()
        if suffix not in self.SUPPORTED_SUFFIXES:
            raise CardImportError(
                f"Unsupported file type '{suffix or filename}'; "
                f"expected one of {', '.join(self.SUPPORTED_SUFFIXES)}"
            )

        buf = io.BytesIO(file_bytes)
        try:
            if suffix == ".csv":
                return pd.read_csv(buf, dtype=str, keep_default_na=False)
            if suffix == ".json":
                return pd.read_json(buf, orient="records", dtype=False)
            return pd.read_excel(buf, dtype=str, engine="openpyxl")
        except (ValueError, pd.errors.ParserError) as e:
            raise CardImportError(f"Could not read {filename}: {e}") from e

    @staticmethod
    def _normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
        renamed = {}
        for col in df.columns:
            key = re.sub(r"[^a-z]", "", str(col).lower())
            if key in _HEADER_ALIASES and _HEADER_ALIASES[key] not in renamed.values():
                renamed[col] = _HEADER_ALIASES[key]
        return df.rename(columns=renamed)[list(renamed.values())]

    @staticmethod
    def _cell(row: pd.Series, field: str) -> str:
        value = row.get(field, "")
        return "" if value is None else str(value).strip()

    @staticmethod
    def _split_tags(raw) -> list[str]:
        if isinstance(raw, list):
            parts = [str(t) for t in raw]
        else:
            parts = _TAG_SPLIT_RE.split(str(raw or ""))
        return unique_tags(parts)
