"""
Response helpers shared by the routers.

Header values must be latin-1, so user-provided names (sheet names,
uploaded file names) go out as an ASCII fallback plus an RFC 5987
``filename*`` parameter carrying the UTF-8 original.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional
from urllib.parse import quote

from fastapi.responses import Response

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def ascii_filename(filename: str, default: str = "download") -> str:
    folded = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    cleaned = _UNSAFE_FILENAME_RE.sub("_", folded).strip("._")
    return cleaned or default


def content_disposition(filename: str, disposition: str = "inline") -> str:
    fallback = ascii_filename(filename)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def pdf_response(pdf_bytes: bytes, filename: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(filename)},
    )


def image_response(data: bytes, mime: Optional[str], filename: Optional[str] = None) -> Response:
    headers = {"Cross-Origin-Resource-Policy": "cross-origin"}
    if filename:
        headers["Content-Disposition"] = content_disposition(filename)
    return Response(content=data, media_type=mime or "application/octet-stream", headers=headers)
