"""Builders shared by the test modules."""

import io

from PIL import Image
from pypdf import PdfReader

from app.models.schemas import Placement


def make_png(width=40, height=60, color=(200, 30, 30)) -> bytes:
    img = Image.new("RGB", (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def read_pdf(data: bytes) -> PdfReader:
    assert data.startswith(b"%PDF")
    return PdfReader(io.BytesIO(data))


def make_placement(pid="p1", mini_id="m1", x=0.5, y=0.5, width=0.75, height=0.75, **kwargs):
    return Placement(id=pid, mini_id=mini_id, x=x, y=y, width=width, height=height, **kwargs)
