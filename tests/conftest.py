# tests/conftest.py
"""Shared fixtures for pdflingo tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


# Ensure the project root is importable when running `pytest` via its entrypoint,
# where `sys.path[0]` may not be the repo root.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from pdflingo.models.types import BBox, FontHandle, Point, TextRun  # noqa: E402


class FixedWidthFont(FontHandle):
    """FontHandle where every character is `advance` em wide."""

    def __init__(self, name: str = "fixed", advance: float = 0.5, missing: str = ""):
        self._name = name
        self.advance = advance
        self.missing = {ord(c) for c in missing}

    @property
    def name(self) -> str:
        return self._name

    def contains_codepoint(self, codepoint: int) -> bool:
        return codepoint not in self.missing

    def measure_width(self, text: str, size: float) -> float:
        return len(text) * self.advance * size


def _make_run(
    text: str = "Hello",
    x: float = 72.0,
    y: float = 700.0,
    size: float = 10.0,
    width: float | None = None,
    page_num: int = 1,
    font_name: str = "Helvetica",
    **kwargs,
) -> TextRun:
    """Text run whose baseline starts at (x, y); box spans descent to ascent."""
    if width is None:
        width = len(text) * size * 0.5
    return TextRun(
        page_num=page_num,
        text=text,
        bbox=BBox(x, y - size * 0.2, width, size),
        start_point=Point(x, y),
        end_point=Point(x + width, y),
        font_name=font_name,
        font_size=size,
        **kwargs,
    )


@pytest.fixture
def make_run():
    """Factory for TextRun instances."""
    return _make_run


@pytest.fixture
def fixed_font():
    return FixedWidthFont()


@pytest.fixture
def font_class():
    """FontHandle class with fixed advances and configurable missing glyphs."""
    return FixedWidthFont


@pytest.fixture
def sample_pdf(tmp_path):
    """Two-page PDF with a paragraph, a ruled 2x2 table and an image."""
    pymupdf = pytest.importorskip("pymupdf")

    path = tmp_path / "sample.pdf"
    doc = pymupdf.open()

    page = doc.new_page(width=595, height=842)
    page.insert_text((72, 100), "Layout preserving translation keeps", fontsize=11)
    page.insert_text((72, 113), "every paragraph inside its box.", fontsize=11)
    # Ruled table: rows at y = 300/330/360, columns at x = 72/200/328
    for y in (300, 330, 360):
        page.draw_line((72, y), (328, y), width=1)
    for x in (72, 200, 328):
        page.draw_line((x, 300), (x, 360), width=1)
    page.insert_text((80, 320), "Name", fontsize=10)
    page.insert_text((208, 320), "Value", fontsize=10)

    pix = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, 8, 8), False)
    pix.set_rect(pix.irect, (200, 30, 30))
    page.insert_image(pymupdf.Rect(400, 400, 464, 464), pixmap=pix)

    page2 = doc.new_page(width=842, height=595)
    page2.insert_text((72, 72), "Second page", fontsize=14)

    doc.save(str(path))
    doc.close()
    return path
