# pdflingo/processors/pdf_operators.py
"""
PDF Operator Generation for pdflingo.

Features:
- PdfCanvas: the drawing surface the rebuilder talks to
- PdfOperatorGenerator: content-stream operator strings and glyph encoding
- PdfContentBuilder: PdfCanvas that collects operators and writes them,
  together with font and XObject resources, into a PyMuPDF page
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from pdflingo.models.types import BLACK, Color, Matrix
from .pdf_font_manager import FontRegistry

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Drawing surface
# =============================================================================
class PdfCanvas(ABC):
    """Drawing surface for one output page."""

    # Graphics state
    @abstractmethod
    def save_state(self) -> None: ...

    @abstractmethod
    def restore_state(self) -> None: ...

    # Text
    @abstractmethod
    def begin_text(self) -> None: ...

    @abstractmethod
    def end_text(self) -> None: ...

    @abstractmethod
    def set_font(self, font_id: str, size: float) -> None: ...

    @abstractmethod
    def set_fill_color(self, color: Color) -> None: ...

    @abstractmethod
    def set_char_spacing(self, spacing: float) -> None: ...

    @abstractmethod
    def set_word_spacing(self, spacing: float) -> None: ...

    @abstractmethod
    def set_horizontal_scaling(self, scaling: float) -> None:
        """scaling is a ratio, 1.0 == 100 %."""

    @abstractmethod
    def move_text(self, x: float, y: float) -> None:
        """Start a new text line with its baseline origin at (x, y)."""

    @abstractmethod
    def show_text(self, text: str) -> None: ...

    # Paths
    @abstractmethod
    def set_stroke_width(self, width: float) -> None: ...

    @abstractmethod
    def set_stroke_color(self, color: Color) -> None: ...

    @abstractmethod
    def move_to(self, x: float, y: float) -> None: ...

    @abstractmethod
    def line_to(self, x: float, y: float) -> None: ...

    @abstractmethod
    def stroke(self) -> None: ...

    # XObjects
    @abstractmethod
    def place_xobject(self, xref: int, matrix: Matrix) -> None:
        """Paint the XObject with the given placement matrix."""


# =============================================================================
# PDF Operator Generator
# =============================================================================
class PdfOperatorGenerator:
    """
    Low-level PDF operator generator.
    """

    def __init__(self, font_registry: FontRegistry):
        self.font_registry = font_registry

    def raw_string(self, font_id: str, text: str) -> str:
        """
        Encode text as glyph indices (4-digit hex per character).

        Bundled fonts are embedded with Identity-H and no CIDToGIDMap, so the
        CID written to the stream is the glyph index itself.
        """
        hex_parts = []
        missing_glyphs = []
        for char in text:
            glyph_idx = self.font_registry.get_glyph_id(font_id, char)
            if glyph_idx == 0 and not char.isspace():
                missing_glyphs.append(char)
            hex_parts.append(f'{glyph_idx:04X}')

        if missing_glyphs and logger.isEnabledFor(logging.DEBUG):
            logger.debug("Missing glyphs in font %s: %s", font_id, missing_glyphs[:10])
        return ''.join(hex_parts)

    @staticmethod
    def color_op(color: Color, stroke: bool = False) -> str:
        """Colour operator for 1 (gray), 3 (RGB) or 4 (CMYK) components."""
        components = color.components
        ops = {1: "g", 3: "rg", 4: "k"}
        op = ops.get(len(components))
        if op is None:
            components, op = BLACK.components, "g"
        if stroke:
            op = op.upper()
        values = " ".join(f"{c:f}" for c in components)
        return f"{values} {op} "

    @staticmethod
    def matrix_op(matrix: Matrix) -> str:
        return " ".join(f"{v:f}" for v in matrix.as_tuple()) + " cm "


# =============================================================================
# Content builder
# =============================================================================
def _merge_resource_dict(existing: str, entries: dict[str, int]) -> str:
    """Add "/name xref 0 R" entries to a PDF dict string, skipping names already present."""
    additions = [
        f"/{name} {xref} 0 R"
        for name, xref in entries.items()
        if not re.search(rf"/{re.escape(name)}(?![A-Za-z0-9_.\-])", existing)
    ]
    if not additions:
        return existing
    existing = existing.strip()
    if existing.endswith(">>"):
        return existing[:-2] + " " + " ".join(additions) + " >>"
    return "<< " + " ".join(additions) + " >>"


class PdfContentBuilder(PdfCanvas):
    """
    PdfCanvas that builds a content stream for a PyMuPDF page.

    Operators are collected in memory; apply_to_page() writes them as the
    page's content stream and registers the fonts and images they use.
    """

    def __init__(self, doc, page, font_registry: FontRegistry):
        self.doc = doc
        self.page = page
        self.font_registry = font_registry
        self.generator = PdfOperatorGenerator(font_registry)
        self.operators: list[str] = []
        self._in_text_block = False
        self._current_font: Optional[str] = None
        self._used_fonts: dict[str, int] = {}     # font_id -> xref
        self._xobjects: dict[int, str] = {}       # xref -> resource name

    def save_state(self) -> None:
        self.operators.append("q ")

    def restore_state(self) -> None:
        self.operators.append("Q ")

    def begin_text(self) -> None:
        if not self._in_text_block:
            self.operators.append("BT ")
            self._in_text_block = True

    def end_text(self) -> None:
        if self._in_text_block:
            self.operators.append("ET ")
            self._in_text_block = False
            self._current_font = None

    def set_font(self, font_id: str, size: float) -> None:
        if font_id not in self._used_fonts:
            self._used_fonts[font_id] = self.font_registry.ensure_embedded(self.page, font_id)
        self._current_font = font_id
        self.operators.append(f"/{font_id} {size:f} Tf ")

    def set_fill_color(self, color: Color) -> None:
        self.operators.append(self.generator.color_op(color))

    def set_char_spacing(self, spacing: float) -> None:
        self.operators.append(f"{spacing:f} Tc ")

    def set_word_spacing(self, spacing: float) -> None:
        self.operators.append(f"{spacing:f} Tw ")

    def set_horizontal_scaling(self, scaling: float) -> None:
        self.operators.append(f"{scaling * 100:f} Tz ")

    def move_text(self, x: float, y: float) -> None:
        self.operators.append(f"1 0 0 1 {x:f} {y:f} Tm ")

    def show_text(self, text: str) -> None:
        if self._current_font is None:
            raise ValueError("show_text called before set_font")
        rtxt = self.generator.raw_string(self._current_font, text)
        self.operators.append(f"[<{rtxt}>] TJ ")

    def set_stroke_width(self, width: float) -> None:
        self.operators.append(f"{width:f} w ")

    def set_stroke_color(self, color: Color) -> None:
        self.operators.append(self.generator.color_op(color, stroke=True))

    def move_to(self, x: float, y: float) -> None:
        self.operators.append(f"{x:f} {y:f} m ")

    def line_to(self, x: float, y: float) -> None:
        self.operators.append(f"{x:f} {y:f} l ")

    def stroke(self) -> None:
        self.operators.append("S ")

    def place_xobject(self, xref: int, matrix: Matrix) -> None:
        name = self._xobjects.get(xref)
        if name is None:
            name = f"Im{len(self._xobjects) + 1}"
            self._xobjects[xref] = name
        self.operators.append(f"q {self.generator.matrix_op(matrix)}/{name} Do Q ")

    def build(self) -> bytes:
        """Build content stream as bytes."""
        if self._in_text_block:
            self.end_text()
        return "".join(self.operators).encode("latin-1")

    def apply_to_page(self) -> bool:
        """
        Write the collected operators as the page's content stream.

        Returns:
            False if nothing was drawn (the page is left untouched)
        """
        if not self.operators:
            return False

        stream_bytes = self.build()
        new_xref = self.doc.get_new_xref()
        # get_new_xref only allocates the number; make it a dict before adding a stream
        self.doc.update_object(new_xref, "<< >>")
        self.doc.update_stream(new_xref, stream_bytes)
        self.doc.xref_set_key(self.page.xref, "Contents", f"{new_xref} 0 R")

        self._update_resources("Font", dict(self._used_fonts))
        self._update_resources(
            "XObject", {name: xref for xref, name in self._xobjects.items()}
        )
        logger.debug(
            "apply_to_page: page=%d, stream_bytes_len=%d, fonts=%s, xobjects=%d",
            self.page.number, len(stream_bytes), list(self._used_fonts), len(self._xobjects),
        )
        return True

    def _update_resources(self, category: str, entries: dict[str, int]) -> None:
        """
        Add entries to the page's /Resources/<category> dictionary.

        Handles resources given inline, by reference, or missing, and a
        category dictionary given inline, by reference, or missing.
        """
        if not entries:
            return

        doc = self.doc
        page_xref = self.page.xref
        res_type, res_value = doc.xref_get_key(page_xref, "Resources")
        if res_type == "xref":
            target_xref = int(res_value.split()[0])
            key = category
        else:
            if res_type != "dict":
                doc.xref_set_key(page_xref, "Resources", "<< >>")
            target_xref = page_xref
            key = f"Resources/{category}"

        dict_type, dict_value = doc.xref_get_key(target_xref, key)
        if dict_type == "xref":
            dict_xref = int(dict_value.split()[0])
            existing = doc.xref_object(dict_xref, compressed=True)
            doc.update_object(dict_xref, _merge_resource_dict(existing, entries))
        elif dict_type == "dict":
            doc.xref_set_key(target_xref, key, _merge_resource_dict(dict_value, entries))
        else:
            doc.xref_set_key(target_xref, key, _merge_resource_dict("", entries))
