# pdflingo/processors/pdf_converter.py
"""
PDF content walker built on pdfminer.six.

pdfminer's interpreter drives a device with one call per glyph, image and
path. ContentWalker is a PDFLayoutAnalyzer subclass that regroups those
calls into one event per primitive and hands them to a listener:

- TextShowEvent: one text-showing operator (Tj / TJ / ' / ")
- ImagePaintEvent: one image XObject or inline image
- StrokePathEvent: one path painting operator with stroking enabled

Coordinates in events are user space of the displayed page (CTM applied),
with the origin at the bottom-left corner of the visible CropBox.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pdflingo.models.types import (
    BBox,
    Color,
    FontHandle,
    ImageHandle,
    Matrix,
    Point,
)
from pdflingo.services.exceptions import ExtractionError
from .pdf_font_manager import SourceFontHandle, _get_pdfminer

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass
class TextShowEvent:
    text: str
    font_name: str
    font: Optional[FontHandle]
    font_size: float                 # Effective size in user space
    baseline_start: Point
    baseline_end: Point
    bbox: Optional[BBox]
    fill_color: Color
    char_spacing: float = 0.0
    word_spacing: float = 0.0
    horizontal_scaling: float = 1.0


@dataclass
class ImagePaintEvent:
    image: Optional[ImageHandle]
    matrix: Optional[Matrix]


@dataclass
class StrokePathEvent:
    """
    Stroked path split into subpaths.

    Each subpath is a list of segments: ('l', p0, p1), ('c', p0, ..., p3)
    or ('re', p0, p1, p2, p3). Closing ('h') adds no segment.
    """
    subpaths: list[list[tuple]] = field(default_factory=list)
    line_width: float = 1.0
    stroke_color: Color = field(default_factory=Color)


ContentEvent = Union[TextShowEvent, ImagePaintEvent, StrokePathEvent]


def normalize_font_name(fontname: Any) -> str:
    """Decode a pdfminer font name and drop the subset tag ("ABCDEF+Arial" -> "Arial")."""
    if fontname is None:
        return ""
    if isinstance(fontname, bytes):
        fontname = fontname.decode("latin-1")
    name = str(fontname)
    prefix, sep, rest = name.partition("+")
    if sep and len(prefix) == 6 and prefix.isupper():
        return rest
    return name


def cropbox_offset(cropbox, ctm) -> tuple[float, float]:
    """
    Lower-left corner of the CropBox in the page space pdfminer sets up
    (MediaBox origin moved to 0,0 and /Rotate applied by ctm).
    """
    a, b, c, d, e, f = (float(v) for v in ctm)
    x0, y0, x1, y1 = (float(v) for v in cropbox)
    corners = [(a * x + c * y + e, b * x + d * y + f) for x in (x0, x1) for y in (y0, y1)]
    return min(p[0] for p in corners), min(p[1] for p in corners)


# =============================================================================
# ContentWalker (pdfminer device)
# =============================================================================

_ContentWalker = None


def get_content_walker_class():
    """
    Get ContentWalker class (created lazily to keep pdfminer import deferred).

    Returns:
        ContentWalker class
    """
    global _ContentWalker
    if _ContentWalker is not None:
        return _ContentWalker

    pdfminer = _get_pdfminer()
    PDFLayoutAnalyzer = pdfminer['PDFLayoutAnalyzer']
    LTChar = pdfminer['LTChar']
    PDFUnicodeNotDefined = pdfminer['PDFUnicodeNotDefined']
    apply_matrix_pt = pdfminer['apply_matrix_pt']
    mult_matrix = pdfminer['mult_matrix']
    resolve1 = pdfminer['resolve1']

    class ContentWalker(PDFLayoutAnalyzer):
        """
        Device that turns interpreter callbacks into content events.

        Glyphs of one text-show operator are buffered in render_char and
        emitted together once render_string returns.
        """

        def __init__(self, rsrcmgr):
            PDFLayoutAnalyzer.__init__(self, rsrcmgr, pageno=1, laparams=None)
            self.listener: Optional[Callable[[ContentEvent], None]] = None
            self._glyphs: list = []
            self._font_handles: dict[int, SourceFontHandle] = {}
            self._page_shift = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

        def begin_page(self, page, ctm):
            cropbox = [resolve1(v) for v in resolve1(page.cropbox)]
            dx, dy = cropbox_offset(cropbox, ctm)
            self._page_shift = (1.0, 0.0, 0.0, 1.0, -dx, -dy)
            PDFLayoutAnalyzer.begin_page(self, page, ctm)

        def set_ctm(self, ctm):
            # The interpreter resets the CTM per operator; keep the CropBox shift
            self.ctm = mult_matrix(ctm, self._page_shift)

        def _emit(self, event: ContentEvent) -> None:
            if self.listener is not None:
                self.listener(event)

        def receive_layout(self, ltpage):
            # Layout analysis is not used
            pass

        # ---------------------------------------------------------------
        # Text
        # ---------------------------------------------------------------
        def render_string(self, textstate, seq, ncs, graphicstate):
            self._glyphs = []
            try:
                PDFLayoutAnalyzer.render_string(self, textstate, seq, ncs, graphicstate)
            except (KeyError, TypeError, ValueError, IndexError) as e:
                logger.warning("Skipping unreadable text operator: %s", e)
                self._glyphs = []
                return
            glyphs, self._glyphs = self._glyphs, []
            if not glyphs:
                return
            self._emit(self._build_text_event(textstate, glyphs, graphicstate))

        def render_char(self, matrix, font, fontsize, scaling, rise, cid, ncs,
                        graphicstate):
            try:
                text = font.to_unichr(cid)
            except PDFUnicodeNotDefined:
                text = ""
            textwidth = font.char_width(cid)
            textdisp = font.char_disp(cid)
            item = LTChar(matrix, font, fontsize, scaling, rise, text,
                          textwidth, textdisp, ncs, graphicstate)
            self._glyphs.append(item)
            return item.adv

        def _build_text_event(self, textstate, glyphs, graphicstate) -> TextShowEvent:
            font = textstate.font
            first, last = glyphs[0], glyphs[-1]
            x0 = min(g.x0 for g in glyphs)
            y0 = min(g.y0 for g in glyphs)
            x1 = max(g.x1 for g in glyphs)
            y1 = max(g.y1 for g in glyphs)
            origin_y = first.matrix[5]
            font_handle = self._font_handles.get(id(font))
            if font_handle is None:
                font_handle = SourceFontHandle(normalize_font_name(font.fontname), font)
                self._font_handles[id(font)] = font_handle
            return TextShowEvent(
                text="".join(g.get_text() for g in glyphs),
                font_name=font_handle.name,
                font=font_handle,
                font_size=first.size,
                baseline_start=Point(first.matrix[4], origin_y),
                baseline_end=Point(last.x1, last.matrix[5]),
                bbox=BBox.from_points(x0, y0, x1, y1),
                fill_color=Color.from_value(getattr(graphicstate, "ncolor", None)),
                char_spacing=textstate.charspace or 0.0,
                word_spacing=textstate.wordspace or 0.0,
                horizontal_scaling=(textstate.scaling or 100.0) / 100.0,
            )

        # ---------------------------------------------------------------
        # Images
        # ---------------------------------------------------------------
        def render_image(self, name, stream):
            # begin_figure() already multiplied the image CTM into the figure matrix
            matrix = Matrix.from_tuple(self.cur_item.matrix)
            width = _stream_int(stream, "Width", "W")
            height = _stream_int(stream, "Height", "H")
            handle = ImageHandle(
                xref=getattr(stream, "objid", None),
                name=str(name),
                width=width,
                height=height,
                stream=stream,
            )
            self._emit(ImagePaintEvent(image=handle, matrix=matrix))

        # ---------------------------------------------------------------
        # Paths
        # ---------------------------------------------------------------
        def paint_path(self, gstate, stroke, fill, evenodd, path):
            if not stroke:
                return
            ctm = self.ctm

            def pt(x, y):
                return Point(*apply_matrix_pt(ctm, (x, y)))

            subpaths: list[list[tuple]] = []
            current: list[tuple] = []
            cursor = start = None
            for op in path:
                kind = op[0]
                if kind == "m":
                    if current:
                        subpaths.append(current)
                    current = []
                    cursor = start = pt(op[1], op[2])
                elif kind == "l" and cursor is not None:
                    end = pt(op[1], op[2])
                    current.append(("l", cursor, end))
                    cursor = end
                elif kind in ("c", "v", "y") and cursor is not None:
                    coords = [pt(op[i], op[i + 1]) for i in range(1, len(op), 2)]
                    current.append(("c", cursor, *coords))
                    cursor = coords[-1]
                elif kind == "h":
                    cursor = start
                elif kind == "re":
                    if current:
                        subpaths.append(current)
                    x, y, w, h = op[1:5]
                    corners = (pt(x, y), pt(x + w, y), pt(x + w, y + h), pt(x, y + h))
                    subpaths.append([("re", *corners)])
                    current = []
                    cursor = start = corners[0]
            if current:
                subpaths.append(current)

            scale = math.sqrt(abs(ctm[0] * ctm[3] - ctm[1] * ctm[2])) or 1.0
            self._emit(StrokePathEvent(
                subpaths=subpaths,
                line_width=(gstate.linewidth or 0.0) * scale,
                stroke_color=Color.from_value(getattr(gstate, "scolor", None)),
            ))

    _ContentWalker = ContentWalker
    return _ContentWalker


def _stream_int(stream, *keys) -> int:
    resolve1 = _get_pdfminer()['resolve1']
    for key in keys:
        try:
            value = resolve1(stream.get(key))
        except (AttributeError, KeyError, TypeError):
            value = None
        if isinstance(value, (int, float)):
            return int(value)
    return 0


# =============================================================================
# Document walking
# =============================================================================

def walk_pdf(
    pdf_path: Path,
    listener_factory: Callable[[int], Callable[[ContentEvent], None]],
    page_numbers: Optional[set[int]] = None,
) -> int:
    """
    Walk every page of a PDF in order, one listener per page.

    Args:
        pdf_path: source PDF
        listener_factory: called with the 1-based page number, returns the
            callable that receives that page's events
        page_numbers: restrict walking to these 1-based pages

    Returns:
        Number of pages in the document

    Raises:
        ExtractionError: the document cannot be parsed
    """
    pdfminer = _get_pdfminer()
    PDFParser = pdfminer['PDFParser']
    PDFDocument = pdfminer['PDFDocument']
    PDFPage = pdfminer['PDFPage']
    PDFResourceManager = pdfminer['PDFResourceManager']
    PDFPageInterpreter = pdfminer['PDFPageInterpreter']
    PDFSyntaxError = pdfminer['PDFSyntaxError']

    page_count = 0
    try:
        with open(pdf_path, 'rb') as f:
            parser = PDFParser(f)
            document = PDFDocument(parser)
            rsrcmgr = PDFResourceManager()
            device = get_content_walker_class()(rsrcmgr)
            interpreter = PDFPageInterpreter(rsrcmgr, device)

            for page_num, page in enumerate(PDFPage.create_pages(document), start=1):
                page_count = page_num
                if page_numbers is not None and page_num not in page_numbers:
                    continue
                device.listener = listener_factory(page_num)
                try:
                    interpreter.process_page(page)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Page %d: content walk stopped early: %s", page_num, e)
                finally:
                    device.listener = None
    except PDFSyntaxError as e:
        raise ExtractionError(f"Invalid PDF file: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Cannot read PDF file {pdf_path}: {e}") from e

    return page_count
