# pdflingo/processors/pdf_rebuilder.py
"""
Document rebuilding: translated elements -> new PDF.

Every source page gets an output page of the same (rotated) size. Elements
are drawn in list order:

- TextRun: font chosen by script and glyph coverage, text re-flowed into the
  original box (wrap first, then shrink down to a floor size)
- ImageRun: image re-encoded into the output document through a fallback
  chain, then placed with its original matrix
- LineRun: stroked as a straight segment

A failing element is logged and skipped; a failing page is recorded and the
rest of the document is still written.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pdflingo.config.settings import AppSettings
from pdflingo.models.types import (
    BBox,
    FontHandle,
    ImageHandle,
    ImageRun,
    LineRun,
    PageElement,
    RebuildResult,
    TextRun,
)
from pdflingo.services.exceptions import DrawError, RebuildError
from .pdf_font_manager import FontRegistry, _get_pdfminer, _get_pymupdf, is_cjk_codepoint
from .pdf_operators import PdfCanvas, PdfContentBuilder

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================
DEFAULT_FONT_SIZE = 10.0
MIN_STROKE_WIDTH = 0.5           # pt; hairlines (width 0) are drawn at least this wide
WIDTH_EPSILON = 0.01             # pt; measurement noise allowed when checking fit

# Filters whose decoded data is still an encoded picture, not raw samples
ENCODED_IMAGE_FILTERS = {"DCTDecode", "DCT", "JPXDecode", "JBIG2Decode", "CCITTFaxDecode", "CCF"}

DEVICE_COLORSPACES = {
    "DeviceGray": 1, "G": 1,
    "DeviceRGB": 3, "RGB": 3,
    "DeviceCMYK": 4, "CMYK": 4,
}
_COLORSPACE_ALIASES = {"G": "DeviceGray", "RGB": "DeviceRGB", "CMYK": "DeviceCMYK"}


# =============================================================================
# Text layout
# =============================================================================

def _tokenize_for_line_wrap(text: str) -> list[str]:
    """
    Tokenize text for line wrapping.

    For Latin text, splits by spaces preserving the space with the preceding word.
    For CJK text, each character is a separate token.

    Examples:
        "Hello world" -> ["Hello ", "world"]
        "日本語テスト" -> ["日", "本", "語", "テ", "ス", "ト"]
        "Hello 世界" -> ["Hello ", "世", "界"]
    """
    tokens = []
    current_token: list[str] = []

    for char in text:
        if char == '\n':
            if current_token:
                tokens.append(''.join(current_token))
                current_token = []
            tokens.append('\n')
        elif is_cjk_codepoint(ord(char)):
            if current_token:
                tokens.append(''.join(current_token))
                current_token = []
            tokens.append(char)
        elif char == ' ':
            current_token.append(char)
            tokens.append(''.join(current_token))
            current_token = []
        else:
            current_token.append(char)

    if current_token:
        tokens.append(''.join(current_token))

    return tokens


def split_text_into_lines_with_font(
    text: str,
    box_width: float,
    font_size: float,
    font: FontHandle,
) -> list[str]:
    """
    Split text into lines using actual font metrics.

    Explicit newlines always break. Latin text wraps at word boundaries,
    CJK text at character boundaries; a word wider than the box is broken
    by character.

    Returns:
        List of lines that fit within box_width (where possible)
    """
    if not text:
        return []
    if box_width <= 0:
        return text.split('\n')

    lines = []
    current_line_tokens: list[str] = []
    current_width = 0.0

    for token in _tokenize_for_line_wrap(text):
        if token == '\n':
            lines.append(''.join(current_line_tokens).rstrip(' '))
            current_line_tokens = []
            current_width = 0.0
            continue

        token_width = font.measure_width(token.rstrip(' '), font_size)

        if current_width + token_width <= box_width + WIDTH_EPSILON:
            current_line_tokens.append(token)
            current_width += font.measure_width(token, font_size)
        elif not current_line_tokens:
            # Token alone is wider than the box: break it by character
            chars_added: list[str] = []
            char_width_sum = 0.0
            for char in token:
                char_width = font.measure_width(char, font_size)
                if char_width_sum + char_width > box_width + WIDTH_EPSILON and chars_added:
                    lines.append(''.join(chars_added).rstrip(' '))
                    chars_added = [char]
                    char_width_sum = char_width
                else:
                    chars_added.append(char)
                    char_width_sum += char_width
            current_line_tokens = chars_added
            current_width = char_width_sum
        else:
            lines.append(''.join(current_line_tokens).rstrip(' '))
            token_stripped = token.lstrip(' ')
            current_line_tokens = [token_stripped] if token_stripped else []
            current_width = font.measure_width(token_stripped, font_size) if token_stripped else 0.0

    if current_line_tokens:
        lines.append(''.join(current_line_tokens).rstrip(' '))

    return lines


@dataclass
class TextLayout:
    font_size: float
    lines: list[str] = field(default_factory=list)
    wrapped: bool = False
    shrunk: bool = False
    overflow: bool = False


def line_capacity(box_height: float, font_size: float, line_height: float) -> int:
    """
    Number of lines of the given size that fit in the box (at least one).

    n lines need one font size for the first line plus one advance for each
    further line.
    """
    advance = font_size * line_height
    if advance <= 0:
        return 1
    return max(1, 1 + math.floor((box_height - font_size) / advance + 1e-6))


def layout_text(
    text: str,
    box: BBox,
    font_size: float,
    font: FontHandle,
    min_font_size: float = 2.0,
    shrink_step: float = 0.5,
    line_height: float = 1.2,
) -> TextLayout:
    """
    Fit text into a box.

    1. Original size, explicit line breaks only
    2. Original size, word-wrapped to the box width
    3. Shrink by shrink_step, re-wrapping each time, down to min_font_size

    If nothing fits, the floor size is used and overflow is flagged; text is
    never dropped.
    """
    size = font_size if font_size > 0 else DEFAULT_FONT_SIZE

    explicit_lines = text.split('\n')
    fits_width = all(
        font.measure_width(line, size) <= box.width + WIDTH_EPSILON
        for line in explicit_lines
    )
    if fits_width and len(explicit_lines) <= line_capacity(box.height, size, line_height):
        return TextLayout(font_size=size, lines=explicit_lines)

    lines = split_text_into_lines_with_font(text, box.width, size, font)
    if len(lines) <= line_capacity(box.height, size, line_height):
        return TextLayout(font_size=size, lines=lines, wrapped=True)

    candidate = size
    while True:
        next_size = max(min_font_size, round(candidate - shrink_step, 4))
        if next_size >= candidate:
            break
        candidate = next_size
        lines = split_text_into_lines_with_font(text, box.width, candidate, font)
        if len(lines) <= line_capacity(box.height, candidate, line_height):
            return TextLayout(font_size=candidate, lines=lines, wrapped=True, shrunk=True)

    logger.debug("Text overflows its box at %.1fpt: %r", candidate, text[:40])
    return TextLayout(
        font_size=candidate,
        lines=lines,
        wrapped=True,
        shrunk=candidate < size,
        overflow=True,
    )


# =============================================================================
# Image import
# =============================================================================

class ImageImporter:
    """
    Copies source images into the output document.

    Strategies, tried in order:
    1. raw pixel stream from the content walker, written as a new XObject
    2. decoded image bytes from the source document, converted via Pixmap
    3. structural copy of the original image object (masks dropped)
    """

    def __init__(self, source_doc, output_doc):
        self.source_doc = source_doc
        self.output_doc = output_doc
        self._imported: dict[object, int] = {}

    def import_image(self, handle: ImageHandle) -> int:
        """
        Returns:
            xref of the image XObject in the output document

        Raises:
            DrawError: every strategy failed
        """
        key = handle.xref if handle.xref is not None else id(handle.stream)
        if key in self._imported:
            return self._imported[key]

        errors = []
        strategies = (
            ("raw pixel stream", self._from_raw_stream),
            ("decoded bytes", self._from_decoded_bytes),
            ("object copy", self._copy_object),
        )
        for label, strategy in strategies:
            try:
                xref = strategy(handle)
            except DrawError as e:
                errors.append(f"{label}: {e}")
                continue
            except Exception as e:
                # PyMuPDF/pdfminer raise library-specific exception types
                errors.append(f"{label}: {type(e).__name__}: {e}")
                continue
            logger.debug("Imported image %s via %s -> xref %d", handle.name, label, xref)
            self._imported[key] = xref
            return xref

        raise DrawError(f"image {handle.name or handle.xref}: " + "; ".join(errors))

    def _write_image_xobject(
        self, width: int, height: int, colorspace: str, bpc: int, samples: bytes
    ) -> int:
        xref = self.output_doc.get_new_xref()
        self.output_doc.update_object(
            xref,
            f"<< /Type /XObject /Subtype /Image /Width {width} /Height {height} "
            f"/ColorSpace /{colorspace} /BitsPerComponent {bpc} >>",
        )
        self.output_doc.update_stream(xref, samples)
        return xref

    def _from_raw_stream(self, handle: ImageHandle) -> int:
        stream = handle.stream
        if stream is None:
            raise DrawError("no raw stream")
        pdfminer = _get_pdfminer()
        resolve1 = pdfminer['resolve1']
        PSLiteral = pdfminer['PSLiteral']

        filters = [
            f.name if isinstance(f, PSLiteral) else str(f)
            for f, _params in stream.get_filters()
        ]
        encoded = ENCODED_IMAGE_FILTERS.intersection(filters)
        if encoded:
            raise DrawError(f"stream holds an encoded picture ({', '.join(sorted(encoded))})")

        colorspace = resolve1(stream.get("ColorSpace") or stream.get("CS"))
        if isinstance(colorspace, PSLiteral):
            colorspace = colorspace.name
        if not isinstance(colorspace, str) or colorspace not in DEVICE_COLORSPACES:
            raise DrawError(f"unsupported colour space {colorspace!r}")
        components = DEVICE_COLORSPACES[colorspace]
        colorspace = _COLORSPACE_ALIASES.get(colorspace, colorspace)

        bpc = resolve1(stream.get("BitsPerComponent") or stream.get("BPC")) or 8
        width, height = handle.width, handle.height
        if width <= 0 or height <= 0:
            raise DrawError("missing image dimensions")

        data = stream.get_data()
        expected = (width * components * int(bpc) + 7) // 8 * height
        if len(data) < expected:
            raise DrawError(f"short pixel data ({len(data)} < {expected} bytes)")
        return self._write_image_xobject(width, height, colorspace, int(bpc), data[:expected])

    def _from_decoded_bytes(self, handle: ImageHandle) -> int:
        if handle.xref is None:
            raise DrawError("inline image has no object number")
        pymupdf = _get_pymupdf()
        info = self.source_doc.extract_image(handle.xref)
        if not info or not info.get("image"):
            raise DrawError("no decodable image data")
        pix = pymupdf.Pixmap(info["image"])
        if pix.alpha:
            pix = pymupdf.Pixmap(pix, 0)
        if pix.n not in (1, 3):
            pix = pymupdf.Pixmap(pymupdf.csRGB, pix)
        colorspace = "DeviceGray" if pix.n == 1 else "DeviceRGB"
        return self._write_image_xobject(pix.width, pix.height, colorspace, 8, pix.samples)

    def _copy_object(self, handle: ImageHandle) -> int:
        if handle.xref is None:
            raise DrawError("inline image has no object number")
        src, dst = self.source_doc, self.output_doc
        obj = src.xref_object(handle.xref, compressed=True)
        raw = src.xref_stream_raw(handle.xref)
        if not raw:
            raise DrawError("image object has no stream")

        xref = dst.get_new_xref()
        dst.update_object(xref, obj)
        dst.update_stream(xref, raw, compress=False)
        # update_stream(compress=False) drops the filter; the data is still encoded
        for key in ("Filter", "DecodeParms"):
            kind, value = src.xref_get_key(handle.xref, key)
            if kind != "null":
                dst.xref_set_key(xref, key, value)
        # References into the source document cannot be followed
        for key in ("SMask", "Mask"):
            dst.xref_set_key(xref, key, "null")
        cs_kind, cs_value = src.xref_get_key(handle.xref, "ColorSpace")
        if cs_kind in ("xref", "array"):
            dst.xref_set_key(xref, "ColorSpace", self._flatten_colorspace(cs_kind, cs_value))
        return xref

    def _flatten_colorspace(self, kind: str, value: str) -> str:
        """Best device colour space for an indirect or ICC-based colour space."""
        text = value
        if kind == "xref":
            text = self.source_doc.xref_object(int(value.split()[0]), compressed=True)
        if "/N 1" in text or "DeviceGray" in text:
            return "/DeviceGray"
        if "/N 4" in text or "DeviceCMYK" in text:
            return "/DeviceCMYK"
        return "/DeviceRGB"


# =============================================================================
# Document rebuilder
# =============================================================================

class DocumentRebuilder:
    """
    Writes translated page elements into a new PDF.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        font_registry: Optional[FontRegistry] = None,
    ):
        self.settings = settings or AppSettings()
        self.font_registry = font_registry or FontRegistry(
            font_cjk=self.settings.font_cjk,
            font_latin=self.settings.font_latin,
        )

    # ---------------------------------------------------------------------
    # Element drawing
    # ---------------------------------------------------------------------
    def draw_text_run(self, canvas: PdfCanvas, run: TextRun) -> Optional[TextLayout]:
        """Draw a text run re-flowed into its box. Returns the layout used."""
        text = run.display_text
        if not text.strip():
            return None

        font_id = self.font_registry.select_font_for_text(text)
        font = self.font_registry.get_font(font_id)
        if run.translated_text is None and run.font_size > 0:
            # Original wording already fitted this box at this size
            layout = TextLayout(font_size=run.font_size, lines=text.split('\n'))
        else:
            layout = layout_text(
                text,
                run.bbox,
                run.font_size,
                font,
                min_font_size=self.settings.min_font_size,
                shrink_step=self.settings.font_shrink_step,
                line_height=self.settings.line_height,
            )

        size = layout.font_size
        if size == run.font_size:
            x0, y = run.start_point.x, run.start_point.y
        else:
            x0, y = run.bbox.left, run.bbox.top - size
        advance = size * self.settings.line_height

        canvas.begin_text()
        try:
            canvas.set_fill_color(run.fill_color)
            canvas.set_font(font_id, size)
            if run.horizontal_scaling != 1.0:
                canvas.set_horizontal_scaling(run.horizontal_scaling)
            if run.translated_text is None:
                # Original spacing only fits the original text
                if run.char_spacing:
                    canvas.set_char_spacing(run.char_spacing)
                if run.word_spacing:
                    canvas.set_word_spacing(run.word_spacing)
            for index, line in enumerate(layout.lines):
                x = x0 if index == 0 else run.bbox.left
                canvas.move_text(x, y)
                if line:
                    canvas.show_text(line)
                y -= advance
        finally:
            canvas.end_text()
        return layout

    def draw_line_run(self, canvas: PdfCanvas, line: LineRun) -> None:
        canvas.save_state()
        try:
            canvas.set_stroke_width(line.width if line.width > 0 else MIN_STROKE_WIDTH)
            canvas.set_stroke_color(line.color)
            canvas.move_to(line.start.x, line.start.y)
            canvas.line_to(line.end.x, line.end.y)
            canvas.stroke()
        finally:
            canvas.restore_state()

    def draw_image_run(self, canvas: PdfCanvas, image: ImageRun, importer: ImageImporter) -> None:
        xref = importer.import_image(image.image)
        canvas.place_xobject(xref, image.matrix)

    def draw_element(
        self,
        canvas: PdfCanvas,
        element: PageElement,
        importer: Optional[ImageImporter] = None,
    ) -> bool:
        """
        Draw one element, isolating failures.

        Returns:
            True if drawn, False if the element failed and was skipped
        """
        if isinstance(element, TextRun):
            draw = lambda: self.draw_text_run(canvas, element)
        elif isinstance(element, ImageRun):
            if importer is None:
                raise ValueError("an ImageImporter is required to draw images")
            draw = lambda: self.draw_image_run(canvas, element, importer)
        elif isinstance(element, LineRun):
            draw = lambda: self.draw_line_run(canvas, element)
        else:
            raise TypeError(f"Unknown page element: {type(element).__name__}")

        try:
            draw()
        except DrawError as e:
            logger.warning("Page %d: skipped %s: %s", element.page_num, element.kind.value, e)
            return False
        except Exception as e:
            # PyMuPDF raises library-specific exception types
            logger.warning(
                "Page %d: failed to draw %s: %s: %s",
                element.page_num, element.kind.value, type(e).__name__, e,
            )
            return False
        return True

    # ---------------------------------------------------------------------
    # Pages / document
    # ---------------------------------------------------------------------
    def rebuild_page(
        self,
        output_doc,
        source_doc,
        page_num: int,
        elements: list[PageElement],
        importer: ImageImporter,
        result: RebuildResult,
    ) -> PdfContentBuilder:
        """
        Create the output page for a source page and draw its elements.

        Raises:
            RebuildError: the source page cannot be loaded
        """
        try:
            source_page = source_doc.load_page(page_num - 1)
            rect = source_page.rect
        except (IndexError, ValueError, RuntimeError) as e:
            raise RebuildError(f"cannot load source page {page_num}: {e}", page_num) from e

        # rect is the displayed (rotated) CropBox; walker coordinates are already
        # rotated and relative to its lower-left corner, so the new page is upright
        page = output_doc.new_page(width=rect.width, height=rect.height)
        canvas = PdfContentBuilder(output_doc, page, self.font_registry)
        for element in elements:
            if self.draw_element(canvas, element, importer):
                result.elements_drawn += 1
            else:
                result.elements_failed += 1
        canvas.apply_to_page()
        return canvas

    def rebuild(
        self,
        elements: list[PageElement],
        source_doc,
        output_path: Path,
    ) -> RebuildResult:
        """
        Write a new PDF with one page per source page.

        Args:
            elements: translated elements, ordered per page
            source_doc: open PyMuPDF document of the source PDF
            output_path: destination; written atomically

        Returns:
            RebuildResult with counts and failed pages

        Raises:
            RebuildError: source document unusable, or no page could be built
        """
        if source_doc is None or getattr(source_doc, "is_closed", False):
            raise RebuildError("source document is closed or invalid")

        pymupdf = _get_pymupdf()
        output_path = Path(output_path)
        result = RebuildResult(output_path=output_path)

        pages: dict[int, list[PageElement]] = {}
        for element in elements:
            pages.setdefault(element.page_num, []).append(element)

        output_doc = pymupdf.open()
        temp_path = output_path.with_name(output_path.name + ".partial")
        self.font_registry.reset_embedding()
        importer = ImageImporter(source_doc, output_doc)
        try:
            for page_num in range(1, source_doc.page_count + 1):
                try:
                    self.rebuild_page(
                        output_doc, source_doc, page_num,
                        pages.pop(page_num, []), importer, result,
                    )
                except RebuildError as e:
                    result.failed_pages[page_num] = str(e)
                    logger.error("Page %d: rebuild failed: %s", page_num, e)

            for page_num in sorted(pages):
                reason = f"missing source page {page_num}"
                result.failed_pages[page_num] = reason
                logger.error("Page %d: rebuild failed: %s", page_num, reason)

            result.page_count = output_doc.page_count
            if result.page_count == 0:
                raise RebuildError("no page could be rebuilt")

            try:
                output_doc.subset_fonts()
            except Exception as e:
                # Subsetting is an optimization; keep the full fonts
                logger.warning("Font subsetting failed: %s", e)

            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_doc.save(str(temp_path), garbage=3, deflate=True, use_objstms=1)
            os.replace(temp_path, output_path)
        finally:
            output_doc.close()
            if temp_path.exists():
                temp_path.unlink()

        logger.info(
            "Rebuilt %s: pages=%d, drawn=%d, failed=%d, failed_pages=%d",
            output_path.name, result.page_count, result.elements_drawn,
            result.elements_failed, len(result.failed_pages),
        )
        return result
