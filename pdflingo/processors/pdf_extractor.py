# pdflingo/processors/pdf_extractor.py
"""
Element extraction: content events -> raw page elements.

ElementExtractor receives the events of one page (see pdf_converter) and
turns each one into at most one TextRun, ImageRun or LineRun. Text runs are
classified as TEXT or FORMULA here; nothing is merged yet.
"""

import logging
from typing import Optional

from pdflingo.models.types import (
    BBox,
    ElementKind,
    ImageRun,
    LineRun,
    PageElement,
    TextRun,
)
from pdflingo.services.exceptions import ExtractionError
from .pdf_converter import (
    ContentEvent,
    ImagePaintEvent,
    StrokePathEvent,
    TextShowEvent,
)

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Font name fragments that mark a math font (case-insensitive)
MATH_FONT_KEYWORDS = (
    "math", "symbol", "mt extra", "euclid", "mathematical",
    "cambriamath", "cmsy", "cmex", "ams",
)

# Unicode blocks that make short runs look like formulas
MATH_CHAR_RANGES = (
    (0x2200, 0x22FF),  # Mathematical Operators
    (0x2190, 0x21FF),  # Arrows
    (0x0370, 0x03FF),  # Greek and Coptic
    (0x2A00, 0x2AFF),  # Supplemental Mathematical Operators
    (0x27C0, 0x27EF),  # Miscellaneous Mathematical Symbols-A
)
FORMULA_MAX_LENGTH = 20          # Longer runs with math chars are still prose

LINE_MIN_LENGTH = 5.0            # pt; shorter strokes are ticks/underlines of glyphs
LINE_AXIS_TOLERANCE = 1.5        # pt; max drift for horizontal/vertical

ESTIMATED_CHAR_WIDTH = 0.6       # x font size, when the box has no width
ESTIMATED_LINE_HEIGHT = 1.2      # x font size, when the box has no height


# =============================================================================
# Classification helpers
# =============================================================================

def is_math_font(font_name: str) -> bool:
    name = (font_name or "").lower()
    return any(keyword in name for keyword in MATH_FONT_KEYWORDS)


def has_math_chars(text: str) -> bool:
    return any(
        lo <= ord(c) <= hi
        for c in text
        for lo, hi in MATH_CHAR_RANGES
    )


def classify_text_kind(text: str, font_name: str) -> ElementKind:
    """FORMULA for math fonts or short runs with math symbols, else TEXT."""
    if is_math_font(font_name):
        return ElementKind.FORMULA
    if has_math_chars(text) and len(text) < FORMULA_MAX_LENGTH:
        return ElementKind.FORMULA
    return ElementKind.TEXT


def should_translate(text: str) -> bool:
    """
    Check if text should be sent for translation.

    Skips empty, whitespace-only and numbers-only text.
    """
    text = text.strip()
    if not text:
        return False
    if text.replace('.', '').replace(',', '').replace('-', '').replace(' ', '').isdigit():
        return False
    return True


# =============================================================================
# Extractor
# =============================================================================

class ElementExtractor:
    """
    Listener for one page's content events.

    Call it (or dispatch()) with each event; results accumulate in
    ``elements`` in content-stream order.
    """

    def __init__(self, page_num: int):
        self.page_num = page_num
        self.elements: list[PageElement] = []
        self.dropped = 0

    def __call__(self, event: ContentEvent) -> None:
        self.dispatch(event)

    def dispatch(self, event: ContentEvent) -> None:
        try:
            if isinstance(event, TextShowEvent):
                element = self.on_text_show(event)
            elif isinstance(event, ImagePaintEvent):
                element = self.on_image_paint(event)
            elif isinstance(event, StrokePathEvent):
                element = None
                for line in self.on_stroke_path(event):
                    self.elements.append(line)
            else:
                raise TypeError(f"Unknown content event: {type(event).__name__}")
        except (ExtractionError, ValueError, AttributeError) as e:
            self.dropped += 1
            logger.warning("Page %d: dropped element: %s", self.page_num, e)
            return
        if element is not None:
            self.elements.append(element)

    def on_text_show(self, event: TextShowEvent) -> Optional[TextRun]:
        text = event.text
        if not text or not text.strip():
            return None
        if event.font_size is None or event.font_size <= 0:
            raise ExtractionError(f"text {text[:20]!r} has no usable font size")

        bbox = self._text_bbox(event)
        kind = classify_text_kind(text, event.font_name)
        return TextRun(
            page_num=self.page_num,
            text=text,
            bbox=bbox,
            start_point=event.baseline_start,
            end_point=event.baseline_end,
            font_name=event.font_name,
            font_size=event.font_size,
            font=event.font,
            fill_color=event.fill_color,
            char_spacing=event.char_spacing,
            word_spacing=event.word_spacing,
            horizontal_scaling=event.horizontal_scaling,
            kind=kind,
            needs_translation=kind == ElementKind.TEXT and should_translate(text),
        )

    def _text_bbox(self, event: TextShowEvent) -> BBox:
        size = event.font_size
        box = event.bbox
        if box is None:
            left, bottom = event.baseline_start.x, event.baseline_start.y
            width = height = 0.0
        else:
            left, bottom, width, height = box.x, box.y, box.width, box.height
        if width <= 0:
            width = size * len(event.text) * ESTIMATED_CHAR_WIDTH
        if height <= 0:
            height = size * ESTIMATED_LINE_HEIGHT
        return BBox(left, bottom, width, height)

    def on_image_paint(self, event: ImagePaintEvent) -> ImageRun:
        if event.image is None or event.matrix is None:
            raise ExtractionError("image without handle or placement matrix")
        return ImageRun(page_num=self.page_num, image=event.image, matrix=event.matrix)

    def on_stroke_path(self, event: StrokePathEvent) -> list[LineRun]:
        """Keep single straight, axis-aligned segments of sufficient length."""
        lines = []
        for subpath in event.subpaths:
            if len(subpath) != 1 or subpath[0][0] != "l":
                continue
            _, start, end = subpath[0]
            line = LineRun(
                page_num=self.page_num,
                start=start,
                end=end,
                width=event.line_width,
                color=event.stroke_color,
            )
            if line.length < LINE_MIN_LENGTH:
                continue
            if not (line.is_horizontal(LINE_AXIS_TOLERANCE) or line.is_vertical(LINE_AXIS_TOLERANCE)):
                continue
            lines.append(line)
        return lines
