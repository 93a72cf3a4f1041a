# pdflingo/models/types.py
"""
Core data types for pdflingo.

Geometry primitives, the page element variants produced by extraction
(TextRun / ImageRun / LineRun), and the progress/result types reported by
the pipeline.

All coordinates are PDF user space of the displayed page: points, origin at
the bottom-left corner, Y growing upwards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class BBox:
    """
    Axis-aligned bounding box.

    (x, y) is the bottom-left corner. Width and height are never negative.
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"BBox extent must be non-negative, got {self.width}x{self.height}"
            )

    @classmethod
    def from_points(cls, x0: float, y0: float, x1: float, y1: float) -> "BBox":
        """Build a box from two opposite corners in any order."""
        left, right = min(x0, x1), max(x0, x1)
        bottom, top = min(y0, y1), max(y0, y1)
        return cls(left, bottom, right - left, top - bottom)

    @property
    def left(self) -> float:
        return self.x

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y

    @property
    def top(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def union(self, other: "BBox") -> "BBox":
        return BBox.from_points(
            min(self.left, other.left),
            min(self.bottom, other.bottom),
            max(self.right, other.right),
            max(self.top, other.top),
        )

    def strictly_contains(self, point: Point, padding: float = 0.0) -> bool:
        """True if point lies strictly inside the box shrunk by padding on every side."""
        return (
            self.left + padding < point.x < self.right - padding
            and self.bottom + padding < point.y < self.top - padding
        )


@dataclass(frozen=True)
class Matrix:
    """2D affine transform [a b c d e f] as used by the PDF cm operator."""
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    @classmethod
    def from_tuple(cls, values) -> "Matrix":
        a, b, c, d, e, f = (float(v) for v in values)
        return cls(a, b, c, d, e, f)

    def as_tuple(self) -> tuple[float, float, float, float, float, float]:
        return (self.a, self.b, self.c, self.d, self.e, self.f)

    def transform_point(self, x: float, y: float) -> Point:
        return Point(
            self.a * x + self.c * y + self.e,
            self.b * x + self.d * y + self.f,
        )

    def unit_square_bounds(self) -> BBox:
        """Axis-aligned bounds of the unit square mapped through this matrix."""
        corners = [self.transform_point(x, y) for x, y in ((0, 0), (1, 0), (0, 1), (1, 1))]
        xs = [p.x for p in corners]
        ys = [p.y for p in corners]
        return BBox.from_points(min(xs), min(ys), max(xs), max(ys))


@dataclass(frozen=True)
class Color:
    """
    Device colour: 1 component (gray), 3 (RGB) or 4 (CMYK), each 0.0 - 1.0.
    """
    components: tuple[float, ...] = (0.0,)

    @classmethod
    def from_value(cls, value: Any) -> "Color":
        """
        Normalize a colour as reported by the PDF engine.

        Accepts a single number (gray), a 3/4-sequence, or None. Anything
        else (patterns, separation names) falls back to black.
        """
        if value is None:
            return BLACK
        if isinstance(value, (int, float)):
            return cls((_clamp_unit(value),))
        try:
            values = tuple(_clamp_unit(v) for v in value)
        except (TypeError, ValueError):
            return BLACK
        if len(values) in (1, 3, 4):
            return cls(values)
        return BLACK

    def is_similar(self, other: "Color", tolerance: float = 0.05) -> bool:
        """Colours are similar when every channel differs by at most tolerance."""
        if len(self.components) != len(other.components):
            return False
        return all(abs(a - b) <= tolerance for a, b in zip(self.components, other.components))


def _clamp_unit(value: Any) -> float:
    return min(1.0, max(0.0, float(value)))


BLACK = Color((0.0,))


# =============================================================================
# Font capability
# =============================================================================

class FontHandle(ABC):
    """
    Capability interface for any font that can be measured.

    Implemented for both source-document fonts and the bundled
    replacement fonts, so layout code never depends on a concrete
    font library type.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def contains_codepoint(self, codepoint: int) -> bool:
        """True if the font has a glyph for the code point."""

    @abstractmethod
    def measure_width(self, text: str, size: float) -> float:
        """Advance width of text at the given size, in points."""


# =============================================================================
# Page elements
# =============================================================================

class ElementKind(Enum):
    """Classification of an extracted page element"""
    UNKNOWN = "unknown"
    TEXT = "text"
    FORMULA = "formula"
    TABLE_CELL = "table_cell"
    IMAGE = "image"
    LINE = "line"


class _PageBound:
    """Mixin that freezes page_num once it has been assigned."""

    def __setattr__(self, name, value):
        if name == "page_num" and "page_num" in self.__dict__:
            raise AttributeError("page_num is immutable once set")
        super().__setattr__(name, value)


@dataclass(eq=False)
class TextRun(_PageBound):
    """
    Style-homogeneous piece of text.

    Produced by extraction as a raw fragment, replaced by a whole visual
    line after stitching and by a paragraph (with "\\n" line breaks) after
    paragraph building.
    """
    page_num: int                    # 1-based
    text: str
    bbox: BBox
    start_point: Point               # Baseline start
    end_point: Point                 # Baseline end
    font_name: str
    font_size: float
    font: Optional[FontHandle] = field(default=None, repr=False)
    fill_color: Color = BLACK
    char_spacing: float = 0.0
    word_spacing: float = 0.0
    horizontal_scaling: float = 1.0  # 1.0 == 100 %
    kind: ElementKind = ElementKind.TEXT
    needs_translation: bool = True
    translated_text: Optional[str] = None
    table_row: Optional[int] = None
    table_col: Optional[int] = None
    # Last raw fragment of a stitched line; gap checks continue from it
    last_fragment: Optional["TextRun"] = field(default=None, repr=False)

    @property
    def display_text(self) -> str:
        """Text to draw: the translation when present, else the original."""
        if self.translated_text is not None:
            return self.translated_text
        return self.text

    @property
    def baseline_y(self) -> float:
        return self.start_point.y

    def copy_with(self, **changes) -> "TextRun":
        """Return a new run with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ImageHandle:
    """
    Opaque reference to an image owned by the source document.

    xref is None for inline images. stream is the engine's stream object,
    kept for raw pixel access during rebuild.
    """
    xref: Optional[int]
    name: str = ""
    width: int = 0
    height: int = 0
    stream: Any = field(default=None, repr=False, compare=False)


@dataclass(eq=False)
class ImageRun(_PageBound):
    """Image painted on a page with an affine placement matrix."""
    page_num: int
    image: ImageHandle
    matrix: Matrix

    @property
    def kind(self) -> ElementKind:
        return ElementKind.IMAGE

    @property
    def needs_translation(self) -> bool:
        return False

    @property
    def bbox(self) -> BBox:
        return self.matrix.unit_square_bounds()


@dataclass(eq=False)
class LineRun(_PageBound):
    """Single stroked straight segment."""
    page_num: int
    start: Point
    end: Point
    width: float = 1.0
    color: Color = BLACK

    @property
    def kind(self) -> ElementKind:
        return ElementKind.LINE

    @property
    def needs_translation(self) -> bool:
        return False

    @property
    def bbox(self) -> BBox:
        return BBox.from_points(self.start.x, self.start.y, self.end.x, self.end.y)

    @property
    def length(self) -> float:
        return ((self.end.x - self.start.x) ** 2 + (self.end.y - self.start.y) ** 2) ** 0.5

    def is_horizontal(self, tolerance: float = 1.5) -> bool:
        return abs(self.end.y - self.start.y) <= tolerance

    def is_vertical(self, tolerance: float = 1.5) -> bool:
        return abs(self.end.x - self.start.x) <= tolerance


PageElement = Union[TextRun, ImageRun, LineRun]


def element_sort_key(element: PageElement) -> tuple[int, float, float]:
    """Reading order: page, top edge descending, left edge ascending."""
    box = element.bbox
    return (element.page_num, -box.top, box.left)


# =============================================================================
# Progress / results
# =============================================================================

class TranslationPhase(Enum):
    """Translation process phases for detailed progress tracking"""
    EXTRACTING = "extracting"    # Walking page content
    TRANSLATING = "translating"  # Calling the translation service
    APPLYING = "applying"        # Rebuilding the output document
    COMPLETE = "complete"


@dataclass
class TranslationProgress:
    """
    Progress information for long-running translations.
    """
    current: int                     # Current item (unit/page)
    total: int                       # Total items
    status: str                      # Status message
    percentage: float = 0.0          # 0.0 - 1.0
    phase: Optional[TranslationPhase] = None
    phase_detail: Optional[str] = None  # e.g., "Page 3/10"

    def __post_init__(self):
        if self.current < 0:
            self.current = 0

        if self.total < 0:
            raise ValueError(f"total must be non-negative, got {self.total}")

        if self.total > 0:
            if self.current > self.total:
                self.current = self.total
            self.percentage = self.current / self.total
        else:
            self.percentage = 0.0


ProgressCallback = Callable[[TranslationProgress], None]


@dataclass
class FileInfo:
    """
    File metadata for display.
    """
    path: Path
    size_bytes: int
    page_count: Optional[int] = None

    @property
    def size_display(self) -> str:
        """Human-readable file size"""
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        elif self.size_bytes < 1024 * 1024:
            return f"{self.size_bytes / 1024:.1f} KB"
        else:
            return f"{self.size_bytes / (1024 * 1024):.1f} MB"


@dataclass
class TranslationStats:
    """Outcome of one translation phase."""
    units: int = 0          # Unique texts sent (or looked up)
    translated: int = 0     # Units that received a translation
    cached: int = 0         # Units served from the cache
    failed: int = 0         # Units that kept their original text
    skipped: int = 0        # Units never attempted because the phase aborted
    aborted: bool = False


@dataclass
class RebuildResult:
    """Outcome of writing the output document."""
    output_path: Path
    page_count: int = 0
    elements_drawn: int = 0
    elements_failed: int = 0
    failed_pages: dict[int, str] = field(default_factory=dict)  # page_num -> reason

    @property
    def is_complete(self) -> bool:
        return not self.failed_pages and self.elements_failed == 0


@dataclass
class TranslationResult:
    """
    Result of translating one file.
    """
    output_path: Optional[Path] = None
    page_count: int = 0
    element_count: int = 0
    stats: TranslationStats = field(default_factory=TranslationStats)
    rebuild: Optional[RebuildResult] = None
    duration_seconds: float = 0.0
    warnings: list[str] = field(default_factory=list)
