# pdflingo/processors/pdf_font_manager.py
"""
PDF Font Management for pdflingo.

Features:
- FontHandle implementations for source fonts (pdfminer) and bundled
  replacement fonts (PyMuPDF)
- CJK/Latin font selection with coverage-based fallback
- Cross-platform font file lookup for user-configured fonts
- Glyph ID lookup for Identity-H text encoding
"""

import logging
import os
import platform
from typing import Any, Optional

from pdflingo.models.types import FontHandle

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Font Path Cache (module-level for performance)
# =============================================================================
# Cache for font file path lookups (font_name -> path or None)
_font_path_cache: dict[str, Optional[str]] = {}


# =============================================================================
# Lazy Imports
# =============================================================================
_pymupdf = None
_pdfminer = None


def _get_pymupdf():
    """Lazy import PyMuPDF"""
    global _pymupdf
    if _pymupdf is None:
        import pymupdf
        _pymupdf = pymupdf
    return _pymupdf


def _get_pdfminer():
    """
    Lazy import pdfminer.six for content walking.
    """
    global _pdfminer
    if _pdfminer is None:
        from pdfminer.pdffont import PDFUnicodeNotDefined
        from pdfminer.pdfpage import PDFPage
        from pdfminer.pdfparser import PDFParser, PDFSyntaxError
        from pdfminer.pdfdocument import PDFDocument
        from pdfminer.pdfinterp import PDFResourceManager, PDFPageInterpreter
        from pdfminer.converter import PDFLayoutAnalyzer
        from pdfminer.layout import LTChar
        from pdfminer.psparser import PSLiteral
        from pdfminer.pdftypes import resolve1
        from pdfminer.utils import apply_matrix_pt, mult_matrix
        _pdfminer = {
            'PDFUnicodeNotDefined': PDFUnicodeNotDefined,
            'PDFPage': PDFPage,
            'PDFParser': PDFParser,
            'PDFDocument': PDFDocument,
            'PDFSyntaxError': PDFSyntaxError,
            'PDFResourceManager': PDFResourceManager,
            'PDFPageInterpreter': PDFPageInterpreter,
            'PDFLayoutAnalyzer': PDFLayoutAnalyzer,
            'LTChar': LTChar,
            'PSLiteral': PSLiteral,
            'resolve1': resolve1,
            'apply_matrix_pt': apply_matrix_pt,
            'mult_matrix': mult_matrix,
        }
    return _pdfminer


# =============================================================================
# CJK detection
# =============================================================================
CJK_RANGES = (
    (0x2E80, 0x9FFF),    # CJK radicals .. CJK Unified Ideographs (kana, Ext A included)
    (0x3400, 0x4DBF),    # CJK Extension A
    (0x20000, 0x2A6DF),  # CJK Extension B
)


def is_cjk_codepoint(codepoint: int) -> bool:
    return any(lo <= codepoint <= hi for lo, hi in CJK_RANGES)


def contains_cjk(text: str) -> bool:
    return any(is_cjk_codepoint(ord(c)) for c in text)


def _needed_codepoints(text: str) -> set[int]:
    """Code points that must have a glyph (whitespace and controls excluded)."""
    return {ord(c) for c in text if not c.isspace() and c.isprintable()}


# =============================================================================
# Font Path Resolution (Cross-Platform)
# =============================================================================
def _get_system_font_dirs() -> list[str]:
    """
    Get system font directories based on OS.

    Returns:
        List of font directory paths
    """
    system = platform.system()

    if system == "Windows":
        windir = os.environ.get("WINDIR", "C:\\Windows")
        return [os.path.join(windir, "Fonts")]
    elif system == "Darwin":  # macOS
        return [
            "/System/Library/Fonts",
            "/Library/Fonts",
            os.path.expanduser("~/Library/Fonts"),
        ]
    else:  # Linux and others
        return [
            "/usr/share/fonts",
            "/usr/local/share/fonts",
            os.path.expanduser("~/.fonts"),
            os.path.expanduser("~/.local/share/fonts"),
        ]


def _find_font_file(font_names: list[str]) -> Optional[str]:
    """
    Search for font file in system font directories.

    Looks directly in each font directory and up to two levels below it
    (Linux keeps fonts in e.g. /usr/share/fonts/truetype/dejavu/).

    Args:
        font_names: List of font file names to search for (in priority order)

    Returns:
        Full path to font file if found, None otherwise
    """
    cache_key = "|".join(font_names)
    if cache_key in _font_path_cache:
        return _font_path_cache[cache_key]

    result = None
    for font_name in font_names:
        for font_dir in _get_system_font_dirs():
            if not os.path.isdir(font_dir):
                continue
            for root, dirs, files in os.walk(font_dir):
                depth = root[len(font_dir):].count(os.sep)
                if depth >= 2:
                    dirs[:] = []
                if font_name in files:
                    result = os.path.join(root, font_name)
                    break
            if result:
                break
        if result:
            break

    _font_path_cache[cache_key] = result
    return result


# Display name to font file mapping (for font settings)
FONT_NAME_TO_FILES = {
    # CJK fonts
    "Noto Sans CJK": ["NotoSansCJK-Regular.ttc", "NotoSansCJKjp-Regular.otf"],
    "Noto Sans JP": ["NotoSansJP-Regular.ttf", "NotoSansJP-Regular.otf"],
    "IPAGothic": ["ipag.ttf", "IPAGothic.ttf"],
    "IPAMincho": ["ipam.ttf", "IPAMincho.ttf"],
    "MS Gothic": ["msgothic.ttc", "MS Gothic.ttf"],
    "Meiryo": ["meiryo.ttc", "Meiryo.ttf"],
    "WenQuanYi Zen Hei": ["wqy-zenhei.ttc"],
    # Latin fonts
    "Arial": ["arial.ttf", "Arial.ttf"],
    "DejaVu Sans": ["DejaVuSans.ttf"],
    "Liberation Sans": ["LiberationSans-Regular.ttf"],
    "Noto Sans": ["NotoSans-Regular.ttf"],
    "Times New Roman": ["times.ttf", "Times.ttf"],
}


def get_font_path_by_name(font_name: str) -> Optional[str]:
    """
    Resolve a configured font to a file path.

    Args:
        font_name: display name (e.g. "Noto Sans CJK") or a direct font file path

    Returns:
        Font file path if found, None otherwise
    """
    if os.path.isfile(font_name):
        return font_name
    font_files = FONT_NAME_TO_FILES.get(font_name)
    if font_files:
        return _find_font_file(font_files)
    return None


# =============================================================================
# Font handles
# =============================================================================
class SourceFontHandle(FontHandle):
    """FontHandle over a pdfminer font object from the source document."""

    def __init__(self, name: str, pdfminer_font: Any):
        self._name = name
        self._font = pdfminer_font

    @property
    def name(self) -> str:
        return self._name

    def contains_codepoint(self, codepoint: int) -> bool:
        unicode_map = getattr(self._font, "unicode_map", None)
        if unicode_map is not None:
            return chr(codepoint) in unicode_map.cid2unichr.values()
        # Simple fonts without a ToUnicode map cover one byte
        return codepoint < 256

    def measure_width(self, text: str, size: float) -> float:
        # pdfminer char widths are already normalized to the em square
        total = 0.0
        for char in text:
            try:
                total += self._font.char_width(ord(char))
            except (KeyError, TypeError, ValueError):
                total += 0.5
        return total * size


class BundledFont(FontHandle):
    """FontHandle over a PyMuPDF Font used for output text."""

    def __init__(self, name: str, font: Any):
        self._name = name
        self._font = font
        self._glyph_cache: dict[int, int] = {}

    @classmethod
    def load(cls, builtin_name: str, font_path: Optional[str] = None) -> "BundledFont":
        """Load from a font file if given, else from a PyMuPDF built-in font."""
        pymupdf = _get_pymupdf()
        if font_path:
            return cls(os.path.basename(font_path), pymupdf.Font(fontfile=font_path))
        return cls(builtin_name, pymupdf.Font(fontname=builtin_name))

    @property
    def name(self) -> str:
        return self._name

    @property
    def buffer(self) -> bytes:
        return self._font.buffer

    def glyph_id(self, codepoint: int) -> int:
        """
        Glyph index for Identity-H text operators (0 = .notdef).

        insert_font embeds with Identity-H but without a CIDToGIDMap, so CIDs
        are glyph indices, not Unicode code points.
        """
        if codepoint not in self._glyph_cache:
            try:
                self._glyph_cache[codepoint] = self._font.has_glyph(codepoint) or 0
            except (RuntimeError, ValueError, TypeError) as e:
                logger.debug("Error getting glyph index for U+%04X: %s", codepoint, e)
                self._glyph_cache[codepoint] = 0
        return self._glyph_cache[codepoint]

    def contains_codepoint(self, codepoint: int) -> bool:
        return self.glyph_id(codepoint) != 0

    def measure_width(self, text: str, size: float) -> float:
        return self._font.text_length(text, fontsize=size)


# =============================================================================
# Font Registry
# =============================================================================
class FontRegistry:
    """
    Output font registration, selection and embedding.

    Two bundled fonts are known: "latin" and "cjk". Each gets a PDF resource
    ID (F1, F2, ...) on first registration.
    """

    BUILTIN_FONTS = {
        "latin": "helv",
        "cjk": "cjk",
    }

    def __init__(self, font_cjk: Optional[str] = None, font_latin: Optional[str] = None):
        """
        Initialize font registry.

        Args:
            font_cjk: configured CJK font name or path (None = built-in)
            font_latin: configured Latin font name or path (None = built-in)
        """
        self._font_preferences: dict[str, Optional[str]] = {
            "cjk": font_cjk,
            "latin": font_latin,
        }
        self._font_ids: dict[str, str] = {}           # kind -> font_id
        self._font_objects: dict[str, FontHandle] = {}  # font_id -> handle
        self._font_xrefs: dict[str, int] = {}         # font_id -> xref in output doc
        self._counter = 0

    def register_handle(self, kind: str, handle: FontHandle) -> str:
        """Register an already-loaded font for a kind and return its ID."""
        if kind in self._font_ids:
            font_id = self._font_ids[kind]
        else:
            self._counter += 1
            font_id = f"F{self._counter}"
            self._font_ids[kind] = font_id
        self._font_objects[font_id] = handle
        return font_id

    def register_font(self, kind: str) -> str:
        """
        Register the bundled font for a kind ("latin" or "cjk").

        A configured font is tried first; the PyMuPDF built-in font is the
        fallback.

        Returns:
            Font ID (F1, F2, ...)
        """
        if kind in self._font_ids:
            return self._font_ids[kind]
        if kind not in self.BUILTIN_FONTS:
            raise ValueError(f"Unknown font kind: {kind}")

        handle = None
        preferred = self._font_preferences.get(kind)
        if preferred:
            font_path = get_font_path_by_name(preferred)
            if font_path:
                try:
                    handle = BundledFont.load(self.BUILTIN_FONTS[kind], font_path)
                    logger.debug("Using configured font for %s: %s", kind, font_path)
                except (RuntimeError, ValueError, OSError) as e:
                    logger.warning("Failed to load font '%s' for %s: %s", font_path, kind, e)
            else:
                logger.warning("Configured %s font '%s' not found, using built-in", kind, preferred)

        if handle is None:
            handle = BundledFont.load(self.BUILTIN_FONTS[kind])
            logger.debug("Using built-in font for %s: %s", kind, handle.name)

        return self.register_handle(kind, handle)

    def get_font(self, font_id: str) -> FontHandle:
        return self._font_objects[font_id]

    def select_font_for_text(self, text: str) -> str:
        """
        Choose the output font for a piece of text.

        CJK text prefers the CJK font, everything else the Latin font. If the
        preferred font misses a needed glyph the other font is tried; if
        neither covers everything, the one covering more code points wins
        (the preferred font on a tie).

        Returns:
            Font ID
        """
        preferred_kind = "cjk" if contains_cjk(text) else "latin"
        other_kind = "latin" if preferred_kind == "cjk" else "cjk"
        preferred_id = self.register_font(preferred_kind)

        needed = _needed_codepoints(text)
        preferred_missing = self._count_missing(preferred_id, needed)
        if preferred_missing == 0:
            return preferred_id

        other_id = self.register_font(other_kind)
        other_missing = self._count_missing(other_id, needed)
        if other_missing < preferred_missing:
            if other_missing:
                logger.debug(
                    "No font covers all of %r; %s misses %d code points",
                    text[:30], other_kind, other_missing,
                )
            return other_id

        logger.debug(
            "No font covers all of %r; %s misses %d code points",
            text[:30], preferred_kind, preferred_missing,
        )
        return preferred_id

    def _count_missing(self, font_id: str, codepoints: set[int]) -> int:
        font = self._font_objects[font_id]
        return sum(1 for cp in codepoints if not font.contains_codepoint(cp))

    def get_glyph_id(self, font_id: str, char: str) -> int:
        """Glyph index of char in a registered bundled font (0 = .notdef)."""
        font = self._font_objects.get(font_id)
        if isinstance(font, BundledFont):
            return font.glyph_id(ord(char))
        return 0

    def ensure_embedded(self, page, font_id: str) -> int:
        """
        Embed a registered font into the page's document (once per document).

        The first call inserts the font program through the given page;
        later calls return the cached xref so other pages can reference it.

        Returns:
            xref of the embedded font
        """
        if font_id in self._font_xrefs:
            return self._font_xrefs[font_id]
        font = self._font_objects[font_id]
        if not isinstance(font, BundledFont):
            raise ValueError(f"Font {font_id} cannot be embedded")
        xref = page.insert_font(fontname=font_id, fontbuffer=font.buffer)
        self._font_xrefs[font_id] = xref
        logger.debug(
            "Embedded font: id=%s, name=%s, encoding=Identity-H, xref=%s",
            font_id, font.name, xref,
        )
        return xref

    def reset_embedding(self) -> None:
        """Forget embedded xrefs (call before writing into a new document)."""
        self._font_xrefs.clear()
