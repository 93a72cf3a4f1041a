# pdflingo/processors/__init__.py
"""
PDF processing pipeline for pdflingo.

Modules that need pdfminer.six / PyMuPDF are lazy-loaded.
Use explicit imports like:
    from pdflingo.processors.pdf_processor import PdfProcessor
"""

# Fast imports - base classes and pure geometry passes
from .base import FileProcessor
from .pdf_stitcher import stitch_text_runs
from .pdf_paragraphs import build_paragraphs
from .pdf_layout import detect_tables

# Lazy-loaded processors via __getattr__
_LAZY_IMPORTS = {
    'PdfProcessor': 'pdf_processor',
    'DocumentRebuilder': 'pdf_rebuilder',
    'ElementExtractor': 'pdf_extractor',
    'FontRegistry': 'pdf_font_manager',
    'PdfContentBuilder': 'pdf_operators',
    'walk_pdf': 'pdf_converter',
}

# Submodules that can be accessed via __getattr__ (for patching support)
_SUBMODULES = {'base', 'pdf_processor', 'pdf_rebuilder', 'pdf_extractor', 'pdf_converter',
               'pdf_stitcher', 'pdf_paragraphs', 'pdf_layout', 'pdf_font_manager', 'pdf_operators'}


def __getattr__(name: str):
    """Lazy-load processor modules on first access."""
    import importlib
    # Support accessing submodules directly (for unittest.mock.patch)
    if name in _SUBMODULES:
        return importlib.import_module(f'.{name}', __package__)
    if name in _LAZY_IMPORTS:
        module_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(f'.{module_name}', __package__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'FileProcessor',
    'stitch_text_runs',
    'build_paragraphs',
    'detect_tables',
    'PdfProcessor',
    'DocumentRebuilder',
    'ElementExtractor',
    'FontRegistry',
    'PdfContentBuilder',
    'walk_pdf',
]
