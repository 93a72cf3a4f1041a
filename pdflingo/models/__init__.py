# pdflingo/models/__init__.py
"""
Data models for pdflingo.
"""

from .types import (
    Point,
    BBox,
    Matrix,
    Color,
    BLACK,
    FontHandle,
    ElementKind,
    TextRun,
    ImageHandle,
    ImageRun,
    LineRun,
    PageElement,
    element_sort_key,
    TranslationPhase,
    TranslationProgress,
    ProgressCallback,
    FileInfo,
    TranslationStats,
    RebuildResult,
    TranslationResult,
)

__all__ = [
    'Point',
    'BBox',
    'Matrix',
    'Color',
    'BLACK',
    'FontHandle',
    'ElementKind',
    'TextRun',
    'ImageHandle',
    'ImageRun',
    'LineRun',
    'PageElement',
    'element_sort_key',
    'TranslationPhase',
    'TranslationProgress',
    'ProgressCallback',
    'FileInfo',
    'TranslationStats',
    'RebuildResult',
    'TranslationResult',
]
