# pdflingo/config/__init__.py
"""
Configuration for pdflingo.
"""

from .settings import (
    AppSettings,
    StitchThresholds,
    ParagraphThresholds,
    TableThresholds,
    get_default_settings_path,
    invalidate_settings_cache,
)

__all__ = [
    'AppSettings',
    'StitchThresholds',
    'ParagraphThresholds',
    'TableThresholds',
    'get_default_settings_path',
    'invalidate_settings_cache',
]
