# pdflingo/services/__init__.py
"""
Service layer for pdflingo.

Translation services are lazy-loaded.
Use explicit imports like:
    from pdflingo.services.translation_service import TranslationOrchestrator
"""

# Fast imports - exception types shared by every layer
from .exceptions import (
    ExtractionError,
    GeometryError,
    RebuildError,
    DrawError,
    TranslationError,
    TranslationErrorKind,
    is_transient_error,
)

# Lazy-loaded services via __getattr__
_LAZY_IMPORTS = {
    'Translator': 'translation_service',
    'TranslationOrchestrator': 'translation_service',
    'TranslationCache': 'translation_service',
    'split_text_for_translation': 'translation_service',
    'RequestThrottle': 'rate_limiter',
    'HttpTranslator': 'http_translator',
}

# Submodules that can be accessed via __getattr__ (for patching support)
_SUBMODULES = {'translation_service', 'rate_limiter', 'http_translator', 'exceptions'}


def __getattr__(name: str):
    """Lazy-load service modules on first access."""
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
    'ExtractionError',
    'GeometryError',
    'RebuildError',
    'DrawError',
    'TranslationError',
    'TranslationErrorKind',
    'is_transient_error',
    'Translator',
    'TranslationOrchestrator',
    'TranslationCache',
    'split_text_for_translation',
    'RequestThrottle',
    'HttpTranslator',
]
