# pdflingo/services/exceptions.py
"""
Shared exception types across the extraction, translation and rebuild stages.

This module has no third-party imports so every layer can depend on it.
"""

from enum import Enum


class ExtractionError(Exception):
    """Raised when page content cannot be turned into an element."""

    pass


class GeometryError(Exception):
    """Raised when stroked lines do not form a usable table grid."""

    pass


class RebuildError(Exception):
    """Raised when an output page (or the whole document) cannot be rebuilt."""

    def __init__(self, message: str, page_num: int | None = None):
        super().__init__(message)
        self.page_num = page_num


class DrawError(Exception):
    """Raised when a single element cannot be drawn on the output page."""

    pass


class TranslationErrorKind(Enum):
    """Failure categories reported by a translation backend"""
    # Transient: worth retrying
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"
    TIMEOUT = "timeout"
    NETWORK = "network"
    # Permanent: retrying cannot help
    AUTH_FAILURE = "auth_failure"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    QUOTA_EXHAUSTED = "quota_exhausted"
    ACCOUNT_SUSPENDED = "account_suspended"


TRANSIENT_ERROR_KINDS = frozenset({
    TranslationErrorKind.RATE_LIMITED,
    TranslationErrorKind.INTERNAL,
    TranslationErrorKind.TIMEOUT,
    TranslationErrorKind.NETWORK,
})


class TranslationError(Exception):
    """Raised by a translation backend; kind tells whether a retry can help."""

    def __init__(self, kind: TranslationErrorKind, message: str, code: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.code = code

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_ERROR_KINDS

    @property
    def is_permanent(self) -> bool:
        return not self.is_transient

    def __str__(self) -> str:
        base = super().__str__()
        if self.code:
            return f"[{self.kind.value}:{self.code}] {base}"
        return f"[{self.kind.value}] {base}"


def is_transient_error(error: BaseException) -> bool:
    """Classify a failed attempt: True if retrying may succeed."""
    if isinstance(error, TranslationError):
        return error.is_transient
    # Plain timeouts/connection drops from a backend that did not wrap them
    return isinstance(error, (TimeoutError, ConnectionError))
