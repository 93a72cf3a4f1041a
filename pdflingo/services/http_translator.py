# pdflingo/services/http_translator.py
"""
Translator backend for LibreTranslate-compatible HTTP endpoints.

Request:  POST {"q": text, "source": "en", "target": "ja", "format": "text", "api_key": ...}
Response: {"translatedText": "..."}

HTTP statuses and service error codes are mapped to TranslationError kinds
so the orchestrator can decide whether to retry.
"""

import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Optional

from .exceptions import TranslationError, TranslationErrorKind
from .translation_service import Translator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds per request

# Service error codes (exact match or prefix ending in ".")
SERVICE_ERROR_CODES = {
    "RequestLimitExceeded": TranslationErrorKind.RATE_LIMITED,
    "LimitExceeded": TranslationErrorKind.RATE_LIMITED,
    "InternalError": TranslationErrorKind.INTERNAL,
    "RequestTimeout": TranslationErrorKind.TIMEOUT,
    "AuthFailure.": TranslationErrorKind.AUTH_FAILURE,
    "UnsupportedOperation.UnsupportedLanguage": TranslationErrorKind.UNSUPPORTED_LANGUAGE,
    "FailedOperation.NoFreeAmount": TranslationErrorKind.QUOTA_EXHAUSTED,
    "FailedOperation.ServiceIsolate": TranslationErrorKind.ACCOUNT_SUSPENDED,
}


def classify_error_code(code: str) -> Optional[TranslationErrorKind]:
    """Map a service error code to an error kind (None if unknown)."""
    if not code:
        return None
    for known, kind in SERVICE_ERROR_CODES.items():
        if known.endswith("."):
            if code.startswith(known) or code == known[:-1]:
                return kind
        elif code == known or code.startswith(known + "."):
            return kind
    return None


def classify_http_status(status: int, message: str = "") -> TranslationErrorKind:
    """Map an HTTP error status to an error kind."""
    if status == 429:
        return TranslationErrorKind.RATE_LIMITED
    if status in (401, 403):
        return TranslationErrorKind.AUTH_FAILURE
    if status == 402:
        return TranslationErrorKind.QUOTA_EXHAUSTED
    if status == 423:
        return TranslationErrorKind.ACCOUNT_SUSPENDED
    if status == 408 or status == 504:
        return TranslationErrorKind.TIMEOUT
    if status == 400 and "language" in message.lower():
        return TranslationErrorKind.UNSUPPORTED_LANGUAGE
    # 5xx and unrecognised statuses: retried, then the text stays untranslated
    return TranslationErrorKind.INTERNAL


def _error_details(body: bytes) -> tuple[str, Optional[str]]:
    """(message, code) from a JSON error body; tolerant of non-JSON bodies."""
    text = body.decode("utf-8", errors="replace").strip()
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:200], None
    if not isinstance(payload, dict):
        return text[:200], None
    error = payload.get("error", payload.get("Error"))
    if isinstance(error, dict):
        return str(error.get("Message") or error.get("message") or text[:200]), error.get("Code") or error.get("code")
    code = payload.get("code") if isinstance(payload.get("code"), str) else None
    return str(error or text[:200]), code


class HttpTranslator(Translator):
    """
    Calls a LibreTranslate-compatible JSON endpoint with urllib.
    """

    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        if not endpoint:
            raise ValueError("endpoint is required")
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout

    def _build_request(self, text: str, source_lang: str, target_lang: str) -> urllib.request.Request:
        payload = {
            "q": text,
            "source": source_lang,
            "target": target_lang,
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key
        return urllib.request.Request(
            self.endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        if not source_lang or not target_lang:
            raise ValueError("source and target language are required")
        if not text:
            return ""

        request = self._build_request(text, source_lang, target_lang)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as e:
            message, code = _error_details(e.read() or b"")
            kind = classify_error_code(code) if code else None
            if kind is None:
                kind = classify_http_status(e.code, message)
            raise TranslationError(kind, f"HTTP {e.code}: {message}", code=code or str(e.code)) from e
        except (socket.timeout, TimeoutError) as e:
            raise TranslationError(TranslationErrorKind.TIMEOUT, f"request timed out after {self.timeout}s") from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise TranslationError(TranslationErrorKind.TIMEOUT, f"request timed out after {self.timeout}s") from e
            raise TranslationError(TranslationErrorKind.NETWORK, f"cannot reach {self.endpoint}: {e.reason}") from e
        except ConnectionError as e:
            raise TranslationError(TranslationErrorKind.NETWORK, f"connection failed: {e}") from e

        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as e:
            raise TranslationError(TranslationErrorKind.INTERNAL, "response is not valid JSON") from e

        if isinstance(payload, dict) and "translatedText" in payload:
            translated = payload["translatedText"]
            logger.debug("Translated %d chars -> %d chars", len(text), len(translated))
            return translated

        message, code = _error_details(body)
        kind = classify_error_code(code) if code else None
        raise TranslationError(
            kind or TranslationErrorKind.INTERNAL,
            f"unexpected response: {message}",
            code=code,
        )
