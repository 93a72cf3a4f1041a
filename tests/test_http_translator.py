# tests/test_http_translator.py
"""Tests for pdflingo.services.http_translator"""

import io
import json
import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from pdflingo.services.exceptions import TranslationError, TranslationErrorKind
from pdflingo.services.http_translator import (
    HttpTranslator,
    classify_error_code,
    classify_http_status,
)

URLOPEN = 'pdflingo.services.http_translator.urllib.request.urlopen'
ENDPOINT = "http://translate.example/translate"


# =============================================================================
# Fixtures
# =============================================================================
def _response(payload) -> MagicMock:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    response = MagicMock()
    response.__enter__.return_value.read.return_value = body
    return response


def _http_error(status: int, payload=None) -> urllib.error.HTTPError:
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return urllib.error.HTTPError(ENDPOINT, status, "error", {}, io.BytesIO(body))


@pytest.fixture
def translator():
    return HttpTranslator(ENDPOINT, api_key="secret", timeout=3)


# =============================================================================
# Classification
# =============================================================================
class TestClassification:
    @pytest.mark.parametrize("code,kind", [
        ("RequestLimitExceeded", TranslationErrorKind.RATE_LIMITED),
        ("LimitExceeded.Frequency", TranslationErrorKind.RATE_LIMITED),
        ("InternalError", TranslationErrorKind.INTERNAL),
        ("AuthFailure.SignatureExpire", TranslationErrorKind.AUTH_FAILURE),
        ("AuthFailure", TranslationErrorKind.AUTH_FAILURE),
        ("UnsupportedOperation.UnsupportedLanguage", TranslationErrorKind.UNSUPPORTED_LANGUAGE),
        ("FailedOperation.NoFreeAmount", TranslationErrorKind.QUOTA_EXHAUSTED),
        ("FailedOperation.ServiceIsolate", TranslationErrorKind.ACCOUNT_SUSPENDED),
    ])
    def test_error_codes(self, code, kind):
        assert classify_error_code(code) == kind

    def test_unknown_code(self):
        assert classify_error_code("SomethingElse") is None
        assert classify_error_code("") is None

    @pytest.mark.parametrize("status,message,kind", [
        (429, "", TranslationErrorKind.RATE_LIMITED),
        (401, "", TranslationErrorKind.AUTH_FAILURE),
        (403, "", TranslationErrorKind.AUTH_FAILURE),
        (402, "", TranslationErrorKind.QUOTA_EXHAUSTED),
        (423, "", TranslationErrorKind.ACCOUNT_SUSPENDED),
        (504, "", TranslationErrorKind.TIMEOUT),
        (400, "xx is not a supported language", TranslationErrorKind.UNSUPPORTED_LANGUAGE),
        (500, "", TranslationErrorKind.INTERNAL),
        (418, "", TranslationErrorKind.INTERNAL),
    ])
    def test_http_statuses(self, status, message, kind):
        assert classify_http_status(status, message) == kind


# =============================================================================
# Requests
# =============================================================================
class TestHttpTranslator:
    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            HttpTranslator("")

    @patch(URLOPEN)
    def test_success(self, mock_urlopen, translator):
        mock_urlopen.return_value = _response({"translatedText": "Hallo"})
        assert translator.translate("Hello", "en", "de") == "Hallo"

        request = mock_urlopen.call_args.args[0]
        assert request.full_url == ENDPOINT
        assert request.get_method() == "POST"
        payload = json.loads(request.data.decode("utf-8"))
        assert payload == {
            "q": "Hello", "source": "en", "target": "de", "format": "text", "api_key": "secret",
        }
        assert mock_urlopen.call_args.kwargs["timeout"] == 3

    @patch(URLOPEN)
    def test_empty_text_skips_request(self, mock_urlopen, translator):
        assert translator.translate("", "en", "de") == ""
        mock_urlopen.assert_not_called()

    def test_blank_language(self, translator):
        with pytest.raises(ValueError):
            translator.translate("Hello", "", "de")

    @patch(URLOPEN)
    def test_rate_limited(self, mock_urlopen, translator):
        mock_urlopen.side_effect = _http_error(429, {"error": "Slowdown"})
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.RATE_LIMITED
        assert exc_info.value.is_transient

    @patch(URLOPEN)
    def test_auth_failure(self, mock_urlopen, translator):
        mock_urlopen.side_effect = _http_error(403, {"error": "Invalid API key"})
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.AUTH_FAILURE
        assert exc_info.value.is_permanent
        assert "Invalid API key" in str(exc_info.value)

    @patch(URLOPEN)
    def test_unsupported_language(self, mock_urlopen, translator):
        mock_urlopen.side_effect = _http_error(400, {"error": "xx is not a supported language"})
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "xx")
        assert exc_info.value.kind == TranslationErrorKind.UNSUPPORTED_LANGUAGE

    @patch(URLOPEN)
    def test_service_code_wins_over_status(self, mock_urlopen, translator):
        mock_urlopen.side_effect = _http_error(
            400, {"Error": {"Code": "FailedOperation.NoFreeAmount", "Message": "no quota"}}
        )
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.QUOTA_EXHAUSTED
        assert exc_info.value.code == "FailedOperation.NoFreeAmount"

    @patch(URLOPEN)
    def test_server_error_without_body(self, mock_urlopen, translator):
        mock_urlopen.side_effect = _http_error(500)
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.INTERNAL

    @patch(URLOPEN)
    def test_network_error(self, mock_urlopen, translator):
        mock_urlopen.side_effect = urllib.error.URLError("connection refused")
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.NETWORK

    @patch(URLOPEN)
    def test_timeout(self, mock_urlopen, translator):
        mock_urlopen.side_effect = socket.timeout("timed out")
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.TIMEOUT

    @patch(URLOPEN)
    def test_timeout_wrapped_in_url_error(self, mock_urlopen, translator):
        mock_urlopen.side_effect = urllib.error.URLError(socket.timeout("timed out"))
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.TIMEOUT

    @patch(URLOPEN)
    def test_invalid_json(self, mock_urlopen, translator):
        mock_urlopen.return_value = _response(b"<html>oops</html>")
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.INTERNAL

    @patch(URLOPEN)
    def test_error_payload_with_success_status(self, mock_urlopen, translator):
        mock_urlopen.return_value = _response({"error": "busy", "code": "RequestLimitExceeded"})
        with pytest.raises(TranslationError) as exc_info:
            translator.translate("Hello", "en", "de")
        assert exc_info.value.kind == TranslationErrorKind.RATE_LIMITED
