# =============================================================================
# Unit Tests — Error Taxonomy & Input Validation
# =============================================================================

import pytest

from app.services.errors import (
    ConfigurationError,
    InputValidationError,
    RewriteError,
    UpstreamError,
    UpstreamQuotaError,
    is_quota_error,
    translate_provider_error,
)
from app.services.security import validate_text_input


class _ProviderError(Exception):
    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class TestServiceErrors:
    def test_status_codes(self):
        assert InputValidationError("x").status_code == 400
        assert ConfigurationError("x").status_code == 500
        assert UpstreamQuotaError("x").status_code == 429
        assert UpstreamError("x").status_code == 500
        assert UpstreamError("x", status_code=403).status_code == 403

    def test_quota_body(self):
        assert UpstreamQuotaError("Out of credit").to_body() == {
            "error": "Out of credit", "quotaExceeded": True,
        }

    def test_hint_in_body(self):
        body = ConfigurationError("Key missing", hint="Set OPENAI_API_KEY").to_body()
        assert body == {"error": "Key missing", "hint": "Set OPENAI_API_KEY"}

    @pytest.mark.parametrize(("kind", "status"), [
        ("timeout", 504),
        ("rate_limit", 429),
        ("configuration", 500),
        ("execution_error", 500),
    ])
    def test_rewrite_error_kinds(self, kind, status):
        err = RewriteError("failed", kind)
        body = err.to_body()

        assert err.status_code == status
        assert body["errorType"] == kind
        assert body["hint"]


class TestTranslateProviderError:
    def test_quota_by_code(self):
        err = translate_provider_error(
            _ProviderError("Too many", status_code=429, code="insufficient_quota"), "OpenAI",
        )
        assert isinstance(err, UpstreamQuotaError)

    def test_quota_by_message(self):
        assert is_quota_error(Exception("You exceeded your current quota"))
        assert not is_quota_error(Exception("Rate limit reached for requests"))

    def test_auth_failure_is_configuration(self):
        err = translate_provider_error(_ProviderError("bad key", status_code=401), "OpenAI")
        assert isinstance(err, ConfigurationError)
        assert err.status_code == 500

    def test_status_forwarded_only_on_request(self):
        exc = _ProviderError("not found", status_code=404)
        assert translate_provider_error(exc, "Search").status_code == 500
        assert translate_provider_error(exc, "Search", forward_status=True).status_code == 404

    def test_service_errors_pass_through(self):
        original = InputValidationError("bad")
        assert translate_provider_error(original, "x") is original


class TestValidateTextInput:
    def test_returns_trimmed_text(self):
        assert validate_text_input("  some text \n") == "some text"

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_rejects_missing_or_blank(self, value):
        with pytest.raises(InputValidationError) as exc_info:
            validate_text_input(value)
        assert exc_info.value.message == "Text is required and must be a non-empty string"

    def test_field_name_in_message(self):
        with pytest.raises(InputValidationError, match="^Query is required"):
            validate_text_input("", field_name="Query")

    def test_rejects_too_long(self):
        with pytest.raises(InputValidationError, match="too long"):
            validate_text_input("x" * 11, max_length=10)

    @pytest.mark.parametrize("value", [
        "hello <script>alert(1)</script>",
        '<a href="javascript:void(0)">click</a>',
        "<iframe SRC = JavaScript:alert(1)>",
        '<img src=x onerror="alert(1)">',
    ])
    def test_rejects_script_injection(self, value):
        with pytest.raises(InputValidationError, match="disallowed markup"):
            validate_text_input(value)

    @pytest.mark.parametrize("value", [
        "if a < b and b > c then a < c",
        "JavaScript: The Good Parts argues that the language has a small, elegant core.",
        "Most browsers run javascript: the scripting language of the web.",
    ])
    def test_ordinary_prose_is_accepted(self, value):
        assert validate_text_input(value) == value
