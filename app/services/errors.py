# =============================================================================
# Service Errors — Typed Failure Taxonomy
# =============================================================================
#
# Every failure a handler can surface maps to one of these classes. The
# exception handlers in app/main.py turn them into `{"error": ...}` bodies
# with the right status code, so route handlers never build error responses
# by hand.
#
#   validation        → 400  InputValidationError
#   configuration     → 500  ConfigurationError   (missing provider secrets)
#   upstream_quota    → 429  UpstreamQuotaError   (body carries quotaExceeded)
#   upstream_failure  → 500 or forwarded status   UpstreamError
#   rewrite failures  → RewriteError (kind + remediation hint)
#
# Per-item failures (one chunk, passage or file) are NOT raised: they are
# caught at the fan-out point and reported next to the successful items.
# =============================================================================

from __future__ import annotations

from typing import Literal


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    kind: str = "upstream_failure"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        if status_code is not None:
            self.status_code = status_code

    @property
    def quota_exceeded(self) -> bool:
        return False

    def to_body(self) -> dict:
        body: dict = {"error": self.message}
        if self.hint:
            body["hint"] = self.hint
        if self.quota_exceeded:
            body["quotaExceeded"] = True
        return body


class InputValidationError(ServiceError):
    status_code = 400
    kind = "validation"


class ConfigurationError(ServiceError):
    """A provider key or backend setting is missing."""

    status_code = 500
    kind = "configuration"


class UpstreamQuotaError(ServiceError):
    """The provider refused the call for billing/quota reasons."""

    status_code = 429
    kind = "upstream_quota"

    @property
    def quota_exceeded(self) -> bool:
        return True


class UpstreamError(ServiceError):
    """A provider call failed. `status_code` is forwarded when known."""

    status_code = 500
    kind = "upstream_failure"


RewriteErrorKind = Literal[
    "timeout", "rate_limit", "configuration", "execution_error",
]

_REWRITE_HINTS: dict[str, str] = {
    "timeout": "The model took too long to respond. Try a shorter passage.",
    "rate_limit": "The model provider is rate limiting requests. "
    "Wait a minute and try again.",
    "configuration": "Check that the LLM provider key is set on the server.",
    "execution_error": "The rewrite could not be generated. Try again later.",
}

_REWRITE_STATUS: dict[str, int] = {
    "timeout": 504,
    "rate_limit": 429,
    "configuration": 500,
    "execution_error": 500,
}


class RewriteError(ServiceError):
    """
    Terminal failure of an LLM rewrite after retries are exhausted.

    `kind` is one of timeout | rate_limit | configuration | execution_error
    and decides the remediation hint and HTTP status.
    """

    def __init__(self, message: str, kind: RewriteErrorKind) -> None:
        super().__init__(
            message,
            hint=_REWRITE_HINTS[kind],
            status_code=_REWRITE_STATUS[kind],
        )
        self.kind = kind

    def to_body(self) -> dict:
        body = super().to_body()
        body["errorType"] = self.kind
        return body


# ---------------------------------------------------------------------------
# Provider SDK exceptions → ServiceError
# ---------------------------------------------------------------------------
# The OpenAI and Anthropic SDKs both expose `status_code` on HTTP errors and
# OpenAI adds a machine-readable `code` ("insufficient_quota"). Reading the
# attributes keeps this module free of SDK imports.
# ---------------------------------------------------------------------------


def is_quota_error(exc: BaseException) -> bool:
    """True for billing/quota refusals (not ordinary rate limiting)."""
    code = getattr(exc, "code", None)
    if code == "insufficient_quota":
        return True
    message = str(exc).lower()
    return "insufficient_quota" in message or "exceeded your current quota" in message


def translate_provider_error(
    exc: Exception,
    provider: str,
    *,
    forward_status: bool = False,
) -> ServiceError:
    """
    Map a provider exception onto the service taxonomy.

    With `forward_status`, upstream HTTP statuses (4xx/5xx) are passed
    through instead of collapsing to 500.
    """
    if isinstance(exc, ServiceError):
        return exc
    if is_quota_error(exc):
        return UpstreamQuotaError(
            f"{provider} quota exceeded. Check the account's plan and billing details.",
        )
    status = getattr(exc, "status_code", None)
    if status in (401, 403):
        return ConfigurationError(
            f"{provider} rejected the configured API key",
            status_code=status if forward_status else None,
        )
    forwarded = status if forward_status and isinstance(status, int) and status >= 400 else None
    return UpstreamError(f"{provider} request failed: {exc}", status_code=forwarded)
