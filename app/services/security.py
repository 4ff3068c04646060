# =============================================================================
# Input Validation — submitted text
# =============================================================================
#
# Every endpoint that accepts free text passes it through
# validate_text_input() before doing any provider work.
# =============================================================================

from __future__ import annotations

import re

from app.config import settings
from app.services.errors import InputValidationError

# Markup that has no business in prose submitted for checking
_INJECTION_PATTERNS = (
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"""(?:href|src|action|formaction)\s*=\s*["']?\s*javascript\s*:""", re.IGNORECASE),
    re.compile(r"<[^>]+\son\w+\s*=", re.IGNORECASE),
)


def validate_text_input(
    text: object,
    field_name: str = "Text",
    max_length: int | None = None,
) -> str:
    """
    Return the trimmed text, or raise InputValidationError.

    Rejects non-strings, blank text, text longer than `max_length`
    (settings.max_text_length by default) and script-injection markup.
    """
    if not isinstance(text, str) or not text.strip():
        raise InputValidationError(f"{field_name} is required and must be a non-empty string")

    limit = max_length or settings.max_text_length
    if len(text) > limit:
        raise InputValidationError(
            f"{field_name} is too long ({len(text)} characters, maximum {limit})",
        )

    for pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            raise InputValidationError(f"{field_name} contains disallowed markup")

    return text.strip()
