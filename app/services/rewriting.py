# =============================================================================
# Rewriting Service — LLM Rewrites with Retry & Structured Parsing
# =============================================================================
#
# Backs /smart-content-rewriting, /paraphrase-content and /academic-rewriter.
#
# REQUEST STATES:
#   Idle → Generating → Succeeded
#                     → Failed (RewriteError / UpstreamQuotaError)
#
# DESIGN DECISION: One retry policy for every rewrite call.
# complete_with_retry() wraps the provider call in a tenacity AsyncRetrying
# loop:
#   - attempts: 1 + settings.llm_max_retries (3 by default)
#   - delays: exponential, settings.llm_retry_backoff_seconds * 2**n (1s, 2s)
#   - each attempt bounded by asyncio.wait_for(settings.llm_timeout_seconds)
#   - only transient failures are retried (see is_retriable)
# The sleep function is injectable so tests can record the delays instead
# of waiting.
#
# DESIGN DECISION: Structured output first, text markers second.
# Responses are requested against REWRITE_SCHEMA. If a provider ignores the
# schema, "Rewritten version:" / "Explanation:" markers are parsed, and as a
# last resort the response is split in half (logged as a warning).
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.services.chunker import split_segments
from app.services.errors import (
    ConfigurationError,
    RewriteError,
    ServiceError,
    UpstreamQuotaError,
    is_quota_error,
)
from app.services.llm import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


REWRITE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "rewritten": {
            "type": "string",
            "description": "The rewritten passage only.",
        },
        "explanation": {
            "type": "string",
            "description": "One or two sentences on what was changed.",
        },
    },
    "required": ["rewritten", "explanation"],
    "additionalProperties": False,
}

_MARKER_FORMAT = (
    "Structure your response exactly like this:\n"
    "Rewritten version: <the rewritten text>\n\n"
    "Explanation: <brief explanation of the changes>"
)

DEFAULT_EXPLANATION = (
    "Text was rewritten to reduce similarity while maintaining the original meaning."
)


# ---------------------------------------------------------------------------
# Retry Policy
# ---------------------------------------------------------------------------

_RETRIABLE_MARKERS = (
    "capacity",
    "overloaded",
    "unavailable",
    "rate limit",
    "rate_limit",
    "timeout",
    "timed out",
)


def is_retriable(exc: BaseException) -> bool:
    """
    Transient provider failures: timeouts, HTTP 429 (except billing quota),
    HTTP 5xx, dropped connections, and capacity/overload messages.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, ConfigurationError) or is_quota_error(exc):
        return False
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and (status == 429 or status >= 500):
        return True
    if type(exc).__name__ in ("APIConnectionError", "APITimeoutError"):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RETRIABLE_MARKERS)


def to_rewrite_error(exc: BaseException) -> RewriteError:
    """Classify a terminal failure into a RewriteError kind."""
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    status = getattr(exc, "status_code", None)

    if (
        isinstance(exc, (asyncio.TimeoutError, TimeoutError))
        or type(exc).__name__ == "APITimeoutError"
        or "timed out" in lowered
        or "timeout" in lowered
    ):
        return RewriteError(f"The model did not respond in time: {message}", "timeout")
    if isinstance(exc, ConfigurationError) or status in (401, 403):
        return RewriteError(f"LLM provider is misconfigured: {message}", "configuration")
    if status == 429 or "rate limit" in lowered or "rate_limit" in lowered:
        return RewriteError(f"LLM provider rate limit reached: {message}", "rate_limit")
    return RewriteError(f"Rewrite failed: {message}", "execution_error")


async def complete_with_retry(
    llm: LLMProvider,
    messages: list[dict[str, str]],
    *,
    system: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    response_schema: dict | None = None,
    schema_name: str = "result",
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
    timeout_seconds: float | None = None,
    sleep=asyncio.sleep,
) -> LLMResponse:
    """
    Call `llm.complete` with timeout and retry on transient failures.

    Raises:
        ConfigurationError: Provider key missing (never retried).
        UpstreamQuotaError: Billing quota exhausted (never retried).
        RewriteError: Any other failure once retries are exhausted.
    """
    retries = settings.llm_max_retries if max_retries is None else max_retries
    backoff = settings.llm_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
    timeout = settings.llm_timeout_seconds if timeout_seconds is None else timeout_seconds

    retrying = AsyncRetrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=backoff, min=0),
        retry=retry_if_exception(is_retriable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await asyncio.wait_for(
                    llm.complete(
                        messages,
                        system=system,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        response_schema=response_schema,
                        schema_name=schema_name,
                    ),
                    timeout=timeout,
                )
    except ServiceError:
        raise
    except Exception as e:
        if is_quota_error(e):
            raise UpstreamQuotaError(
                "LLM provider quota exceeded. Check the account's plan and billing details.",
            ) from e
        logger.error("LLM call failed after retries: %s", e)
        raise to_rewrite_error(e) from e
    # AsyncRetrying with reraise=True never falls through
    raise RewriteError("Rewrite produced no result", "execution_error")


# ---------------------------------------------------------------------------
# Response Parsing
# ---------------------------------------------------------------------------

_REWRITTEN_RE = re.compile(
    r"(?:rewritten version|rewritten text|paraphrased version|paraphrased text)\s*:"
    r"\s*([\s\S]+?)\s*(?=(?:\bexplanation|(?:^|\n)\s*(?:changes|improvements))\s*:|$)",
    re.IGNORECASE,
)
_EXPLANATION_RE = re.compile(
    r"(?:\bexplanation|(?:^|\n)\s*(?:changes|improvements))\s*:\s*([\s\S]+)$",
    re.IGNORECASE,
)


def _strip_quotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].strip()
    return text


def parse_rewrite_response(response: LLMResponse) -> tuple[str, str]:
    """
    Extract (rewritten, explanation) from a rewrite response.

    Order: structured output → text markers → split in half.
    """
    if response.structured and str(response.structured.get("rewritten", "")).strip():
        return (
            _strip_quotes(str(response.structured["rewritten"])),
            str(response.structured.get("explanation") or DEFAULT_EXPLANATION).strip(),
        )

    content = response.content.strip()
    rewritten_match = _REWRITTEN_RE.search(content)
    explanation_match = _EXPLANATION_RE.search(content)

    if rewritten_match or explanation_match:
        if rewritten_match:
            rewritten = rewritten_match.group(1)
        else:
            rewritten = content[: explanation_match.start()]
        explanation = (
            explanation_match.group(1).strip() if explanation_match else DEFAULT_EXPLANATION
        )
        rewritten = _strip_quotes(rewritten)
        if rewritten:
            return rewritten, explanation

    logger.warning(
        "Rewrite response had no structure or markers; splitting %d chars in half",
        len(content),
    )
    middle = len(content) // 2
    cut = content.rfind(" ", 0, middle)
    if cut <= 0:
        cut = middle
    rewritten = _strip_quotes(content[:cut])
    explanation = content[cut:].strip() or DEFAULT_EXPLANATION
    return rewritten or content, explanation


def similarity_reduction(original: str, rewritten: str) -> int:
    """
    Estimated similarity reduction in percent, clamped to [20, 90].

    Word sets keep lowercased tokens longer than 3 characters. The estimate
    is the share of the original's words that the rewrite no longer uses.
    """
    original_words = {w for w in original.lower().split() if len(w) > 3}
    if not original_words:
        return 20
    rewritten_words = {w for w in rewritten.lower().split() if len(w) > 3}
    common = len(original_words & rewritten_words)
    reduction = math.floor((1 - common / len(original_words)) * 100)
    return max(20, min(90, reduction))


# ---------------------------------------------------------------------------
# Prompt Building Blocks
# ---------------------------------------------------------------------------

STYLE_INSTRUCTIONS: dict[str, str] = {
    "academic": "Use formal academic language and discipline-specific terminology. "
    "Maintain a scholarly tone.",
    "technical": "Use precise technical language and industry-standard terminology. "
    "Focus on clarity and accuracy.",
    "casual": "Use a conversational tone while keeping the text clear. "
    "Simplify complex concepts without losing meaning.",
    "creative": "Use engaging, varied language with fitting metaphors or analogies.",
}

PURPOSE_INSTRUCTIONS: dict[str, str] = {
    "plagiarism-fix": "Completely rephrase the text to avoid similarity with potential "
    "sources while preserving the exact same meaning.",
    "clarity": "Improve the clarity and readability of the text while keeping its meaning.",
    "simplification": "Simplify complex concepts and language for easier understanding.",
    "elaboration": "Expand on the ideas in the text with more detail and explanation.",
}

READING_LEVEL_INSTRUCTIONS: dict[str, str] = {
    "elementary": "Use simple vocabulary and short sentences suitable for elementary "
    "school readers.",
    "high-school": "Use vocabulary and sentence structures suitable for high school students.",
    "undergraduate": "Use vocabulary and concepts suitable for undergraduate students.",
    "graduate": "Use advanced vocabulary and complex concepts suitable for graduate readers.",
    "expert": "Use specialised terminology suitable for experts in the field.",
}

SEVERITY_INSTRUCTIONS: dict[str, str] = {
    "high": "Completely rewrite this text while preserving the core meaning. Use different "
    "vocabulary, sentence structures and organisation.",
    "medium": "Rewrite this text to reduce similarity while maintaining the original "
    "meaning. Change vocabulary and sentence structure where possible.",
    "low": "Lightly revise this text to make it more original. Keep key terminology "
    "intact but adjust phrasing and structure.",
}

PARAPHRASE_STYLE_INSTRUCTIONS: dict[str, str] = {
    "formal": "Write in a formal, professional register.",
    "creative": "Write with varied, vivid phrasing while staying accurate.",
    "simple": "Use plain words and short sentences.",
    "academic": "Write in an academic register suitable for scholarly work.",
}

DISCIPLINE_INSTRUCTIONS: dict[str, str] = {
    "humanities": "Use humanities terminology and writing conventions. Focus on "
    "interpretive language, theoretical frameworks and cultural contexts.",
    "stem": "Use precise scientific terminology and passive voice where appropriate. "
    "Focus on objective, data-driven language.",
    "social sciences": "Use social science conventions with empirical language balanced "
    "with theoretical frameworks and methodological terminology.",
    "business": "Use professional business terminology with focus on practical "
    "implications, strategy and organisational context.",
    "law": "Use legal terminology and conventions with precise language citing "
    "principles and precedents where relevant.",
}
DISCIPLINE_INSTRUCTIONS["science"] = DISCIPLINE_INSTRUCTIONS["stem"]

_GENERAL_DISCIPLINE = (
    "Use standard academic conventions with formal language appropriate for "
    "scholarly writing."
)


def _schema_kwargs() -> dict:
    if settings.llm_structured_output:
        return {"response_schema": REWRITE_SCHEMA, "schema_name": "rewrite"}
    return {}


def _with_format(prompt: str) -> str:
    if settings.llm_structured_output:
        return prompt
    return f"{prompt}\n\n{_MARKER_FORMAT}"


# ---------------------------------------------------------------------------
# Smart Rewriting
# ---------------------------------------------------------------------------


@dataclass
class RewriteOptions:
    style: str = "academic"
    purpose: str = "plagiarism-fix"
    preserve_key_terms: bool = True
    academic_discipline: str | None = None
    target_reading_level: str | None = None


@dataclass
class RewriteSuggestion:
    """One rewritten passage, or the reason it could not be rewritten."""

    original: str
    rewritten: str
    explanation: str
    similarity_reduction: int = 0
    error: bool = False
    error_type: str | None = None
    hint: str | None = None


def extract_passages(
    text: str,
    flagged_texts: list[str] | None = None,
    max_passages: int | None = None,
    max_chars: int | None = None,
) -> list[str]:
    """
    Pick the passages to rewrite: flagged passages when given, otherwise
    paragraphs (or ~300-char sentence groups) of the text. Long passages are
    truncated with a trailing "...".
    """
    limit = max_passages or settings.max_rewrite_passages
    cap = max_chars or settings.max_passage_chars

    candidates = [t.strip() for t in (flagged_texts or []) if t and t.strip()]
    if not candidates:
        candidates = split_segments(text, group_chars=settings.sentence_group_chars)

    return [
        passage if len(passage) <= cap else passage[:cap] + "..."
        for passage in candidates[:limit]
    ]


def _smart_rewrite_prompt(passage: str, options: RewriteOptions) -> tuple[str, str]:
    discipline_note = (
        f" This is for the academic discipline of {options.academic_discipline}."
        if options.academic_discipline else ""
    )
    system = (
        "You are an expert academic writer and editor helping users rewrite "
        "content to avoid plagiarism while maintaining academic integrity."
        f"{discipline_note}"
    )
    key_terms = (
        "Preserve key terms, proper nouns and essential discipline-specific terminology."
        if options.preserve_key_terms
        else "Feel free to use synonyms for all terms to maximise originality."
    )
    instructions = [
        STYLE_INSTRUCTIONS.get(options.style, STYLE_INSTRUCTIONS["academic"]),
        PURPOSE_INSTRUCTIONS.get(options.purpose, PURPOSE_INSTRUCTIONS["plagiarism-fix"]),
        READING_LEVEL_INSTRUCTIONS.get(
            options.target_reading_level or "undergraduate",
            READING_LEVEL_INSTRUCTIONS["undergraduate"],
        ),
        key_terms,
    ]
    user = (
        f'Please rewrite the following text passage:\n\n"{passage}"\n\n'
        "Instructions:\n" + "\n".join(instructions)
    )
    return system, _with_format(user)


async def _rewrite_passage(
    llm: LLMProvider,
    passage: str,
    options: RewriteOptions,
    sleep,
) -> RewriteSuggestion:
    system, user = _smart_rewrite_prompt(passage, options)
    try:
        response = await complete_with_retry(
            llm,
            [{"role": "user", "content": user}],
            system=system,
            sleep=sleep,
            **_schema_kwargs(),
        )
    except ConfigurationError:
        raise
    except ServiceError as e:
        logger.warning("Passage rewrite failed (%s): %s", e.kind, e.message)
        return RewriteSuggestion(
            original=passage,
            rewritten="Error generating suggestion",
            explanation=f"Error: {e.message}",
            error=True,
            error_type=e.kind,
            hint=e.hint,
        )

    rewritten, explanation = parse_rewrite_response(response)
    return RewriteSuggestion(
        original=passage,
        rewritten=rewritten,
        explanation=explanation,
        similarity_reduction=similarity_reduction(passage, rewritten),
    )


async def smart_rewrite(
    llm: LLMProvider,
    text: str,
    options: RewriteOptions,
    flagged_texts: list[str] | None = None,
    sleep=asyncio.sleep,
) -> list[RewriteSuggestion]:
    """
    Rewrite up to `max_rewrite_passages` passages concurrently.

    A passage that fails is returned as an error suggestion next to the
    successful ones. A missing provider key fails the whole call.
    """
    passages = extract_passages(text, flagged_texts)
    logger.info(
        "Smart rewrite: %d passages (style=%s, purpose=%s)",
        len(passages), options.style, options.purpose,
    )
    return list(await asyncio.gather(*(
        _rewrite_passage(llm, passage, options, sleep) for passage in passages
    )))


# ---------------------------------------------------------------------------
# Paraphrase & Academic Rewrite
# ---------------------------------------------------------------------------


@dataclass
class RewriteResult:
    original: str
    rewritten: str
    explanation: str
    similarity_reduction: int


async def paraphrase(
    llm: LLMProvider,
    text: str,
    severity: str = "medium",
    style: str = "academic",
    context: str | None = None,
    sleep=asyncio.sleep,
) -> RewriteResult:
    """Paraphrase `text` with severity- and style-specific instructions."""
    system = (
        "You are an academic paraphrasing assistant. Help users avoid plagiarism "
        "by rewriting text while preserving the original meaning. Produce "
        "natural, well-structured alternatives."
    )
    instructions = " ".join([
        SEVERITY_INSTRUCTIONS.get(severity, SEVERITY_INSTRUCTIONS["medium"]),
        PARAPHRASE_STYLE_INSTRUCTIONS.get(style, PARAPHRASE_STYLE_INSTRUCTIONS["academic"]),
    ])
    prompt = f'Original text: "{text}"\n\n{instructions}'
    if context:
        prompt = f"Context: {context}\n\n{prompt}"

    response = await complete_with_retry(
        llm,
        [{"role": "user", "content": _with_format(prompt)}],
        system=system,
        sleep=sleep,
        **_schema_kwargs(),
    )
    rewritten, explanation = parse_rewrite_response(response)
    return RewriteResult(
        original=text,
        rewritten=rewritten,
        explanation=explanation,
        similarity_reduction=similarity_reduction(text, rewritten),
    )


async def academic_rewrite(
    llm: LLMProvider,
    text: str,
    discipline: str = "general",
    context: str | None = None,
    sleep=asyncio.sleep,
) -> RewriteResult:
    """Rewrite `text` following the writing conventions of `discipline`."""
    instructions = DISCIPLINE_INSTRUCTIONS.get(discipline.lower().strip(), _GENERAL_DISCIPLINE)
    system = (
        f"You are an expert academic writer specialising in {discipline} writing. "
        "Rewrite content to avoid plagiarism while keeping academic integrity "
        f"and improving the quality of the writing. {instructions}"
    )
    prompt = (
        f"Please rewrite the following text in proper academic style for the "
        f"{discipline} discipline, making it original while keeping the same "
        f'meaning:\n\n"{text}"'
    )
    if context:
        prompt += f'\n\nConsider this surrounding context: "{context}"'
    prompt += (
        "\n\nProvide the rewritten version and a brief explanation of your "
        "changes, including how the academic quality was improved."
    )

    response = await complete_with_retry(
        llm,
        [{"role": "user", "content": _with_format(prompt)}],
        system=system,
        sleep=sleep,
        **_schema_kwargs(),
    )
    rewritten, explanation = parse_rewrite_response(response)
    return RewriteResult(
        original=text,
        rewritten=rewritten,
        explanation=explanation,
        similarity_reduction=similarity_reduction(text, rewritten),
    )
