# =============================================================================
# Writing Analysis — style metrics & AI-content detection
# =============================================================================
#
# Backs /analyze-writing-style and /detect-ai-content.
#
# DESIGN DECISION: LLM judgement + deterministic text statistics.
# The LLM scores consistency, sentence variety and vocabulary richness and
# lists distinctive habits. Passive-voice share, a simplified Flesch reading
# ease and a lexicon sentiment score are computed locally, since they are
# plain arithmetic over the text and a model adds nothing but variance.
#
# DESIGN DECISION: No retry loop here (unlike rewriting). These are single
# short calls; a failure is reported straight back (quota → 429, anything
# else → 500).
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field

from app.config import settings
from app.services.errors import ServiceError, UpstreamError, translate_provider_error
from app.services.llm import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


STYLE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "consistencyScore": {"type": "number", "description": "0-100"},
        "sentenceVariety": {"type": "number", "description": "0-100"},
        "vocabularyRichness": {"type": "number", "description": "0-100"},
        "patterns": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["consistencyScore", "sentenceVariety", "vocabularyRichness", "patterns"],
    "additionalProperties": False,
}

AI_DETECTION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "aiProbability": {"type": "number", "description": "0-100 percentage"},
        "patterns": {"type": "array", "items": {"type": "string"}},
        "model": {"type": "string"},
    },
    "required": ["aiProbability", "patterns", "model"],
    "additionalProperties": False,
}

_STYLE_SYSTEM = (
    "You are a writing style analyser that evaluates text and reports metrics "
    "about the writing. Return JSON only."
)
_AI_SYSTEM = (
    "You are an AI content detector that evaluates whether a text was written "
    "by an AI model or by a human. Return JSON only."
)

_WORD_RE = re.compile(r"\b\w+\b")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PASSIVE_RE = re.compile(r"\b(?:is|are|am|was|were|be|been|being)\s+\w+ed\b", re.IGNORECASE)

POSITIVE_WORDS = frozenset({
    "good", "great", "excellent", "best", "happy", "positive", "nice",
    "wonderful", "fantastic",
})
NEGATIVE_WORDS = frozenset({
    "bad", "worst", "terrible", "horrible", "sad", "negative", "awful",
    "poor", "disappointing",
})


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LocalMetrics:
    passive_voice_percentage: int
    flesch_reading_ease: float
    sentiment_score: int


@dataclass
class StyleAnalysis:
    consistency_score: float
    sentence_variety: float
    vocabulary_richness: float
    patterns: list[str] = field(default_factory=list)
    passive_voice_percentage: int = 0
    flesch_reading_ease: float = 0.0
    sentiment_score: int = 50


@dataclass
class AIDetection:
    ai_probability: float
    patterns: list[str]
    model: str


# ---------------------------------------------------------------------------
# Local Metrics
# ---------------------------------------------------------------------------


def compute_local_metrics(text: str) -> LocalMetrics:
    """
    Deterministic statistics over `text`.

    - passive_voice_percentage: "be"-verb + "-ed" word constructions per
      sentence, in percent
    - flesch_reading_ease: Flesch formula with syllables ≈ 1.5 per word,
      clamped to [0, 100]
    - sentiment_score: 50 ± net positive/negative lexicon hits per word
    """
    sentence_count = max(
        sum(1 for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()), 1,
    )
    words = _WORD_RE.findall(text.lower())
    if not words:
        return LocalMetrics(passive_voice_percentage=0, flesch_reading_ease=0.0, sentiment_score=50)

    passive = len(_PASSIVE_RE.findall(text))
    syllables = len(words) * 1.5
    flesch = 206.835 - 1.015 * (len(words) / sentence_count) - 84.6 * (syllables / len(words))

    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)

    return LocalMetrics(
        passive_voice_percentage=round(passive / sentence_count * 100),
        flesch_reading_ease=round(max(0.0, min(100.0, flesch)), 1),
        sentiment_score=round(50 + (positive - negative) / len(words) * 100),
    )


# ---------------------------------------------------------------------------
# LLM Calls
# ---------------------------------------------------------------------------


def _json_payload(response: LLMResponse) -> dict | None:
    if response.structured is not None:
        return response.structured
    content = response.content.strip()
    # Some providers wrap JSON in a markdown fence
    if content.startswith("```"):
        content = content.strip("`")
        if content.lower().startswith("json"):
            content = content[4:]
    try:
        parsed = json.loads(content)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


async def _complete_json(
    llm: LLMProvider,
    system: str,
    prompt: str,
    schema: dict,
    schema_name: str,
    failure_message: str,
) -> dict:
    kwargs: dict = {}
    if settings.llm_structured_output:
        kwargs = {"response_schema": schema, "schema_name": schema_name}
    try:
        response = await asyncio.wait_for(
            llm.complete(
                [{"role": "user", "content": prompt}],
                system=system,
                temperature=settings.llm_analysis_temperature,
                **kwargs,
            ),
            timeout=settings.llm_timeout_seconds,
        )
    except ServiceError:
        raise
    except Exception as e:
        error = translate_provider_error(e, "LLM provider")
        logger.error("%s: %s", failure_message, e)
        if error.kind == "upstream_failure":
            raise UpstreamError(f"{failure_message}. Please try again later.") from e
        raise error from e

    payload = _json_payload(response)
    if payload is None:
        logger.error("%s: response was not JSON (%d chars)", failure_message, len(response.content))
        raise UpstreamError(f"{failure_message}. Please try again later.")
    return payload


def _score(value, default: float = 0.0) -> float:
    try:
        return max(0.0, min(100.0, float(value)))
    except (TypeError, ValueError):
        return default


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item).strip()]


async def analyze_writing_style(llm: LLMProvider, text: str) -> StyleAnalysis:
    """Style scores from the LLM merged with the local text statistics."""
    prompt = (
        "Analyse this text and provide:\n"
        "1. consistencyScore (0-100)\n"
        "2. sentenceVariety (0-100)\n"
        "3. vocabularyRichness (0-100)\n"
        "4. patterns: distinctive writing habits detected (array of strings)\n\n"
        f'Text to analyse: "{text}"\n\n'
        "Return only a JSON object with these properties."
    )
    payload = await _complete_json(
        llm, _STYLE_SYSTEM, prompt, STYLE_SCHEMA, "writing_style",
        "Failed to analyze writing style",
    )
    local = compute_local_metrics(text)

    return StyleAnalysis(
        consistency_score=_score(payload.get("consistencyScore")),
        sentence_variety=_score(payload.get("sentenceVariety")),
        vocabulary_richness=_score(payload.get("vocabularyRichness")),
        patterns=_string_list(payload.get("patterns")) or ["No distinctive patterns detected"],
        passive_voice_percentage=local.passive_voice_percentage,
        flesch_reading_ease=local.flesch_reading_ease,
        sentiment_score=local.sentiment_score,
    )


async def detect_ai_content(llm: LLMProvider, text: str) -> AIDetection:
    """Estimate the probability that `text` was machine-generated."""
    prompt = (
        "Analyse this text and estimate the probability it was written by an AI "
        "model. List the specific patterns that led to your determination.\n\n"
        f'Text to analyse: "{text}"\n\n'
        "Return only a JSON object with: aiProbability (0-100 percentage), "
        "patterns (array of strings), model (string naming the detection approach)."
    )
    payload = await _complete_json(
        llm, _AI_SYSTEM, prompt, AI_DETECTION_SCHEMA, "ai_detection",
        "Failed to analyze content for AI detection",
    )
    return AIDetection(
        ai_probability=_score(payload.get("aiProbability")),
        patterns=_string_list(payload.get("patterns")),
        model=str(payload.get("model") or "LLM heuristic analysis"),
    )
