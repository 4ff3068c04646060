# =============================================================================
# Paragraph Chunker — paragraph/sentence splitting + tiktoken
# =============================================================================
#
# Splits submitted text into paragraph-sized units that are embedded and
# compared against the reference corpus one by one.
#
# ALGORITHM:
# 1. Split on blank lines (one or more empty lines = paragraph break)
# 2. If that yields a single paragraph, split it on sentence boundaries
#    and regroup sentences into chunks of ~300 characters
# 3. Drop chunks shorter than `min_paragraph_length`
# 4. Optionally drop chunks that are nothing but a stock filler phrase
# 5. Keep the first `max_paragraphs` chunks
#
# DESIGN DECISION: Character thresholds (not tokens) decide what counts as a
# paragraph, since "too short to be meaningful" is a property of the prose.
# tiktoken is still used to count tokens per chunk and to clip embedding
# inputs to the model's hard token limit.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import tiktoken

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

# Whole-chunk matches only (lowercased, trimmed, trailing punctuation removed).
COMMON_PHRASES: frozenset[str] = frozenset({
    "in conclusion",
    "in summary",
    "to summarize",
    "to conclude",
    "for example",
    "on the other hand",
    "as mentioned above",
    "as previously mentioned",
    "as shown in the table below",
    "thank you for your attention",
    "table of contents",
    "all rights reserved",
    "references",
    "bibliography",
    "acknowledgements",
    "introduction",
    "abstract",
})


@dataclass
class TextChunk:
    """A paragraph-sized unit of the submitted text."""

    text: str
    position: int  # Index of the segment in the original text
    token_count: int = 0


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------
# cl100k_base is the encoding of the text-embedding-3 models, so token
# counts here match what the embedding endpoint sees.
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def count_tokens(text: str) -> int:
    return len(_get_encoder().encode(text))


def clip_to_tokens(text: str, max_tokens: int) -> str:
    """Cut `text` to at most `max_tokens` tokens (no-op when it fits)."""
    encoder = _get_encoder()
    tokens = encoder.encode(text)
    if len(tokens) <= max_tokens:
        return text
    logger.debug("Clipping text from %d to %d tokens", len(tokens), max_tokens)
    return encoder.decode(tokens[:max_tokens])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_segments(text: str, group_chars: int = 300) -> list[str]:
    """
    Split text into paragraphs, or ~`group_chars` sentence groups when the
    text has no paragraph breaks. Empty segments are never returned.
    """
    paragraphs = [
        p.strip() for p in _PARAGRAPH_BREAK.split(text or "") if p.strip()
    ]
    if len(paragraphs) != 1:
        return paragraphs

    sentences = [
        s.strip() for s in _SENTENCE_BREAK.split(paragraphs[0]) if s.strip()
    ]
    groups: list[str] = []
    current = ""
    for sentence in sentences:
        candidate = f"{current} {sentence}" if current else sentence
        if current and len(candidate) > group_chars:
            groups.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        groups.append(current)
    return groups


def is_common_phrase(text: str) -> bool:
    normalised = text.strip().lower().rstrip(".!?:;,").strip()
    return normalised in COMMON_PHRASES


def chunk_text(
    text: str,
    min_paragraph_length: int = 40,
    max_paragraphs: int = 25,
    exclude_common_phrases: bool = False,
    group_chars: int = 300,
) -> list[TextChunk]:
    """
    Split text into comparable paragraph chunks.

    Args:
        text: The submitted text (may be empty).
        min_paragraph_length: Chunks shorter than this (in characters)
            are dropped.
        max_paragraphs: Upper bound on the number of chunks returned.
        exclude_common_phrases: Drop chunks that consist only of a stock
            filler phrase such as "In conclusion".
        group_chars: Target size of sentence groups when the text has no
            paragraph breaks.

    Returns:
        Chunks in source order. Never raises; empty input gives [].
    """
    segments = split_segments(text, group_chars=group_chars)

    chunks: list[TextChunk] = []
    for position, segment in enumerate(segments):
        if len(segment) < min_paragraph_length:
            continue
        if exclude_common_phrases and is_common_phrase(segment):
            continue
        chunks.append(TextChunk(
            text=segment,
            position=position,
            token_count=count_tokens(segment),
        ))
        if len(chunks) >= max_paragraphs:
            break

    logger.debug(
        "Chunked %d chars into %d chunks (%d segments, min=%d, max=%d)",
        len(text or ""), len(chunks), len(segments),
        min_paragraph_length, max_paragraphs,
    )
    return chunks
