# =============================================================================
# Match Aggregator — paragraph-level semantic matching
# =============================================================================
#
# PIPELINE:
#   text → chunk_text() → embed_texts() → store.match_documents() per chunk
#        → ParagraphResult per chunk → aggregate_stats() / merge_sources()
#
# DESIGN DECISION: Per-paragraph failure isolation.
# Embedding or store failures for one paragraph produce a result with
# `matches: []` and an `error`. The other paragraphs are unaffected, and
# the caller still gets one result per chunk in source order.
#
# DESIGN DECISION: Store queries fan out with asyncio.gather. They are
# independent reads, and gather preserves input order in its results.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from app.config import settings
from app.services.chunker import TextChunk
from app.services.classifier import classify_source
from app.services.embedder import EmbeddingOutcome, embed_texts
from app.services.errors import InputValidationError
from app.services.vectorstore import (
    SimilarityStore,
    UpsertOutcome,
    VectorMatch,
    content_hash,
)
from app.services.web_search import Source

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "es", "fr", "de", "it", "pt", "ru", "zh", "ja", "ar")


def validate_language(language: str | None) -> str:
    """Normalised ISO 639-1 code, or InputValidationError if unsupported."""
    code = (language or "en").strip().lower()
    if code not in SUPPORTED_LANGUAGES:
        raise InputValidationError(
            f"Unsupported language '{language}'. "
            f"Supported languages: {', '.join(SUPPORTED_LANGUAGES)}",
        )
    return code


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ParagraphResult:
    """Matches found for one chunk of the submitted text."""

    paragraph: str
    matches: list[VectorMatch] = field(default_factory=list)
    error: str | None = None
    position: int = 0


@dataclass
class MatchStats:
    total_word_count: int
    paragraphs_with_matches: int
    average_similarity: float


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def top_matches(matches: list[VectorMatch], limit: int | None = None) -> list[VectorMatch]:
    """
    Most similar matches first, at most `limit` of them.

    sorted() is stable, so equal similarities keep the backend's order.
    """
    cap = settings.max_matches_per_paragraph if limit is None else limit
    return sorted(matches, key=lambda m: m.similarity, reverse=True)[:cap]


async def _match_one(
    store: SimilarityStore,
    chunk: TextChunk,
    outcome: EmbeddingOutcome,
    threshold: float,
    match_count: int,
) -> ParagraphResult:
    if not outcome.ok:
        return ParagraphResult(
            paragraph=chunk.text, error=outcome.error, position=chunk.position,
        )
    try:
        matches = await store.match_documents(outcome.vector, threshold, match_count)
    except Exception as e:
        logger.warning("Similarity search failed for paragraph %d: %s", chunk.position, e)
        return ParagraphResult(
            paragraph=chunk.text,
            error=f"Similarity search failed: {e}",
            position=chunk.position,
        )
    return ParagraphResult(
        paragraph=chunk.text,
        matches=top_matches(matches),
        position=chunk.position,
    )


async def match_chunks(
    store: SimilarityStore,
    chunks: list[TextChunk],
    threshold: float | None = None,
    match_count: int | None = None,
    embedding_model: str | None = None,
) -> list[ParagraphResult]:
    """
    Embed every chunk and look up its reference matches.

    Returns one ParagraphResult per chunk, in chunk order. Only a missing
    embedding key (ConfigurationError) is raised; everything else is
    recorded on the affected paragraph.
    """
    if not chunks:
        return []

    _threshold = settings.similarity_threshold if threshold is None else threshold
    _count = match_count or settings.match_count

    outcomes = await embed_texts([c.text for c in chunks], model=embedding_model)
    results = await asyncio.gather(*(
        _match_one(store, chunk, outcome, _threshold, _count)
        for chunk, outcome in zip(chunks, outcomes, strict=True)
    ))

    logger.info(
        "Matched %d paragraphs: %d with matches, %d failed (threshold=%.2f)",
        len(results),
        sum(1 for r in results if r.matches),
        sum(1 for r in results if r.error),
        _threshold,
    )
    return list(results)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_stats(text: str, results: list[ParagraphResult]) -> MatchStats:
    """
    - total_word_count: whitespace tokens in the full submitted text
    - paragraphs_with_matches: results with at least one match
    - average_similarity: mean over those paragraphs of each paragraph's
      mean match similarity (0 when none matched)
    """
    matched = [r for r in results if r.matches]
    per_paragraph = [
        sum(m.similarity for m in r.matches) / len(r.matches) for r in matched
    ]
    return MatchStats(
        total_word_count=len(text.split()),
        paragraphs_with_matches=len(matched),
        average_similarity=sum(per_paragraph) / max(len(matched), 1),
    )


def sources_from_matches(results: list[ParagraphResult]) -> list[Source]:
    """Turn stored-reference matches that carry a URL into Source entries."""
    sources: list[Source] = []
    for result in results:
        for match in result.matches:
            if not match.source_url:
                continue
            sources.append(Source(
                url=match.source_url,
                title=match.source_title or match.source_url,
                snippet=match.content[:200],
                type=classify_source(match.source_url),
                match_percentage=round(match.similarity * 100),
            ))
    return sources


def merge_sources(*source_lists: list[Source]) -> list[Source]:
    """
    Combine source lists, one entry per URL.

    Later lists overwrite earlier ones for the same URL (last write wins).
    The result is stable-sorted by match_percentage, highest first.
    """
    merged: dict[str, Source] = {}
    for sources in source_lists:
        for source in sources:
            if source.url:
                merged[source.url] = source
    return sorted(merged.values(), key=lambda s: s.match_percentage, reverse=True)


# ---------------------------------------------------------------------------
# Storing reference paragraphs
# ---------------------------------------------------------------------------


async def store_chunks(
    store: SimilarityStore,
    chunks: list[TextChunk],
    source_info: dict | None = None,
) -> list[UpsertOutcome]:
    """
    Embed and store chunks as reference paragraphs, one outcome per chunk.

    Every chunk gets the same source metadata (source_url, source_title,
    author, publication_date). Chunks whose embedding failed are reported
    without being sent to the store.
    """
    if not chunks:
        return []

    metadata = dict(source_info or {})
    outcomes = await embed_texts([c.text for c in chunks])

    stored_chunks = [c for c, o in zip(chunks, outcomes, strict=True) if o.ok]
    stored: list[UpsertOutcome] = []
    if stored_chunks:
        stored = await asyncio.to_thread(
            store.upsert_documents,
            [c.text for c in stored_chunks],
            [o.vector for o in outcomes if o.ok],
            [metadata for _ in stored_chunks],
        )

    stored_iter = iter(stored)
    results = [
        next(stored_iter) if outcome.ok
        else UpsertOutcome(content_hash=content_hash(chunk.text), error=outcome.error)
        for chunk, outcome in zip(chunks, outcomes, strict=True)
    ]
    logger.info(
        "Stored %d/%d reference paragraphs",
        sum(r.success for r in results), len(results),
    )
    return results
