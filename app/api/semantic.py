# =============================================================================
# Semantic API — Paragraph-Level Similarity Checks
# =============================================================================
#
# ENDPOINTS:
#   POST /semantic-search                — search | embed | analyze actions
#   POST /semantic-plagiarism-check      — inline check (client may pre-split)
#   POST /multilingual-plagiarism-check  — check with the multilingual model
#
# Every check returns one result per paragraph, in source order, including
# paragraphs with no matches. A paragraph whose embedding or lookup failed
# carries an `error` next to the others; only a missing embedding key fails
# the whole request (500).
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.api.deps import (
    enforce_rate_limit,
    get_search,
    get_search_cache,
    get_store,
)
from app.api.sources import find_web_sources, source_responses
from app.config import settings
from app.models.requests import (
    MultilingualCheckRequest,
    PlagiarismCheckRequest,
    SemanticSearchRequest,
)
from app.models.responses import (
    EmbedResponse,
    EmbedResultResponse,
    MatchResponse,
    MatchStatsResponse,
    MultilingualResponse,
    MultilingualResultResponse,
    MultilingualStatsResponse,
    ParagraphResultResponse,
    SemanticSearchResponse,
)
from app.services.cache import TTLCache
from app.services.chunker import TextChunk, chunk_text
from app.services.errors import ConfigurationError, InputValidationError, ServiceError
from app.services.matching import (
    ParagraphResult,
    aggregate_stats,
    match_chunks,
    merge_sources,
    sources_from_matches,
    store_chunks,
    validate_language,
)
from app.services.security import validate_text_input
from app.services.vectorstore import SimilarityStore
from app.services.web_search import GoogleSearchClient, Source

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Semantic"], dependencies=[Depends(enforce_rate_limit)])

_ACTIONS = ("search", "embed", "analyze")


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def _paragraph_response(result: ParagraphResult) -> ParagraphResultResponse:
    return ParagraphResultResponse(
        paragraph=result.paragraph,
        matches=[MatchResponse(**vars(m)) for m in result.matches],
        error=result.error,
    )


def _search_response(
    text: str,
    results: list[ParagraphResult],
    sources: list[Source] | None = None,
) -> SemanticSearchResponse:
    stats = aggregate_stats(text, results)
    response = SemanticSearchResponse(
        results=[_paragraph_response(r) for r in results],
        stats=MatchStatsResponse(
            total_word_count=stats.total_word_count,
            paragraphs_with_matches=stats.paragraphs_with_matches,
            average_similarity=stats.average_similarity,
        ),
    )
    # `sources` stays unset (and off the wire) unless the caller asked for it
    if sources is not None:
        response.sources = source_responses(sources)
    return response


def _document_chunks(text: str) -> list[TextChunk]:
    return chunk_text(
        text,
        min_paragraph_length=settings.min_paragraph_length,
        max_paragraphs=settings.max_paragraphs,
        group_chars=settings.sentence_group_chars,
    )


# ---------------------------------------------------------------------------
# POST /semantic-search
# ---------------------------------------------------------------------------


@router.post(
    "/semantic-search",
    response_model=SemanticSearchResponse | EmbedResponse,
    response_model_exclude_unset=True,
    summary="Check or store text against the reference corpus",
    description=(
        "action=search: match each paragraph against stored reference text. "
        "action=embed: store each paragraph with the given sourceInfo. "
        "action=analyze: search plus web sources, merged by URL."
    ),
)
async def semantic_search(
    request: SemanticSearchRequest,
    store: SimilarityStore = Depends(get_store),
    search_client: GoogleSearchClient = Depends(get_search),
    cache: TTLCache = Depends(get_search_cache),
) -> SemanticSearchResponse | EmbedResponse:
    text = validate_text_input(request.text)
    if request.action not in _ACTIONS:
        raise InputValidationError("Invalid action specified")

    chunks = _document_chunks(text)

    if request.action == "embed":
        if not chunks:
            raise InputValidationError(
                f"Text has no paragraphs of at least "
                f"{settings.min_paragraph_length} characters to store",
            )
        info = request.source_info
        outcomes = await store_chunks(store, chunks, {
            "source_url": info.url if info else None,
            "source_title": info.title if info else None,
            "author": info.author if info else None,
            "publication_date": info.publication_date if info else None,
        })
        return EmbedResponse(
            success=all(o.success for o in outcomes),
            results=[
                EmbedResultResponse(id=o.id, success=o.success, error=o.error)
                for o in outcomes
            ],
        )

    results = await match_chunks(store, chunks, threshold=request.threshold)

    if request.action == "search":
        return _search_response(text, results)

    # analyze: reference matches + web hits, one entry per URL
    web_sources: list[Source] = []
    try:
        web_sources = await find_web_sources(search_client, cache, text)
    except ConfigurationError:
        raise
    except ServiceError as e:
        logger.warning("Web source lookup failed during analyze: %s", e.message)

    sources = merge_sources(sources_from_matches(results), web_sources)
    return _search_response(text, results, sources)


# ---------------------------------------------------------------------------
# POST /semantic-plagiarism-check
# ---------------------------------------------------------------------------


@router.post(
    "/semantic-plagiarism-check",
    response_model=SemanticSearchResponse,
    response_model_exclude_unset=True,
    summary="Inline plagiarism check",
    description=(
        "Checks client-supplied chunks, or splits the text server-side with "
        "the inline limits (paragraphs of at least 30 characters, at most 20)."
    ),
)
async def semantic_plagiarism_check(
    request: PlagiarismCheckRequest,
    store: SimilarityStore = Depends(get_store),
) -> SemanticSearchResponse:
    text = validate_text_input(request.text)

    supplied = [c.strip() for c in request.chunks if c and c.strip()]
    if supplied:
        chunks = [
            TextChunk(text=chunk, position=i)
            for i, chunk in enumerate(supplied[: settings.inline_max_paragraphs])
        ]
    else:
        chunks = chunk_text(
            text,
            min_paragraph_length=settings.inline_min_paragraph_length,
            max_paragraphs=settings.inline_max_paragraphs,
            group_chars=settings.sentence_group_chars,
        )

    results = await match_chunks(store, chunks, threshold=request.threshold)
    return _search_response(text, results)


# ---------------------------------------------------------------------------
# POST /multilingual-plagiarism-check
# ---------------------------------------------------------------------------


@router.post(
    "/multilingual-plagiarism-check",
    response_model=MultilingualResponse,
    summary="Plagiarism check for non-English text",
    description=(
        "Same pipeline as /semantic-search with the multilingual embedding "
        "model. The language is declared by the caller."
    ),
)
async def multilingual_plagiarism_check(
    request: MultilingualCheckRequest,
    store: SimilarityStore = Depends(get_store),
) -> MultilingualResponse:
    text = validate_text_input(request.text)
    language = validate_language(request.language)

    results = await match_chunks(
        store,
        _document_chunks(text),
        threshold=request.threshold,
        embedding_model=settings.multilingual_embedding_model,
    )
    stats = aggregate_stats(text, results)

    return MultilingualResponse(
        results=[
            MultilingualResultResponse(
                **_paragraph_response(r).model_dump(),
                language=language,
            )
            for r in results
        ],
        stats=MultilingualStatsResponse(
            language_detected=language,
            confidence=1.0,
            total_matches=sum(len(r.matches) for r in results),
            average_similarity=stats.average_similarity,
        ),
    )
