# =============================================================================
# Rewriting API — LLM-Backed Rewrites
# =============================================================================
#
# ENDPOINTS:
#   POST /paraphrase-content      — paraphrase with severity + style
#   POST /smart-content-rewriting — rewrite up to 3 flagged passages
#   POST /academic-rewriter       — discipline-specific academic rewrite
#
# Failures map to HTTP through the ServiceError handlers in app.main:
#   RewriteError        → 504 timeout / 429 rate_limit / 500 otherwise,
#                         with errorType and hint
#   UpstreamQuotaError  → 429 with quotaExceeded: true
#   ConfigurationError  → 500
# /smart-content-rewriting reports per-passage failures inside its
# suggestions list instead and only fails as a whole on configuration.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit, get_llm
from app.models.requests import (
    AcademicRewriteRequest,
    ParaphraseRequest,
    SmartRewriteRequest,
)
from app.models.responses import (
    AcademicRewriteResponse,
    ParaphraseResponse,
    RewriteSuggestionResponse,
    SmartRewriteResponse,
)
from app.services.llm import LLMProvider
from app.services.rewriting import (
    RewriteOptions,
    academic_rewrite,
    paraphrase,
    smart_rewrite,
)
from app.services.security import validate_text_input

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rewriting"], dependencies=[Depends(enforce_rate_limit)])


@router.post(
    "/paraphrase-content",
    response_model=ParaphraseResponse,
    summary="Paraphrase a passage",
    responses={429: {"description": "Rate limit or provider quota exceeded"}},
)
async def paraphrase_content(
    request: ParaphraseRequest,
    llm: LLMProvider = Depends(get_llm),
) -> ParaphraseResponse:
    text = validate_text_input(request.text)
    context = request.context.strip() if request.context else None

    result = await paraphrase(
        llm, text, severity=request.severity, style=request.style, context=context,
    )
    return ParaphraseResponse(
        original=result.original,
        paraphrased=result.rewritten,
        explanation=result.explanation,
        similarity_reduction=result.similarity_reduction,
    )


@router.post(
    "/smart-content-rewriting",
    response_model=SmartRewriteResponse,
    summary="Rewrite flagged passages",
    description=(
        "Rewrites the flagged passages (or, without flaggedSources, the first "
        "paragraphs of the text) with the requested style, purpose and reading "
        "level. At most 3 passages, each truncated to 2000 characters."
    ),
)
async def smart_content_rewriting(
    request: SmartRewriteRequest,
    llm: LLMProvider = Depends(get_llm),
) -> SmartRewriteResponse:
    text = validate_text_input(request.text)
    opts = request.options

    suggestions = await smart_rewrite(
        llm,
        text,
        RewriteOptions(
            style=opts.style,
            purpose=opts.purpose,
            preserve_key_terms=opts.preserve_key_terms,
            academic_discipline=opts.academic_discipline,
            target_reading_level=opts.target_reading_level,
        ),
        flagged_texts=[s.text for s in request.flagged_sources if s.text],
    )
    return SmartRewriteResponse(suggestions=[
        RewriteSuggestionResponse(
            original=s.original,
            rewritten=s.rewritten,
            explanation=s.explanation,
            similarity_reduction=s.similarity_reduction,
            error=s.error,
            error_type=s.error_type,
            hint=s.hint,
        )
        for s in suggestions
    ])


@router.post(
    "/academic-rewriter",
    response_model=AcademicRewriteResponse,
    summary="Rewrite in a discipline's academic style",
)
async def academic_rewriter(
    request: AcademicRewriteRequest,
    llm: LLMProvider = Depends(get_llm),
) -> AcademicRewriteResponse:
    text = validate_text_input(request.text)
    context = request.context.strip() if request.context else None

    result = await academic_rewrite(
        llm, text, discipline=request.discipline or "general", context=context,
    )
    return AcademicRewriteResponse(
        original=result.original,
        rewritten=result.rewritten,
        explanation=result.explanation,
        similarity_reduction=result.similarity_reduction,
    )
