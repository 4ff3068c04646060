# =============================================================================
# Analysis API — Writing Style & AI-Content Detection
# =============================================================================
#
# ENDPOINTS:
#   POST /analyze-writing-style — LLM style scores + local text statistics
#   POST /detect-ai-content     — probability the text is machine-generated
#   GET  /verify-llm            — minimal completion to check the credentials
#
# These calls are not retried: a failure is reported straight away
# (quota → 429 with quotaExceeded, anything else → 500).
# =============================================================================

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit, get_llm
from app.config import settings
from app.models.requests import TextAnalysisRequest
from app.models.responses import AIDetectionResponse, VerifyResponse, WritingStyleResponse
from app.services.analysis import analyze_writing_style, detect_ai_content
from app.services.errors import translate_provider_error
from app.services.llm import LLMProvider
from app.services.security import validate_text_input

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analysis"])


@router.post(
    "/analyze-writing-style",
    response_model=WritingStyleResponse,
    summary="Analyse writing style",
    dependencies=[Depends(enforce_rate_limit)],
)
async def analyze_style(
    request: TextAnalysisRequest,
    llm: LLMProvider = Depends(get_llm),
) -> WritingStyleResponse:
    text = validate_text_input(request.text)
    analysis = await analyze_writing_style(llm, text)
    return WritingStyleResponse(
        consistency_score=analysis.consistency_score,
        sentence_variety=analysis.sentence_variety,
        vocabulary_richness=analysis.vocabulary_richness,
        patterns=analysis.patterns,
        passive_voice_percentage=analysis.passive_voice_percentage,
        flesch_reading_ease=analysis.flesch_reading_ease,
        sentiment_score=analysis.sentiment_score,
    )


@router.post(
    "/detect-ai-content",
    response_model=AIDetectionResponse,
    summary="Estimate whether text was AI-generated",
    dependencies=[Depends(enforce_rate_limit)],
)
async def detect_ai(
    request: TextAnalysisRequest,
    llm: LLMProvider = Depends(get_llm),
) -> AIDetectionResponse:
    text = validate_text_input(request.text)
    detection = await detect_ai_content(llm, text)
    return AIDetectionResponse(
        ai_probability=detection.ai_probability,
        patterns=detection.patterns,
        model=detection.model,
    )


@router.get(
    "/verify-llm",
    response_model=VerifyResponse,
    summary="Check the LLM provider credentials",
)
async def verify_llm(llm: LLMProvider = Depends(get_llm)) -> VerifyResponse:
    try:
        response = await asyncio.wait_for(
            llm.complete(
                [{"role": "user", "content": "Reply with the single word: ok"}],
                max_tokens=5,
                temperature=0.0,
            ),
            timeout=settings.llm_timeout_seconds,
        )
    except Exception as e:
        logger.warning("LLM credential check failed: %s", e)
        raise translate_provider_error(e, "LLM", forward_status=True) from e

    return VerifyResponse(
        status="success",
        message=f"{settings.llm_provider} credentials are valid",
        model=response.model,
    )
