# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the JSON bodies returned by the API. Handlers build them with
# snake_case field names; FastAPI serialises by alias, so clients see the
# camelCase names (totalWordCount, paragraphsWithMatches, ...).
#
# Reference-match fields keep their storage names (source_url, source_title,
# publication_date) because that is how the similarity store reports them.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field

_CAMEL = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    service: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""

    error: str
    hint: str | None = None
    error_type: str | None = Field(default=None, alias="errorType")
    quota_exceeded: bool | None = Field(default=None, alias="quotaExceeded")

    model_config = _CAMEL


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class SourceResponse(BaseModel):
    url: str
    title: str
    snippet: str
    type: str = Field(description="academic | trusted | blog | unknown")
    match_percentage: int = Field(alias="matchPercentage")

    model_config = _CAMEL


class SearchSourcesResponse(BaseModel):
    sources: list[SourceResponse]


# ---------------------------------------------------------------------------
# Semantic matching
# ---------------------------------------------------------------------------


class MatchResponse(BaseModel):
    similarity: float = Field(ge=0.0, le=1.0)
    content: str
    source_url: str | None = None
    source_title: str | None = None
    author: str | None = None
    publication_date: str | None = None


class ParagraphResultResponse(BaseModel):
    paragraph: str
    matches: list[MatchResponse]
    error: str | None = None


class MatchStatsResponse(BaseModel):
    total_word_count: int = Field(alias="totalWordCount")
    paragraphs_with_matches: int = Field(alias="paragraphsWithMatches")
    average_similarity: float = Field(alias="averageSimilarity")

    model_config = _CAMEL


class SemanticSearchResponse(BaseModel):
    """search/analyze actions and /semantic-plagiarism-check."""

    results: list[ParagraphResultResponse]
    stats: MatchStatsResponse
    sources: list[SourceResponse] | None = Field(
        default=None,
        description="analyze action only: web and reference sources, deduplicated by URL",
    )


class EmbedResultResponse(BaseModel):
    id: str | None = None
    success: bool
    error: str | None = None


class EmbedResponse(BaseModel):
    success: bool
    results: list[EmbedResultResponse]


class MultilingualResultResponse(ParagraphResultResponse):
    language: str


class MultilingualStatsResponse(BaseModel):
    language_detected: str = Field(alias="languageDetected")
    confidence: float
    total_matches: int = Field(alias="totalMatches")
    average_similarity: float = Field(alias="averageSimilarity")

    model_config = _CAMEL


class MultilingualResponse(BaseModel):
    results: list[MultilingualResultResponse]
    stats: MultilingualStatsResponse


# ---------------------------------------------------------------------------
# Rewriting
# ---------------------------------------------------------------------------


class ParaphraseResponse(BaseModel):
    original: str
    paraphrased: str
    explanation: str
    similarity_reduction: int = Field(alias="similarityReduction")

    model_config = _CAMEL


class RewriteSuggestionResponse(BaseModel):
    original: str
    rewritten: str
    explanation: str
    similarity_reduction: int = Field(alias="similarityReduction")
    error: bool = False
    error_type: str | None = Field(default=None, alias="errorType")
    hint: str | None = None

    model_config = _CAMEL


class SmartRewriteResponse(BaseModel):
    suggestions: list[RewriteSuggestionResponse]


class AcademicRewriteResponse(BaseModel):
    original: str
    rewritten: str
    explanation: str
    similarity_reduction: int = Field(alias="similarityReduction")

    model_config = _CAMEL


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class WritingStyleResponse(BaseModel):
    consistency_score: float = Field(alias="consistencyScore")
    sentence_variety: float = Field(alias="sentenceVariety")
    vocabulary_richness: float = Field(alias="vocabularyRichness")
    patterns: list[str]
    passive_voice_percentage: int = Field(alias="passiveVoicePercentage")
    flesch_reading_ease: float = Field(alias="fleschReadingEase")
    sentiment_score: int = Field(alias="sentimentScore")

    model_config = _CAMEL


class AIDetectionResponse(BaseModel):
    ai_probability: float = Field(alias="aiProbability")
    patterns: list[str]
    model: str

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class VerifyResponse(BaseModel):
    status: str = Field(description="success | error")
    message: str
    model: str | None = None
    result_count: int | None = Field(default=None, alias="resultCount")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


# ---------------------------------------------------------------------------
# Batch & reference ingestion
# ---------------------------------------------------------------------------


class FileResultResponse(BaseModel):
    name: str
    word_count: int = Field(alias="wordCount")
    similarity_score: int = Field(alias="similarityScore")
    processed: bool
    error: str | None = None

    model_config = _CAMEL


class BatchProcessResponse(BaseModel):
    results: list[FileResultResponse]


class ReferenceIngestResponse(BaseModel):
    task_id: str = Field(description="Celery task ID for polling")
    status: str = "queued"
    documents: int
    message: str


class ReferenceIngestStatusResponse(BaseModel):
    task_id: str
    status: str = Field(description="Celery state: PENDING, STARTED, SUCCESS, FAILURE, RETRY")
    result: dict | None = None
    error: str | None = None
