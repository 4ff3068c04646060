# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the JSON bodies accepted by the API. Field names on the wire are
# camelCase where the clients send camelCase (sourceInfo, flaggedSources,
# ...); `populate_by_name=True` also accepts the snake_case names.
#
# DESIGN DECISION: `text` fields are optional at the schema level and checked
# by validate_text_input() in the handlers. That way a missing or blank text
# gets the same 400 message on every endpoint instead of a schema error.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_CAMEL = ConfigDict(populate_by_name=True)


class SearchSourcesRequest(BaseModel):
    """Request body for POST /search-sources."""

    query: str | None = Field(
        default=None,
        description="Text to search the web for (the opening words are used)",
        examples=["The mitochondria is the powerhouse of the cell"],
    )


class SourceInfo(BaseModel):
    """Provenance attached to paragraphs stored by the embed action."""

    url: str | None = Field(default=None, examples=["https://scholar.example.edu/paper"])
    title: str | None = None
    author: str | None = None
    publication_date: str | None = Field(default=None, alias="publicationDate")

    model_config = _CAMEL


class SemanticSearchRequest(BaseModel):
    """
    Request body for POST /semantic-search.

    Actions:
        search  — match each paragraph against the reference corpus
        embed   — store each paragraph (with sourceInfo) in the corpus
        analyze — search + web sources merged into one ranked list
    """

    text: str | None = Field(default=None, description="Text to check or store")
    action: str = Field(default="search", examples=["search", "embed", "analyze"])
    threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for a match (default 0.8)",
    )
    source_info: SourceInfo | None = Field(default=None, alias="sourceInfo")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"text": "First paragraph...\n\nSecond paragraph...", "action": "search"},
                {
                    "text": "Reference paragraph to store...",
                    "action": "embed",
                    "sourceInfo": {"url": "https://example.edu/a", "title": "Paper A"},
                },
            ]
        },
    )


class PlagiarismCheckRequest(BaseModel):
    """Request body for POST /semantic-plagiarism-check."""

    text: str | None = None
    chunks: list[str] = Field(
        default_factory=list,
        description="Pre-split paragraphs. When empty, the text is split server-side.",
    )
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class MultilingualCheckRequest(BaseModel):
    """Request body for POST /multilingual-plagiarism-check."""

    text: str | None = None
    language: str = Field(default="en", description="ISO 639-1 code of the text's language")
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class ParaphraseRequest(BaseModel):
    """Request body for POST /paraphrase-content."""

    text: str | None = None
    context: str | None = None
    severity: Literal["low", "medium", "high"] = "medium"
    style: Literal["formal", "creative", "simple", "academic"] = "academic"


class FlaggedSource(BaseModel):
    """A passage flagged by a previous check, optionally with where it matched."""

    text: str | None = None
    url: str | None = None
    similarity: float | None = None


class RewriteOptionsModel(BaseModel):
    style: Literal["academic", "technical", "casual", "creative"] = "academic"
    purpose: Literal["plagiarism-fix", "clarity", "simplification", "elaboration"] = (
        "plagiarism-fix"
    )
    preserve_key_terms: bool = Field(default=True, alias="preserveKeyTerms")
    academic_discipline: str | None = Field(default=None, alias="academicDiscipline")
    target_reading_level: (
        Literal["elementary", "high-school", "undergraduate", "graduate", "expert"] | None
    ) = Field(default=None, alias="targetReadingLevel")

    model_config = _CAMEL


class SmartRewriteRequest(BaseModel):
    """Request body for POST /smart-content-rewriting."""

    text: str | None = None
    flagged_sources: list[FlaggedSource] = Field(default_factory=list, alias="flaggedSources")
    options: RewriteOptionsModel = Field(default_factory=RewriteOptionsModel)

    model_config = _CAMEL


class AcademicRewriteRequest(BaseModel):
    """Request body for POST /academic-rewriter."""

    text: str | None = None
    context: str | None = None
    discipline: str = Field(default="general", examples=["humanities", "stem", "law"])


class TextAnalysisRequest(BaseModel):
    """Request body for POST /analyze-writing-style and POST /detect-ai-content."""

    text: str | None = None


class BatchFile(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    content: str = ""


class BatchProcessRequest(BaseModel):
    """Request body for POST /batch-process-files."""

    files: list[BatchFile] | None = None
    user_id: str | None = Field(default=None, alias="userId")
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    model_config = _CAMEL


class ReferenceDocumentIn(BaseModel):
    """One reference document for bulk ingestion."""

    content: str = Field(..., min_length=1)
    source_info: SourceInfo | None = Field(default=None, alias="sourceInfo")

    model_config = _CAMEL


class ReferenceIngestRequest(BaseModel):
    """Request body for POST /reference-documents."""

    documents: list[ReferenceDocumentIn] = Field(..., min_length=1, max_length=500)
