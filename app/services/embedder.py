# =============================================================================
# Embedding Service — Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates vector embeddings with any OpenAI-compatible embedding API.
#
# DESIGN DECISION: Two entry points over one sync client.
#   - embed_batch()/embed_query(): sync, used by Celery workers
#   - embed_texts(): async, used by request handlers. It runs the sync
#     client in a worker thread and isolates failures per text.
#
# DESIGN DECISION: No retry logic here. A text whose embedding fails is
# reported as a per-paragraph error while the rest of the request carries
# on. Celery ingestion retries at the task level.
#
# TOKEN LIMITS:
# - Each text is clipped to settings.embedding_max_tokens (8,191)
# - Texts are batched at settings.embedding_batch_size per API call
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from openai import OpenAI

from app.config import settings
from app.services.chunker import clip_to_tokens
from app.services.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingOutcome:
    """Vector for one input text, or the reason it could not be embedded."""

    vector: list[float] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.vector is not None


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# The OpenAI client manages its own connection pool and is thread-safe, so a
# single instance serves both worker threads and Celery tasks.
#
# API key resolution order:
#   1. OPENAI_API_KEY
#   2. LLM_API_KEY (shared key for an OpenAI-compatible provider)
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ConfigurationError(
                "OpenAI API key not configured",
                hint="Set OPENAI_API_KEY (or LLM_API_KEY) on the server.",
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Sync API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
    model: str | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a list of texts.

    Processes texts in sub-batches and returns embeddings in the SAME ORDER
    as the input texts.

    Raises:
        ConfigurationError: If no embedding API key is configured.
        openai.APIError: If an API call fails.
        RuntimeError: If the provider returns fewer vectors than texts.
    """
    if not texts:
        return []

    client = _get_client()
    _batch_size = batch_size or settings.embedding_batch_size
    _model = model or settings.embedding_model

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for i in range(0, len(texts), _batch_size):
        batch = [
            clip_to_tokens(text, settings.embedding_max_tokens)
            for text in texts[i : i + _batch_size]
        ]
        logger.info(
            "Embedding batch %d–%d of %d texts (model=%s)",
            i + 1,
            min(i + _batch_size, len(texts)),
            len(texts),
            _model,
        )

        create_kwargs: dict = {"model": _model, "input": batch}
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        response = client.embeddings.create(**create_kwargs)

        # Items carry their input index; order is restored explicitly.
        for item in sorted(response.data, key=lambda x: x.index):
            all_embeddings[i + item.index] = item.embedding

        logger.debug(
            "Batch complete: %d embeddings, %d prompt tokens",
            len(batch),
            response.usage.prompt_tokens if response.usage else 0,
        )

    missing = [index for index, vector in enumerate(all_embeddings) if not vector]
    if missing:
        raise RuntimeError(
            f"Embedding response covered {len(texts) - len(missing)} of {len(texts)} "
            f"texts (missing indexes: {missing[:10]})",
        )
    return all_embeddings


def embed_query(text: str, model: str | None = None) -> list[float]:
    """Generate an embedding for a single string."""
    return embed_batch([text], batch_size=1, model=model)[0]


# ---------------------------------------------------------------------------
# Async API — per-text failure isolation
# ---------------------------------------------------------------------------


async def embed_texts(
    texts: Sequence[str],
    model: str | None = None,
) -> list[EmbeddingOutcome]:
    """
    Embed texts for a request handler, one outcome per input text.

    Tries a single batched call first. If it fails, every text is re-issued
    on its own (concurrently) so only the texts that really fail are marked
    with an error.

    Raises:
        ConfigurationError: If no API key is configured. That affects every
            text, so it fails the whole request instead of each paragraph.
    """
    if not texts:
        return []

    _get_client()

    try:
        vectors = await asyncio.to_thread(embed_batch, list(texts), None, model)
        return [EmbeddingOutcome(vector=vector) for vector in vectors]
    except ConfigurationError:
        raise
    except Exception as e:
        if len(texts) == 1:
            logger.warning("Embedding failed: %s", e)
            return [EmbeddingOutcome(error=f"Embedding failed: {e}")]
        logger.warning(
            "Batched embedding of %d texts failed (%s), retrying one by one",
            len(texts), e,
        )

    results = await asyncio.gather(
        *(asyncio.to_thread(embed_query, text, model) for text in texts),
        return_exceptions=True,
    )

    outcomes: list[EmbeddingOutcome] = []
    for index, result in enumerate(results):
        if isinstance(result, ConfigurationError):
            raise result
        if isinstance(result, Exception):
            logger.warning("Embedding failed for text %d: %s", index, result)
            outcomes.append(EmbeddingOutcome(error=f"Embedding failed: {result}"))
        else:
            outcomes.append(EmbeddingOutcome(vector=result))
    return outcomes
