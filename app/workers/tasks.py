# =============================================================================
# Celery Task Definitions — Reference Corpus Ingestion
# =============================================================================
#
# PIPELINE (per task):
#   1. Split each document into paragraphs (same chunker as the checks)
#   2. Embed all paragraphs with OpenAI, in batches
#   3. Upsert paragraphs + embeddings + source metadata into the store
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - No `async/await` in tasks
# - The store's sync upsert path (sync SQLAlchemy engine / Chroma client)
#   is used directly
#
# RETRY STRATEGY:
# max_retries=3 with exponential backoff (60s, 120s, 240s) for transient
# failures (OpenAI rate limits, DB connection drops). A missing API key is
# not transient and fails the task immediately.
# =============================================================================

import logging

from app.config import settings
from app.services.chunker import chunk_text
from app.services.embedder import embed_batch
from app.services.errors import ConfigurationError
from app.services.vectorstore import get_similarity_store
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

_METADATA_KEYS = ("source_url", "source_title", "author", "publication_date")


@celery_app.task(
    bind=True,
    name="ingest_reference_documents",
    max_retries=3,
    default_retry_delay=60,
)
def ingest_reference_documents(self, documents: list[dict]) -> dict:
    """
    Chunk, embed and store a batch of reference documents.

    Args:
        self: Bound task instance (self.request.id, self.retry).
        documents: Dicts with "content" plus optional source_url,
            source_title, author and publication_date.

    Returns:
        Summary dict: documents, paragraphs, stored, failed, vectorstore.
    """
    task_id = self.request.id
    logger.info(
        "Starting reference ingestion: %d documents, task_id=%s, vectorstore=%s",
        len(documents), task_id, settings.vectorstore_type,
    )

    try:
        # --- Step 1: Chunk ---
        contents: list[str] = []
        metadatas: list[dict] = []
        for doc in documents:
            chunks = chunk_text(
                doc.get("content", ""),
                min_paragraph_length=settings.min_paragraph_length,
                max_paragraphs=settings.reference_max_paragraphs,
                group_chars=settings.sentence_group_chars,
            )
            meta = {key: doc.get(key) for key in _METADATA_KEYS}
            contents.extend(c.text for c in chunks)
            metadatas.extend(meta for _ in chunks)

        logger.info("[%s] Step 1/3: %d paragraphs", task_id, len(contents))
        if not contents:
            raise ValueError(
                "No paragraphs produced: every document is empty or shorter "
                f"than {settings.min_paragraph_length} characters",
            )

        # --- Step 2: Embed ---
        logger.info(
            "[%s] Step 2/3: Embedding %d paragraphs (model=%s)...",
            task_id, len(contents), settings.embedding_model,
        )
        embeddings = embed_batch(contents, batch_size=settings.embedding_batch_size)

        # --- Step 3: Upsert ---
        logger.info("[%s] Step 3/3: Storing in %s...", task_id, settings.vectorstore_type)
        outcomes = get_similarity_store().upsert_documents(contents, embeddings, metadatas)

    except (ConfigurationError, ValueError) as exc:
        logger.error("[%s] Reference ingestion failed permanently: %s", task_id, exc)
        raise
    except Exception as exc:
        logger.exception("[%s] Reference ingestion failed: %s", task_id, exc)
        raise self.retry(exc=exc, countdown=60 * 2 ** self.request.retries)

    stored = sum(1 for o in outcomes if o.success)
    summary = {
        "documents": len(documents),
        "paragraphs": len(contents),
        "stored": stored,
        "failed": len(outcomes) - stored,
        "vectorstore": settings.vectorstore_type,
    }
    logger.info("[%s] Reference ingestion complete: %s", task_id, summary)
    return summary
