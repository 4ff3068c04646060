# =============================================================================
# Similarity Store — Pluggable Backend Protocol
# =============================================================================
#
# Holds the reference corpus and answers `match_documents`: "which stored
# paragraphs have cosine similarity ≥ threshold with this vector?".
#
# DESIGN DECISION: Protocol (structural typing) over ABC. Tests pass any
# object with the right methods (an AsyncMock works) without inheritance.
#
# DESIGN DECISION: Mixed sync/async interface.
# - upsert_documents() is sync → Celery workers, or asyncio.to_thread()
#   from the embed action
# - match_documents() is async → called concurrently per paragraph
#
# DESIGN DECISION: Deduplication by content hash. Both backends key stored
# paragraphs on SHA-256(content): pgvector with a UNIQUE column and
# ON CONFLICT DO UPDATE, Chroma by using the hash as the record id.
#
# ARCHITECTURE:
#   SimilarityStore (Protocol)
#   ├── PgVectorStore     — PostgreSQL + pgvector extension
#   └── ChromaVectorStore — ChromaDB (in-process or client/server)
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Protocol

import chromadb
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.db.engine import async_session_factory, get_sync_session
from app.db.models import ReferenceDocument

logger = logging.getLogger(__name__)

_SOURCE_FIELDS = ("source_url", "source_title", "author", "publication_date")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class VectorMatch:
    """A stored reference paragraph that matched a query vector."""

    similarity: float  # cosine similarity, 0.0–1.0
    content: str
    source_url: str | None = None
    source_title: str | None = None
    author: str | None = None
    publication_date: str | None = None


@dataclass
class UpsertOutcome:
    """Result of storing one paragraph. `id` is None when it failed."""

    content_hash: str
    id: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def content_hash(content: str) -> str:
    """SHA-256 hex digest of the trimmed paragraph text."""
    return hashlib.sha256(content.strip().encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class SimilarityStore(Protocol):
    """Interface shared by the pgvector and ChromaDB backends."""

    def upsert_documents(
        self,
        contents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
    ) -> list[UpsertOutcome]:
        """
        Store paragraphs with their embeddings and source metadata. Sync.

        Metadata keys: source_url, source_title, author, publication_date.
        Re-storing an existing paragraph updates it in place. A failing row
        is reported in its outcome without affecting the others.
        """
        ...

    async def match_documents(
        self,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[VectorMatch]:
        """
        Return up to `match_count` paragraphs with similarity ≥
        `match_threshold`, most similar first.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgVectorStore:
    """
    pgvector-backed store.

    DESIGN DECISION: One SAVEPOINT per row during upsert. A row that
    violates a constraint (e.g. wrong vector dimension) rolls back alone
    and the rest of the batch still commits.
    """

    def upsert_documents(
        self,
        contents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
    ) -> list[UpsertOutcome]:
        outcomes: list[UpsertOutcome] = []

        with get_sync_session() as session:
            for content, embedding, meta in zip(
                contents, embeddings, metadatas, strict=True,
            ):
                digest = content_hash(content)
                insert_stmt = pg_insert(ReferenceDocument).values(
                    content=content,
                    content_hash=digest,
                    embedding=embedding,
                    **{key: meta.get(key) for key in _SOURCE_FIELDS},
                )
                stmt = insert_stmt.on_conflict_do_update(
                    index_elements=[ReferenceDocument.content_hash],
                    set_={
                        "embedding": insert_stmt.excluded.embedding,
                        **{
                            key: func.coalesce(
                                getattr(insert_stmt.excluded, key),
                                getattr(ReferenceDocument, key),
                            )
                            for key in _SOURCE_FIELDS
                        },
                        "updated_at": func.now(),
                    },
                ).returning(ReferenceDocument.id)

                try:
                    with session.begin_nested():
                        row_id = session.execute(stmt).scalar_one()
                    outcomes.append(UpsertOutcome(content_hash=digest, id=str(row_id)))
                except SQLAlchemyError as e:
                    logger.warning("Upsert failed for hash %s: %s", digest[:12], e)
                    outcomes.append(UpsertOutcome(content_hash=digest, error=str(e)))

        logger.info(
            "Upserted %d/%d reference paragraphs in pgvector",
            sum(o.success for o in outcomes), len(outcomes),
        )
        return outcomes

    async def match_documents(
        self,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[VectorMatch]:
        """
        Cosine similarity search.

        pgvector's cosine_distance() is 1 - cosine similarity, so the
        threshold becomes `distance <= 1 - match_threshold`.
        """
        distance = ReferenceDocument.embedding.cosine_distance(query_embedding)
        stmt = (
            select(ReferenceDocument, distance.label("distance"))
            .where(distance <= 1.0 - match_threshold)
            .order_by(distance)
            .limit(match_count)
        )

        async with async_session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        logger.debug(
            "match_documents returned %d rows (threshold=%.2f, count=%d)",
            len(rows), match_threshold, match_count,
        )

        return [
            VectorMatch(
                similarity=round(1.0 - dist, 4),
                content=doc.content,
                source_url=doc.source_url,
                source_title=doc.source_title,
                author=doc.author,
                publication_date=doc.publication_date,
            )
            for doc, dist in rows
        ]


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed store.

    - In-process (default): no extra infra, data held in memory
    - Client/server: set CHROMA_URL
    """

    def __init__(
        self,
        collection_name: str | None = None,
        client=None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        # Cosine space so distances mean the same thing as in pgvector
        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    def upsert_documents(
        self,
        contents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
    ) -> list[UpsertOutcome]:
        outcomes: list[UpsertOutcome] = []

        for content, embedding, meta in zip(
            contents, embeddings, metadatas, strict=True,
        ):
            digest = content_hash(content)
            try:
                self._collection.upsert(
                    ids=[digest],
                    documents=[content],
                    embeddings=[embedding],
                    metadatas=[_sanitise_chroma_metadata(
                        {key: meta.get(key) for key in _SOURCE_FIELDS},
                    )],
                )
                outcomes.append(UpsertOutcome(content_hash=digest, id=digest))
            except Exception as e:
                logger.warning("Chroma upsert failed for hash %s: %s", digest[:12], e)
                outcomes.append(UpsertOutcome(content_hash=digest, error=str(e)))

        logger.info(
            "Upserted %d/%d reference paragraphs in ChromaDB",
            sum(o.success for o in outcomes), len(outcomes),
        )
        return outcomes

    async def match_documents(
        self,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[VectorMatch]:
        """
        Similarity search in ChromaDB.

        The Chroma client is synchronous, so the query runs in a worker
        thread. Chroma has no distance cutoff, so the threshold is applied
        to the returned neighbours.
        """

        def _sync_match() -> list[VectorMatch]:
            if self._collection.count() == 0:
                return []

            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=match_count,
                include=["documents", "metadatas", "distances"],
            )

            matches: list[VectorMatch] = []
            if not (results and results["ids"] and results["ids"][0]):
                return matches

            for i in range(len(results["ids"][0])):
                similarity = round(1.0 - results["distances"][0][i], 4)
                if similarity < match_threshold:
                    continue
                metadata = results["metadatas"][0][i] or {}
                matches.append(VectorMatch(
                    similarity=similarity,
                    content=results["documents"][0][i] or "",
                    **{key: metadata.get(key) or None for key in _SOURCE_FIELDS},
                ))
            return matches

        return await asyncio.to_thread(_sync_match)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_similarity_store(
    override_type: str | None = None,
) -> PgVectorStore | ChromaVectorStore:
    """
    Return the configured store backend ("pgvector" or "chroma").

    Built once per application on first use; handlers receive the
    instance through the get_store dependency.
    """
    store_type = override_type or settings.vectorstore_type

    if store_type == "chroma":
        logger.info("Using ChromaDB similarity store")
        return ChromaVectorStore()

    logger.info("Using pgvector similarity store")
    return PgVectorStore()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    ChromaDB metadata values must be str, int, float or bool.
    None becomes "" and anything else is stringified.
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
