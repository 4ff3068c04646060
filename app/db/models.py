# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# The reference corpus: previously embedded paragraphs that submitted text is
# compared against.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────────────────┐
# │  document_embeddings                     │
# ├──────────────────────────────────────────┤
# │ id (PK)                                  │
# │ content (text)                           │
# │ content_hash (char(64), UNIQUE)          │
# │ embedding (vector(1536))                 │
# │ source_url / source_title / author       │
# │ publication_date (varchar)               │
# │ created_at / updated_at                  │
# └──────────────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. `content_hash` is the SHA-256 hex digest of the paragraph and carries
#    a UNIQUE constraint. Writes are upserts on it, so the same paragraph
#    is stored once no matter how often it is submitted.
#
# 2. `publication_date` is free text. Sources report "2021", "March 2021"
#    or full ISO dates and the value is only ever displayed.
#
# 3. HNSW index with vector_cosine_ops: match_documents orders by cosine
#    distance, so the index must be built for the same operator.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class ReferenceDocument(Base):
    """
    One reference paragraph with its embedding and source metadata.

    Written by the semantic-search "embed" action and the bulk reference
    ingestion task; read by match_documents.
    """

    __tablename__ = "document_embeddings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    content_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )

    embedding = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=False,
    )

    source_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    source_title: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    author: Mapped[str | None] = mapped_column(String(500), nullable=True)
    publication_date: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ReferenceDocument(id={self.id}, "
            f"hash='{self.content_hash[:12]}', source='{self.source_url}')>"
        )


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------
# HNSW parameters: m=16 (graph degree), ef_construction=64 (build-time
# candidate list). pgvector defaults, good recall at corpus sizes up to a
# few million paragraphs.
# ---------------------------------------------------------------------------
reference_embedding_idx = Index(
    "idx_document_embeddings_hnsw",
    ReferenceDocument.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

reference_source_idx = Index(
    "idx_document_embeddings_source_url",
    ReferenceDocument.source_url,
)
