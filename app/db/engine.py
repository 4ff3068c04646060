# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Two engines against the same database.
# - Async engine (asyncpg): request handlers run match_documents without
#   blocking the event loop.
# - Sync engine (psycopg2, lazy): Celery workers and the embed action (run
#   in a worker thread) perform upserts.
#
# COMMIT POLICY:
# - get_sync_session (context manager): commits on exit, rolls back on error.
# - async_session_factory() used directly: caller commits explicitly (the
#   similarity search only reads).
# =============================================================================

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# No connection is opened until the first query, so importing this module
# does not need a running database.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: attribute access after commit must not trigger a
# lazy reload outside the session.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Sync Engine — Lazy Initialization
# ---------------------------------------------------------------------------

_sync_engine = None
_sync_session_factory = None


def _get_sync_engine():
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
        )
    return _sync_engine


def _get_sync_session_factory():
    """Lazily create and cache the sync session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=_get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Sync database session: commit on exit, rollback on exception.

        with get_sync_session() as session:
            session.execute(stmt)
    """
    factory = _get_sync_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def init_db() -> None:
    """
    Create the pgvector extension and the reference table if missing.

    Called at application startup when the pgvector backend is active.
    Schema changes beyond first creation belong in migrations.
    """
    from app.db.models import Base

    async with async_engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
