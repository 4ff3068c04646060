# =============================================================================
# Database Package
# =============================================================================
# Async and sync SQLAlchemy engines, session helpers and the ORM model.
#
# Key exports:
#   - async_session_factory / get_sync_session: sessions for the pgvector store
#   - init_db: creates the vector extension and tables
#   - ReferenceDocument: stored reference paragraph with its embedding
# =============================================================================
