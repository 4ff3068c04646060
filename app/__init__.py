# =============================================================================
# Plagiarism Check API
# =============================================================================
# Backend for a plagiarism-checking client: paragraph-level semantic matching
# against a reference corpus, web source search, LLM rewriting and text
# analysis.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI routers, dependencies and request middleware
#   ├── db/           → SQLAlchemy engine, sessions and the pgvector model
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic (chunking, embedding, matching,
#   │                    rewriting, search, analysis, rate limiting)
#   ├── workers/      → Celery tasks for bulk reference ingestion
#   └── main.py       → create_app() application factory
# =============================================================================
