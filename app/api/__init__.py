# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter for one feature area:
#   - sources.py: web source search and search-credential check
#   - semantic.py: semantic search / embed / analyze, inline and
#     multilingual plagiarism checks
#   - rewriting.py: paraphrase, smart rewriting, academic rewriter
#   - analysis.py: writing style, AI-content detection, LLM-credential check
#   - batch.py: multi-file checks
#   - reference.py: bulk reference-corpus loading via Celery
# Shared pieces:
#   - deps.py: dependencies (store, LLM, search, cache, rate limit)
#   - middleware.py: request logging with X-Request-ID
# =============================================================================
