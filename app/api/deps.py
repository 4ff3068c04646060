# =============================================================================
# API Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# Per-application collaborators live on `app.state` and are handed to route
# handlers through the dependencies below:
#
# 1. get_store()          — similarity store (pgvector or Chroma)
# 2. get_llm()            — configured LLM provider
# 3. get_search()         — Google Custom Search client
# 4. get_search_cache()   — TTL cache for web-search results
# 5. enforce_rate_limit() — per-client sliding window (429 when exceeded)
#
# DESIGN DECISION: Dependencies (not module globals) so that every app built
# by create_app() has its own limiter and cache, and tests swap any of them
# via `app.dependency_overrides`.
#
# DESIGN DECISION: The store is built on first use rather than in
# create_app(). Building the app never opens a database or Chroma
# connection, which keeps /health and the docs available while a backend
# is down.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Request

from app.config import settings
from app.services.cache import TTLCache
from app.services.llm import LLMProvider, get_llm_provider
from app.services.rate_limiter import RateLimiter
from app.services.vectorstore import SimilarityStore, get_similarity_store
from app.services.web_search import GoogleSearchClient, get_search_client

logger = logging.getLogger(__name__)


def get_store(request: Request) -> SimilarityStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = get_similarity_store()
        request.app.state.store = store
    return store


def get_llm() -> LLMProvider:
    """Raises ConfigurationError (→ 500) when the provider key is missing."""
    return get_llm_provider()


def get_search() -> GoogleSearchClient:
    return get_search_client()


def get_search_cache(request: Request) -> TTLCache:
    return request.app.state.search_cache


def client_id(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Uses the first X-Forwarded-For hop when the API sits behind a proxy,
    else the socket peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


async def enforce_rate_limit(request: Request) -> None:
    """
    Count this request against the caller's window.

    Raises:
        HTTPException 429: Limit exceeded (with Retry-After header).
    """
    if not settings.rate_limit_enabled:
        return
    limiter: RateLimiter = request.app.state.rate_limiter
    await limiter.check(client_id(request))
