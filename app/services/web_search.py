# =============================================================================
# Web Source Discovery — Google Custom Search JSON API
# =============================================================================
#
# Finds public web pages that resemble the submitted text and labels each one
# with the source classifier.
#
# DESIGN DECISION: requests.Session with a pooled HTTPAdapter.
# Google's endpoint is a plain JSON GET, so the session is reused across
# calls and run in a worker thread from async handlers.
#
# DESIGN DECISION: Deterministic matchPercentage. Each result is scored by
# lexical overlap between its snippet and the submitted text, so the same
# query always ranks the same way.
#
# Failures:
#   - no API key / engine id → ConfigurationError (500)
#   - HTTP 429 from Google   → UpstreamQuotaError (429, quotaExceeded)
#   - any other HTTP error   → UpstreamError carrying Google's status code
#   - network failure        → UpstreamError (500)
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

import requests

from app.config import settings
from app.services.classifier import SourceType, classify_source
from app.services.errors import ConfigurationError, UpstreamError, UpstreamQuotaError

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9']+")
MAX_QUERY_WORDS = 32


@dataclass
class Source:
    url: str
    title: str
    snippet: str
    type: SourceType
    match_percentage: int = 0


def _significant_words(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 3}


def lexical_overlap(snippet: str, text: str) -> int:
    """Percentage of the snippet's significant words that also occur in `text`."""
    snippet_words = _significant_words(snippet)
    if not snippet_words:
        return 0
    shared = snippet_words & _significant_words(text)
    return round(100 * len(shared) / len(snippet_words))


def build_query(text: str, max_words: int = MAX_QUERY_WORDS) -> str:
    """Search query from the opening words of a longer text."""
    return " ".join(text.split()[:max_words])


def create_session_with_pooling(
    pool_connections: int = 10,
    pool_maxsize: int = 20,
    max_retries: int = 2,
) -> requests.Session:
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(
        pool_connections=pool_connections,
        pool_maxsize=pool_maxsize,
        max_retries=max_retries,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class GoogleSearchClient:
    """Thin client for the Custom Search JSON API."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session or create_session_with_pooling()

    def _credentials(self) -> tuple[str, str]:
        if not settings.google_cse_api_key or not settings.google_cse_id:
            raise ConfigurationError(
                "Google API credentials not configured",
                hint="Set GOOGLE_CSE_API_KEY and GOOGLE_CSE_ID on the server.",
            )
        return settings.google_cse_api_key, settings.google_cse_id

    def search(
        self,
        query: str,
        reference_text: str | None = None,
        num: int = 10,
    ) -> list[Source]:
        """
        Run a search and return classified sources, best match first.

        `reference_text` is what snippets are scored against (defaults to
        the query itself).
        """
        api_key, cse_id = self._credentials()

        try:
            response = self._session.get(
                settings.google_cse_url,
                params={"key": api_key, "cx": cse_id, "q": query, "num": num},
                timeout=settings.web_search_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error("Google search request failed: %s", e)
            raise UpstreamError(f"Google search request failed: {e}") from e

        if response.status_code != 200:
            message = _error_message(response)
            logger.warning("Google search API error %d: %s", response.status_code, message)
            if response.status_code == 429:
                raise UpstreamQuotaError(f"Google search quota exceeded: {message}")
            raise UpstreamError(
                f"Google search API error: {message}",
                status_code=response.status_code,
            )

        items = response.json().get("items") or []
        basis = reference_text or query
        sources = [
            Source(
                url=item.get("link", ""),
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
                type=classify_source(item.get("link")),
                match_percentage=lexical_overlap(item.get("snippet", ""), basis),
            )
            for item in items
            if item.get("link")
        ]
        sources.sort(key=lambda s: s.match_percentage, reverse=True)

        logger.info("Google search returned %d sources", len(sources))
        return sources

    async def asearch(
        self,
        query: str,
        reference_text: str | None = None,
        num: int = 10,
    ) -> list[Source]:
        return await asyncio.to_thread(self.search, query, reference_text, num)


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.reason
    return str(error or response.reason)


# ---------------------------------------------------------------------------
# Lazy Singleton
# ---------------------------------------------------------------------------

_client: GoogleSearchClient | None = None


def get_search_client() -> GoogleSearchClient:
    global _client
    if _client is None:
        _client = GoogleSearchClient()
    return _client
