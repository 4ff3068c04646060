# =============================================================================
# Sources API — Web Source Search
# =============================================================================
#
# ENDPOINTS:
#   POST /search-sources — search the web for text, classify each hit
#   GET  /verify-search  — one-result search to check the credentials
#
# Results are cached per normalised query (TTLCache on app.state), so
# re-checking the same text does not spend search quota.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit, get_search, get_search_cache
from app.models.requests import SearchSourcesRequest
from app.models.responses import SearchSourcesResponse, SourceResponse, VerifyResponse
from app.services.cache import TTLCache, cache_key
from app.services.errors import ServiceError
from app.services.security import validate_text_input
from app.services.web_search import GoogleSearchClient, Source, build_query

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sources"])


def source_responses(sources: list[Source]) -> list[SourceResponse]:
    return [
        SourceResponse(
            url=s.url,
            title=s.title,
            snippet=s.snippet,
            type=s.type,
            match_percentage=s.match_percentage,
        )
        for s in sources
    ]


async def find_web_sources(
    client: GoogleSearchClient,
    cache: TTLCache,
    text: str,
) -> list[Source]:
    """Search for the opening words of `text`, scoring snippets against all of it."""
    query = build_query(text)
    key = cache_key("search", query)
    cached = cache.get(key)
    if cached is not None:
        logger.debug("Search cache hit for query %r", query[:50])
        return cached

    sources = await client.asearch(query, reference_text=text)
    cache.set(key, sources)
    return sources


@router.post(
    "/search-sources",
    response_model=SearchSourcesResponse,
    summary="Find web pages containing similar text",
    description=(
        "Runs a web search for the opening words of the query and returns each "
        "hit with its source type (academic, trusted, blog, unknown) and a "
        "lexical matchPercentage against the query."
    ),
    dependencies=[Depends(enforce_rate_limit)],
)
async def search_sources(
    request: SearchSourcesRequest,
    client: GoogleSearchClient = Depends(get_search),
    cache: TTLCache = Depends(get_search_cache),
) -> SearchSourcesResponse:
    query = validate_text_input(request.query, field_name="Query")
    sources = await find_web_sources(client, cache, query)
    return SearchSourcesResponse(sources=source_responses(sources))


@router.get(
    "/verify-search",
    response_model=VerifyResponse,
    summary="Check the web-search credentials",
)
async def verify_search(
    client: GoogleSearchClient = Depends(get_search),
) -> VerifyResponse:
    """
    Run a one-result search. Missing credentials raise (500); an upstream
    error is reported with the provider's status code.
    """
    try:
        sources = await client.asearch("plagiarism detection", num=1)
    except ServiceError as e:
        logger.warning("Search credential check failed: %s", e.message)
        raise
    return VerifyResponse(
        status="success",
        message="Google Custom Search credentials are valid",
        result_count=len(sources),
    )
