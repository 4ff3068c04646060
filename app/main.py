# =============================================================================
# Application Factory — FastAPI App Assembly
# =============================================================================
#
# create_app() builds a fresh FastAPI instance with:
#   - CORS (every endpoint answers browser preflight requests)
#   - RequestLoggingMiddleware (X-Request-ID + one log line per request)
#   - exception handlers that turn every failure into {"error": ...}
#   - a rate limiter and search cache of its own, on app.state
#   - all feature routers plus GET /health
#
# ERROR MAPPING:
#   ServiceError            → its status (400/429/500/504, or forwarded
#                             upstream status) with error/hint/errorType/
#                             quotaExceeded
#   RequestValidationError  → 400 {"error": "Invalid request: ..."}
#   HTTPException           → its status {"error": detail}, headers kept
#                             (e.g. Retry-After on 429)
#   anything else           → 500 {"error": "Internal server error"}
#
# Run with: uvicorn app.main:app
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import analysis, batch, reference, rewriting, semantic, sources
from app.api.middleware import REQUEST_ID_HEADER, RequestLoggingMiddleware
from app.config import settings
from app.logging_config import configure_logging
from app.models.responses import HealthResponse
from app.services.cache import TTLCache
from app.services.errors import ServiceError
from app.services.rate_limiter import build_rate_limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the pgvector schema on startup; dispose pooled connections on shutdown."""
    if settings.vectorstore_type == "pgvector":
        from app.db.engine import async_engine, init_db

        await init_db()
        logger.info("Database schema ready")
        yield
        await async_engine.dispose()
    else:
        yield


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("%s %s → %d %s: %s", request.method, request.url.path,
        exc.status_code, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location}: {first.get('msg')}" if location else (
            f"Invalid request: {first.get('msg')}"
        )
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def http_error_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside RequestLoggingMiddleware, so the request id is set here
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "[%s] Unhandled error on %s %s", request_id, request.method, request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
        headers={REQUEST_ID_HEADER: request_id} if request_id else None,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Paragraph-level semantic plagiarism checks against a reference "
            "corpus, web source search, LLM rewriting and writing analysis."
        ),
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.rate_limiter = build_rate_limiter(
        settings.rate_limit_backend,
        settings.rate_limit_rpm,
        settings.rate_limit_window_seconds,
        redis_url=settings.rate_limit_redis_url,
    )
    app.state.search_cache = TTLCache(
        settings.search_cache_ttl_seconds,
        max_entries=settings.search_cache_max_entries,
    )
    app.state.store = None

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(sources.router)
    app.include_router(semantic.router)
    app.include_router(rewriting.router)
    app.include_router(analysis.router)
    app.include_router(batch.router)
    app.include_router(reference.router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=settings.app_version,
            service=settings.app_name,
        )

    logger.info(
        "Created %s v%s (store=%s, llm=%s, rate limit=%d/%ds %s)",
        settings.app_name, settings.app_version, settings.vectorstore_type,
        settings.llm_provider, settings.rate_limit_rpm,
        settings.rate_limit_window_seconds, settings.rate_limit_backend,
    )
    return app


app = create_app()
