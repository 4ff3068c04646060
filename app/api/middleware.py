# =============================================================================
# Request Logging Middleware — Request/Response Lifecycle Logging
# =============================================================================
#
# Logs method, path, status and latency of every API request, tagged with a
# request id. The id is taken from an incoming X-Request-ID header (so a
# caller can correlate its own logs) or generated, and echoed back on the
# response.
#
# DESIGN DECISION: Starlette middleware (not a FastAPI dependency) because
# it wraps the ENTIRE request lifecycle, captures the final status code and
# needs no opt-in from individual endpoints.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Health checks and docs are not worth a log line each
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        if request.url.path in _SKIP_PATHS:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.exception(
                "[%s] %s %s failed after %dms",
                request_id, request.method, request.url.path, elapsed_ms,
            )
            raise

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "[%s] %s %s → %d (%dms)",
            request_id, request.method, request.url.path,
            response.status_code, elapsed_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
