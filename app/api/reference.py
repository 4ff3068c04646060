# =============================================================================
# Reference Corpus API — Bulk Loading and Status Tracking
# =============================================================================
#
# ENDPOINTS:
#   POST /reference-documents           — queue documents, return task_id
#   GET  /reference-documents/{task_id} — poll ingestion status
#
# DESIGN DECISION: Async processing via Celery. Embedding hundreds of
# reference documents takes far longer than a request should, so the API
# returns 202 Accepted with a task_id and a worker does the chunk → embed →
# upsert work. The single-text `embed` action of /semantic-search stays
# synchronous for small additions.
# =============================================================================

import logging

from celery.result import AsyncResult
from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit
from app.models.requests import ReferenceIngestRequest
from app.models.responses import ReferenceIngestResponse, ReferenceIngestStatusResponse
from app.workers.tasks import ingest_reference_documents

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reference corpus"])


@router.post(
    "/reference-documents",
    response_model=ReferenceIngestResponse,
    status_code=202,
    summary="Add documents to the reference corpus",
    description=(
        "Queues the documents for chunking, embedding and storage. Returns "
        "immediately with a task_id for polling. Paragraphs already in the "
        "corpus are updated in place."
    ),
    dependencies=[Depends(enforce_rate_limit)],
)
async def add_reference_documents(request: ReferenceIngestRequest) -> ReferenceIngestResponse:
    documents = [
        {
            "content": doc.content,
            "source_url": doc.source_info.url if doc.source_info else None,
            "source_title": doc.source_info.title if doc.source_info else None,
            "author": doc.source_info.author if doc.source_info else None,
            "publication_date": (
                doc.source_info.publication_date if doc.source_info else None
            ),
        }
        for doc in request.documents
    ]

    task = ingest_reference_documents.delay(documents=documents)
    logger.info(
        "Dispatched reference ingestion: %d documents, task_id=%s",
        len(documents), task.id,
    )

    return ReferenceIngestResponse(
        task_id=task.id,
        documents=len(documents),
        message=f"{len(documents)} document(s) queued for ingestion.",
    )


@router.get(
    "/reference-documents/{task_id}",
    response_model=ReferenceIngestStatusResponse,
    summary="Check reference ingestion status",
)
async def get_reference_status(task_id: str) -> ReferenceIngestStatusResponse:
    """
    Celery task states:
    - PENDING: not yet picked up (or unknown task_id)
    - STARTED / RETRY: in progress
    - SUCCESS: `result` holds the ingestion summary
    - FAILURE: `error` holds the reason
    """
    result = AsyncResult(task_id, app=ingest_reference_documents.app)
    status = result.status

    summary: dict | None = None
    error: str | None = None
    if status == "SUCCESS":
        summary = result.result or {}
    elif status == "FAILURE":
        error = str(result.result) if result.result else "Unknown error"

    return ReferenceIngestStatusResponse(
        task_id=task_id,
        status=status,
        result=summary,
        error=error,
    )
