# =============================================================================
# Batch API — Multi-File Plagiarism Checks
# =============================================================================
#
# ENDPOINT:
#   POST /batch-process-files — up to 10 files, processed in groups of 5
#
# Each file is checked on its own: a file that fails validation or matching
# comes back with `processed: false` and an `error`, next to the others.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit, get_store
from app.models.requests import BatchProcessRequest
from app.models.responses import BatchProcessResponse, FileResultResponse
from app.services.batch import FileInput, process_files
from app.services.vectorstore import SimilarityStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Batch"])


@router.post(
    "/batch-process-files",
    response_model=BatchProcessResponse,
    summary="Check several files against the reference corpus",
    description=(
        "Returns, per file, its word count and similarityScore: the percentage "
        "of the file's checked paragraphs with at least one reference match."
    ),
    dependencies=[Depends(enforce_rate_limit)],
)
async def batch_process_files(
    request: BatchProcessRequest,
    store: SimilarityStore = Depends(get_store),
) -> BatchProcessResponse:
    files = [FileInput(name=f.name, content=f.content) for f in request.files or []]
    if request.user_id:
        logger.info("Batch of %d files for user %s", len(files), request.user_id)

    results = await process_files(store, files, threshold=request.threshold)
    return BatchProcessResponse(results=[
        FileResultResponse(
            name=r.name,
            word_count=r.word_count,
            similarity_score=r.similarity_score,
            processed=r.processed,
            error=r.error,
        )
        for r in results
    ])
