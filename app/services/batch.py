# =============================================================================
# Batch File Processing — grouped, per-file isolated
# =============================================================================
#
# Backs /batch-process-files. Each file's text is run through the semantic
# matching pipeline and summarised as a word count plus a similarity score
# (the percentage of its checked paragraphs that matched the reference
# corpus).
#
# DESIGN DECISION: Groups of `batch_group_size` files run concurrently with
# a short pause between groups. This bounds the number of simultaneous
# embedding/store calls a single request can issue.
#
# DESIGN DECISION: A file that fails is reported with processed=false and
# its error; the rest of the batch continues. Only a missing provider key
# fails the whole request, because every file would fail the same way.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.config import settings
from app.services.chunker import chunk_text
from app.services.errors import ConfigurationError, InputValidationError
from app.services.matching import match_chunks
from app.services.security import validate_text_input
from app.services.vectorstore import SimilarityStore

logger = logging.getLogger(__name__)


@dataclass
class FileInput:
    name: str
    content: str


@dataclass
class FileResult:
    name: str
    word_count: int = 0
    similarity_score: int = 0
    processed: bool = False
    error: str | None = None


async def process_file(
    store: SimilarityStore,
    file: FileInput,
    threshold: float | None = None,
) -> FileResult:
    """Check one file against the reference corpus."""
    try:
        text = validate_text_input(file.content, field_name=f"File '{file.name}'")
        chunks = chunk_text(
            text,
            min_paragraph_length=settings.min_paragraph_length,
            max_paragraphs=settings.max_paragraphs,
            group_chars=settings.sentence_group_chars,
        )
        results = await match_chunks(store, chunks, threshold=threshold)
    except ConfigurationError:
        raise
    except Exception as e:
        logger.warning("Batch file '%s' failed: %s", file.name, e)
        message = e.message if isinstance(e, InputValidationError) else str(e)
        return FileResult(name=file.name, processed=False, error=message)

    checked = [r for r in results if r.error is None]
    matched = sum(1 for r in checked if r.matches)
    score = round(100 * matched / len(checked)) if checked else 0

    return FileResult(
        name=file.name,
        word_count=len(text.split()),
        similarity_score=score,
        processed=True,
    )


async def process_files(
    store: SimilarityStore,
    files: list[FileInput],
    threshold: float | None = None,
    sleep=asyncio.sleep,
) -> list[FileResult]:
    """
    Process files in groups, pausing between groups.

    Raises:
        InputValidationError: No files, or more than settings.batch_max_files.
    """
    if not files:
        raise InputValidationError("No files provided or invalid format")
    if len(files) > settings.batch_max_files:
        raise InputValidationError(
            f"Too many files: at most {settings.batch_max_files} per request",
        )

    group_size = settings.batch_group_size
    results: list[FileResult] = []
    logger.info("Processing %d files in groups of %d", len(files), group_size)

    for start in range(0, len(files), group_size):
        group = files[start : start + group_size]
        results.extend(await asyncio.gather(*(
            process_file(store, file, threshold) for file in group
        )))
        if start + group_size < len(files):
            await sleep(settings.batch_group_pause_seconds)

    logger.info(
        "Processed %d files (%d failed)",
        len(results), sum(1 for r in results if not r.processed),
    )
    return results
