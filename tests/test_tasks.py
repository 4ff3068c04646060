# =============================================================================
# Unit Tests — Reference Ingestion Task
# =============================================================================
#
# The task is called directly (no broker). Embeddings and the store are
# patched at the task module.
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from app.services.errors import ConfigurationError
from app.services.vectorstore import UpsertOutcome
from app.workers.tasks import ingest_reference_documents

_LONG = "This reference paragraph is comfortably longer than forty characters."


def _store(*failures: bool) -> MagicMock:
    store = MagicMock()
    store.upsert_documents.return_value = [
        UpsertOutcome(content_hash=f"h{i}", error="write failed" if failed else None,
                      id=None if failed else f"h{i}")
        for i, failed in enumerate(failures)
    ]
    return store


class TestIngestReferenceDocuments:
    def test_summary_and_metadata(self):
        store = _store(False, True)
        documents = [
            {"content": _LONG, "source_url": "https://x.edu/a", "author": "A. Writer"},
            {"content": f"{_LONG}\n\n{_LONG} Again."},
        ]

        with patch("app.workers.tasks.embed_batch", side_effect=lambda texts, **kw: [[0.1]] * len(texts)), \
             patch("app.workers.tasks.get_similarity_store", return_value=store):
            summary = ingest_reference_documents(documents=documents)

        assert summary["documents"] == 2
        assert summary["paragraphs"] == 3
        assert summary["stored"] == 1
        assert summary["failed"] == 1

        contents, embeddings, metadatas = store.upsert_documents.call_args.args
        assert len(contents) == len(embeddings) == len(metadatas) == 3
        assert metadatas[0]["source_url"] == "https://x.edu/a"
        assert metadatas[0]["author"] == "A. Writer"
        assert metadatas[1] == {
            "source_url": None, "source_title": None, "author": None, "publication_date": None,
        }

    def test_documents_without_paragraphs_fail_without_retry(self):
        with patch.object(ingest_reference_documents, "retry") as retry, \
             pytest.raises(ValueError, match="No paragraphs produced"):
            ingest_reference_documents(documents=[{"content": "Too short."}])
        retry.assert_not_called()

    def test_missing_key_fails_without_retry(self):
        with patch(
            "app.workers.tasks.embed_batch",
            side_effect=ConfigurationError("OpenAI API key not configured"),
        ), patch.object(ingest_reference_documents, "retry") as retry, \
             pytest.raises(ConfigurationError):
            ingest_reference_documents(documents=[{"content": _LONG}])
        retry.assert_not_called()

    def test_transient_failure_is_retried_with_backoff(self):
        error = RuntimeError("connection reset")
        with patch("app.workers.tasks.embed_batch", side_effect=error), \
             patch.object(ingest_reference_documents, "retry", return_value=Retry()) as retry, \
             pytest.raises(Retry):
            ingest_reference_documents(documents=[{"content": _LONG}])

        retry.assert_called_once_with(exc=error, countdown=60)
