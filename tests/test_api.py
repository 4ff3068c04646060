# =============================================================================
# API Tests — Routes, Error Mapping & Middleware
# =============================================================================
#
# Each test builds its own app with create_app() and swaps the store, LLM
# and search client through `app.dependency_overrides`. Embeddings are
# patched at the matching service, so no provider is called.
#
# Test groups:
#   1. Health, CORS, request ids
#   2. Error mapping (validation, rate limit, quota, unhandled)
#   3. Semantic endpoints
#   4. Rewriting / analysis / batch / sources / reference corpus
# =============================================================================

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_llm, get_search, get_store
from app.main import create_app
from app.services.embedder import EmbeddingOutcome
from app.services.llm import LLMResponse
from app.services.rate_limiter import SlidingWindowRateLimiter
from app.services.vectorstore import UpsertOutcome, VectorMatch
from app.services.web_search import Source

_FOX = (
    "The quick brown fox jumps over the lazy dog near the quiet riverbank."
)


def _vectors(texts, model=None):
    return [EmbeddingOutcome(vector=[0.1, 0.2]) for _ in texts]


@pytest.fixture
def store():
    store = MagicMock()
    store.match_documents = AsyncMock(return_value=[
        VectorMatch(
            similarity=0.82,
            content="A quick brown fox jumped over a lazy dog.",
            source_url="https://arxiv.org/abs/7",
            source_title="Foxes",
        ),
    ])
    store.upsert_documents = MagicMock(
        side_effect=lambda contents, embeddings, metadatas: [
            UpsertOutcome(content_hash=f"h{i}", id=f"h{i}") for i in range(len(contents))
        ],
    )
    return store


@pytest.fixture
def llm():
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=LLMResponse(
        content="", model="test-model", input_tokens=1, output_tokens=1,
        structured={"rewritten": "New wording.", "explanation": "Reworded."},
    ))
    return llm


@pytest.fixture
def search():
    search = MagicMock()
    search.asearch = AsyncMock(return_value=[
        Source(
            url="https://blog.example.com/fox", title="Fox blog",
            snippet="quick brown fox", type="blog", match_percentage=60,
        ),
    ])
    return search


@pytest.fixture
def app(store, llm, search):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_llm] = lambda: llm
    app.dependency_overrides[get_search] = lambda: search
    return app


@pytest.fixture
def client(app):
    # No assertion reads chunk token counts; skip loading the tiktoken encoding
    with patch("app.services.matching.embed_texts", new=AsyncMock(side_effect=_vectors)), \
         patch("app.services.chunker.count_tokens", side_effect=lambda text: len(text.split())):
        yield TestClient(app, raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# 1. Health, CORS, request ids
# ---------------------------------------------------------------------------


class TestPlumbing:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_cors_preflight(self, client):
        response = client.options(
            "/semantic-search",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_request_id_is_echoed(self, client):
        response = client.post(
            "/semantic-search", json={"text": _FOX}, headers={"X-Request-ID": "abc123"},
        )
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_is_generated(self, client):
        response = client.post("/semantic-search", json={"text": _FOX})
        assert len(response.headers["X-Request-ID"]) == 32


# ---------------------------------------------------------------------------
# 2. Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    def test_missing_text_is_400(self, client):
        response = client.post("/semantic-search", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "Text is required and must be a non-empty string"}

    def test_malformed_body_is_400(self, client):
        response = client.post("/semantic-search", json={"text": _FOX, "threshold": 3})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request: threshold")

    def test_rate_limit_returns_retry_after(self, app, client):
        app.state.rate_limiter = SlidingWindowRateLimiter(1, 60)

        first = client.post("/semantic-search", json={"text": _FOX})
        second = client.post("/semantic-search", json={"text": _FOX})

        assert first.status_code == 200
        assert second.status_code == 429
        assert "error" in second.json()
        assert int(second.headers["Retry-After"]) > 0

    def test_health_is_not_rate_limited(self, app, client):
        app.state.rate_limiter = SlidingWindowRateLimiter(1, 60)
        assert all(client.get("/health").status_code == 200 for _ in range(3))

    def test_quota_error_body(self, client, llm):
        llm.complete.side_effect = Exception("You exceeded your current quota")

        response = client.post("/detect-ai-content", json={"text": "Some text."})

        assert response.status_code == 429
        assert response.json()["quotaExceeded"] is True

    def test_unhandled_error_is_generic_500(self, client, store):
        with patch("app.api.semantic.match_chunks", new=AsyncMock(side_effect=KeyError("x"))):
            response = client.post(
                "/semantic-search", json={"text": _FOX}, headers={"X-Request-ID": "req-500"},
            )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert response.headers["X-Request-ID"] == "req-500"

    def test_unhandled_error_carries_generated_request_id(self, client):
        with patch("app.api.semantic.match_chunks", new=AsyncMock(side_effect=KeyError("x"))):
            response = client.post("/semantic-search", json={"text": _FOX})

        assert response.status_code == 500
        assert len(response.headers["X-Request-ID"]) == 32


# ---------------------------------------------------------------------------
# 3. Semantic endpoints
# ---------------------------------------------------------------------------


class TestSemanticSearch:
    def test_search_results_and_camel_case_stats(self, client):
        response = client.post("/semantic-search", json={"text": _FOX})
        body = response.json()

        assert response.status_code == 200
        assert body["results"][0]["paragraph"] == _FOX
        assert body["results"][0]["matches"][0]["similarity"] == 0.82
        assert body["results"][0]["matches"][0]["source_url"] == "https://arxiv.org/abs/7"
        assert body["stats"] == {
            "totalWordCount": 13,
            "paragraphsWithMatches": 1,
            "averageSimilarity": 0.82,
        }
        assert "sources" not in body

    def test_invalid_action(self, client):
        response = client.post("/semantic-search", json={"text": _FOX, "action": "delete"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid action specified"

    def test_embed_stores_with_source_info(self, client, store):
        response = client.post("/semantic-search", json={
            "text": _FOX,
            "action": "embed",
            "sourceInfo": {"url": "https://x.edu/p", "title": "Paper", "publicationDate": "2020"},
        })

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "results": [{"id": "h0", "success": True, "error": None}],
        }
        metadata = store.upsert_documents.call_args.args[2][0]
        assert metadata["source_url"] == "https://x.edu/p"
        assert metadata["publication_date"] == "2020"

    def test_embed_without_paragraphs_is_400(self, client):
        response = client.post("/semantic-search", json={"text": "Short.", "action": "embed"})
        assert response.status_code == 400

    def test_analyze_merges_reference_and_web_sources(self, client):
        response = client.post("/semantic-search", json={"text": _FOX, "action": "analyze"})
        sources = response.json()["sources"]

        assert [s["url"] for s in sources] == [
            "https://arxiv.org/abs/7", "https://blog.example.com/fox",
        ]
        assert sources[0]["matchPercentage"] == 82
        assert sources[0]["type"] == "academic"

    def test_analyze_survives_web_search_failure(self, client, search):
        from app.services.errors import UpstreamError

        search.asearch.side_effect = UpstreamError("Google down", status_code=503)
        response = client.post("/semantic-search", json={"text": _FOX, "action": "analyze"})

        assert response.status_code == 200
        assert [s["url"] for s in response.json()["sources"]] == ["https://arxiv.org/abs/7"]

    def test_per_paragraph_store_failure(self, client, store):
        store.match_documents.side_effect = RuntimeError("connection lost")
        response = client.post("/semantic-search", json={"text": _FOX})

        result = response.json()["results"][0]
        assert response.status_code == 200
        assert result["matches"] == []
        assert "connection lost" in result["error"]


class TestInlineAndMultilingual:
    def test_supplied_chunks_are_used(self, client, store):
        response = client.post("/semantic-plagiarism-check", json={
            "text": _FOX, "chunks": ["first chunk", "  ", "second chunk"],
        })

        assert [r["paragraph"] for r in response.json()["results"]] == [
            "first chunk", "second chunk",
        ]
        assert store.match_documents.await_count == 2

    def test_multilingual(self, client):
        response = client.post("/multilingual-plagiarism-check", json={
            "text": _FOX, "language": "ES",
        })
        body = response.json()

        assert response.status_code == 200
        assert body["results"][0]["language"] == "es"
        assert body["stats"]["languageDetected"] == "es"
        assert body["stats"]["totalMatches"] == 1

    def test_unsupported_language(self, client):
        response = client.post("/multilingual-plagiarism-check", json={
            "text": _FOX, "language": "tlh",
        })
        assert response.status_code == 400
        assert "Unsupported language" in response.json()["error"]


# ---------------------------------------------------------------------------
# 4. Other routes
# ---------------------------------------------------------------------------


class TestOtherRoutes:
    def test_paraphrase(self, client):
        response = client.post("/paraphrase-content", json={"text": "Original text here."})
        body = response.json()

        assert response.status_code == 200
        assert body["paraphrased"] == "New wording."
        assert 20 <= body["similarityReduction"] <= 90

    def test_smart_rewrite_uses_flagged_sources(self, client, llm):
        response = client.post("/smart-content-rewriting", json={
            "text": "Whole document.",
            "flaggedSources": [{"text": "Flagged passage."}],
            "options": {"style": "academic", "preserveKeyTerms": False},
        })

        assert response.status_code == 200
        assert response.json()["suggestions"][0]["original"] == "Flagged passage."
        assert llm.complete.await_count == 1

    def test_writing_style(self, client, llm):
        llm.complete.return_value = LLMResponse(
            content="", model="m", input_tokens=1, output_tokens=1,
            structured={
                "consistencyScore": 70, "sentenceVariety": 60,
                "vocabularyRichness": 50, "patterns": ["Short sentences"],
            },
        )
        response = client.post("/analyze-writing-style", json={"text": "It is good."})

        assert response.status_code == 200
        assert response.json()["consistencyScore"] == 70
        assert "fleschReadingEase" in response.json()

    def test_verify_llm(self, client):
        response = client.get("/verify-llm")
        assert response.json()["status"] == "success"
        assert response.json()["model"] == "test-model"

    def test_search_sources(self, client, search):
        response = client.post("/search-sources", json={"query": "quick brown fox"})

        assert response.status_code == 200
        assert response.json()["sources"][0]["matchPercentage"] == 60

        # Second identical query is served from the cache
        client.post("/search-sources", json={"query": "Quick  brown fox"})
        assert search.asearch.await_count == 1

    def test_batch_without_files(self, client):
        response = client.post("/batch-process-files", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "No files provided or invalid format"

    def test_batch(self, client):
        response = client.post("/batch-process-files", json={
            "files": [{"name": "a.txt", "content": _FOX}, {"name": "b.txt", "content": ""}],
        })
        results = response.json()["results"]

        assert results[0] == {
            "name": "a.txt", "wordCount": 13, "similarityScore": 100,
            "processed": True, "error": None,
        }
        assert results[1]["processed"] is False

    def test_reference_ingest_is_queued(self, client):
        task = MagicMock(id="task-1")
        with patch("app.api.reference.ingest_reference_documents.delay", return_value=task) as delay:
            response = client.post("/reference-documents", json={
                "documents": [{"content": "Reference text.", "sourceInfo": {"author": "A. Writer"}}],
            })

        assert response.status_code == 202
        assert response.json()["task_id"] == "task-1"
        documents = delay.call_args.kwargs["documents"]
        assert documents[0]["author"] == "A. Writer"
        assert documents[0]["source_url"] is None
