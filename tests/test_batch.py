# =============================================================================
# Unit Tests — Batch File Processing
# =============================================================================
#
# match_chunks is mocked, so the tests exercise grouping, scoring and
# per-file failure isolation without embeddings or a store.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services.batch import FileInput, process_file, process_files
from app.services.errors import ConfigurationError, InputValidationError
from app.services.matching import ParagraphResult
from app.services.vectorstore import VectorMatch


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


_PARAGRAPH = "This paragraph is long enough to be checked against the corpus."


def _results(*matched: bool, failed: int = 0) -> list[ParagraphResult]:
    results = [
        ParagraphResult(
            paragraph="p",
            matches=[VectorMatch(similarity=0.9, content="ref")] if m else [],
        )
        for m in matched
    ]
    results += [ParagraphResult(paragraph="p", error="Embedding failed") for _ in range(failed)]
    return results


class TestProcessFile:
    def test_score_is_share_of_matched_paragraphs(self):
        file = FileInput(name="essay.txt", content=f"{_PARAGRAPH}\n\n{_PARAGRAPH}")
        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(return_value=_results(True, False, False, True)),
        ):
            result = _run(process_file(MagicMock(), file))

        assert result.processed is True
        assert result.similarity_score == 50
        assert result.word_count == len(file.content.split())

    def test_failed_paragraphs_are_not_in_the_denominator(self):
        file = FileInput(name="a.txt", content=_PARAGRAPH)
        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(return_value=_results(True, failed=3)),
        ):
            result = _run(process_file(MagicMock(), file))
        assert result.similarity_score == 100

    def test_no_paragraphs_scores_zero(self):
        file = FileInput(name="short.txt", content="Too short.")
        with patch("app.services.batch.match_chunks", new=AsyncMock(return_value=[])):
            result = _run(process_file(MagicMock(), file))

        assert result.processed is True
        assert result.similarity_score == 0
        assert result.word_count == 2

    def test_empty_file_is_reported_not_raised(self):
        result = _run(process_file(MagicMock(), FileInput(name="empty.txt", content="  ")))

        assert result.processed is False
        assert result.error == "File 'empty.txt' is required and must be a non-empty string"

    def test_unexpected_failure_is_reported(self):
        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(side_effect=RuntimeError("store offline")),
        ):
            result = _run(process_file(MagicMock(), FileInput("a.txt", _PARAGRAPH)))

        assert result.processed is False
        assert "store offline" in result.error

    def test_missing_key_propagates(self):
        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(side_effect=ConfigurationError("OpenAI API key not configured")),
        ), pytest.raises(ConfigurationError):
            _run(process_file(MagicMock(), FileInput("a.txt", _PARAGRAPH)))


class TestProcessFiles:
    def test_rejects_empty_batch(self):
        with pytest.raises(InputValidationError, match="No files provided"):
            _run(process_files(MagicMock(), []))

    def test_rejects_more_than_ten_files(self):
        files = [FileInput(f"{i}.txt", _PARAGRAPH) for i in range(11)]
        with pytest.raises(InputValidationError, match="Too many files"):
            _run(process_files(MagicMock(), files))

    def test_groups_of_five_with_pause_between(self):
        files = [FileInput(f"{i}.txt", _PARAGRAPH) for i in range(7)]
        sleep = AsyncMock()

        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(return_value=_results(True)),
        ):
            results = _run(process_files(MagicMock(), files, sleep=sleep))

        assert [r.name for r in results] == [f"{i}.txt" for i in range(7)]
        # Two groups → one pause
        sleep.assert_awaited_once_with(0.1)

    def test_single_group_does_not_pause(self):
        sleep = AsyncMock()
        with patch("app.services.batch.match_chunks", new=AsyncMock(return_value=[])):
            _run(process_files(MagicMock(), [FileInput("a.txt", _PARAGRAPH)], sleep=sleep))
        sleep.assert_not_awaited()

    def test_one_bad_file_does_not_stop_the_batch(self):
        files = [
            FileInput("good.txt", _PARAGRAPH),
            FileInput("bad.txt", ""),
            FileInput("also-good.txt", _PARAGRAPH),
        ]
        with patch(
            "app.services.batch.match_chunks",
            new=AsyncMock(return_value=_results(True)),
        ):
            results = _run(process_files(MagicMock(), files, sleep=AsyncMock()))

        assert [r.processed for r in results] == [True, False, True]
