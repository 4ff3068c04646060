# =============================================================================
# Unit Tests — Rewriting Service
# =============================================================================
#
# Tests the retry policy, response parsing, similarity estimate and the
# rewrite entry points. The LLM provider is an AsyncMock and the retry sleep
# is injected, so tests neither call a provider nor wait.
#
# Test groups:
#   1. complete_with_retry (delays, terminal errors, quota)
#   2. parse_rewrite_response (structured → markers → half split)
#   3. similarity_reduction
#   4. smart_rewrite / paraphrase / academic_rewrite
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.errors import ConfigurationError, RewriteError, UpstreamQuotaError
from app.services.llm import LLMResponse
from app.services.rewriting import (
    DEFAULT_EXPLANATION,
    RewriteOptions,
    academic_rewrite,
    complete_with_retry,
    extract_passages,
    is_retriable,
    paraphrase,
    parse_rewrite_response,
    similarity_reduction,
    smart_rewrite,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _response(content: str = "", structured: dict | None = None) -> LLMResponse:
    return LLMResponse(
        content=content, model="test-model", input_tokens=10, output_tokens=5,
        structured=structured,
    )


def _llm(*side_effect) -> MagicMock:
    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=list(side_effect))
    return llm


_OK = _response(structured={"rewritten": "Fresh wording here.", "explanation": "Reworded."})
_MESSAGES = [{"role": "user", "content": "rewrite this"}]


# ---------------------------------------------------------------------------
# 1. Retry Policy
# ---------------------------------------------------------------------------


class TestCompleteWithRetry:
    def test_succeeds_after_two_rate_limits_with_1s_2s_delays(self):
        llm = _llm(
            Exception("rate limit exceeded"),
            Exception("rate limit exceeded"),
            _OK,
        )
        sleep = AsyncMock()

        result = _run(complete_with_retry(llm, _MESSAGES, sleep=sleep))

        assert result is _OK
        assert llm.complete.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]

    def test_exhausted_retries_raise_rate_limit_error(self):
        llm = _llm(*[Exception("rate limit exceeded")] * 3)

        with pytest.raises(RewriteError) as exc_info:
            _run(complete_with_retry(llm, _MESSAGES, sleep=AsyncMock()))

        assert exc_info.value.kind == "rate_limit"
        assert exc_info.value.status_code == 429
        assert exc_info.value.hint
        assert llm.complete.await_count == 3

    def test_timeouts_are_retried_then_reported(self):
        llm = _llm(*[asyncio.TimeoutError()] * 3)

        with pytest.raises(RewriteError) as exc_info:
            _run(complete_with_retry(llm, _MESSAGES, sleep=AsyncMock()))

        assert exc_info.value.kind == "timeout"
        assert exc_info.value.to_body()["errorType"] == "timeout"

    def test_slow_provider_hits_wall_clock_timeout(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        llm = MagicMock()
        llm.complete = slow

        with pytest.raises(RewriteError) as exc_info:
            _run(complete_with_retry(
                llm, _MESSAGES, timeout_seconds=0.01, max_retries=0, sleep=AsyncMock(),
            ))
        assert exc_info.value.kind == "timeout"

    def test_non_transient_error_is_not_retried(self):
        llm = _llm(ValueError("malformed request"))
        sleep = AsyncMock()

        with pytest.raises(RewriteError) as exc_info:
            _run(complete_with_retry(llm, _MESSAGES, sleep=sleep))

        assert exc_info.value.kind == "execution_error"
        assert llm.complete.await_count == 1
        sleep.assert_not_awaited()

    def test_quota_error_is_not_retried(self):
        llm = _llm(Exception("You exceeded your current quota, please check your plan"))

        with pytest.raises(UpstreamQuotaError) as exc_info:
            _run(complete_with_retry(llm, _MESSAGES, sleep=AsyncMock()))

        assert exc_info.value.to_body()["quotaExceeded"] is True
        assert llm.complete.await_count == 1

    def test_configuration_error_passes_through(self):
        llm = _llm(ConfigurationError("OpenAI API key not configured"))

        with pytest.raises(ConfigurationError):
            _run(complete_with_retry(llm, _MESSAGES, sleep=AsyncMock()))
        assert llm.complete.await_count == 1


class TestIsRetriable:
    @pytest.mark.parametrize("message", [
        "Server at capacity", "Model overloaded", "Service unavailable", "Rate limit hit",
    ])
    def test_transient_messages(self, message):
        assert is_retriable(Exception(message))

    def test_status_codes(self):
        err = Exception("upstream")
        err.status_code = 503
        assert is_retriable(err)
        err.status_code = 400
        assert not is_retriable(err)

    def test_insufficient_quota_code_is_not_retriable(self):
        err = Exception("Too many requests")
        err.status_code = 429
        err.code = "insufficient_quota"
        assert not is_retriable(err)


# ---------------------------------------------------------------------------
# 2. Parsing
# ---------------------------------------------------------------------------


class TestParseRewriteResponse:
    def test_structured_output_wins(self):
        response = _response(
            content="Rewritten version: ignored",
            structured={"rewritten": '"Quoted rewrite."', "explanation": "Why."},
        )
        assert parse_rewrite_response(response) == ("Quoted rewrite.", "Why.")

    def test_markers(self):
        response = _response(
            "Rewritten version: New text here.\n\nExplanation: Changed the words.",
        )
        assert parse_rewrite_response(response) == ("New text here.", "Changed the words.")

    def test_changes_marker_on_new_line(self):
        response = _response("Paraphrased version: A new take.\nChanges: Restructured.")
        assert parse_rewrite_response(response) == ("A new take.", "Restructured.")

    def test_missing_explanation_uses_default(self):
        response = _response("Rewritten text: Only the rewrite.")
        assert parse_rewrite_response(response) == ("Only the rewrite.", DEFAULT_EXPLANATION)

    def test_unstructured_text_is_split_in_half(self, caplog):
        response = _response("alpha beta gamma delta")

        with caplog.at_level("WARNING"):
            rewritten, explanation = parse_rewrite_response(response)

        assert (rewritten, explanation) == ("alpha beta", "gamma delta")
        assert "splitting" in caplog.text


# ---------------------------------------------------------------------------
# 3. Similarity Reduction
# ---------------------------------------------------------------------------


class TestSimilarityReduction:
    def test_identical_text_is_floor(self):
        text = "Photosynthesis converts sunlight into chemical energy"
        assert similarity_reduction(text, text) == 20

    def test_disjoint_vocabulary_is_ceiling(self):
        assert similarity_reduction(
            "Photosynthesis converts sunlight into chemical energy",
            "Plants transform light rays producing stored fuel",
        ) == 90

    def test_partial_overlap(self):
        # 4 qualifying words, 2 kept → 50
        assert similarity_reduction("alpha bravo charlie delta", "alpha bravo zulu") == 50

    def test_no_qualifying_words(self):
        assert similarity_reduction("a an the", "anything else") == 20


# ---------------------------------------------------------------------------
# 4. Entry Points
# ---------------------------------------------------------------------------


class TestExtractPassages:
    def test_flagged_texts_take_priority(self):
        passages = extract_passages("ignored text", ["first", "  ", "second"])
        assert passages == ["first", "second"]

    def test_caps_passage_count(self):
        passages = extract_passages("", [f"p{i}" for i in range(6)], max_passages=3)
        assert passages == ["p0", "p1", "p2"]

    def test_long_passages_are_truncated(self):
        passages = extract_passages("", ["x" * 2500], max_chars=2000)
        assert passages == ["x" * 2000 + "..."]

    def test_falls_back_to_paragraphs(self):
        passages = extract_passages("Para one.\n\nPara two.\n\nPara three.\n\nPara four.")
        assert passages == ["Para one.", "Para two.", "Para three."]


class TestSmartRewrite:
    def test_one_suggestion_per_passage(self):
        llm = _llm(_OK, _OK)
        suggestions = _run(smart_rewrite(
            llm, "text", RewriteOptions(), flagged_texts=["one", "two"], sleep=AsyncMock(),
        ))

        assert [s.original for s in suggestions] == ["one", "two"]
        assert all(s.rewritten == "Fresh wording here." for s in suggestions)
        assert all(20 <= s.similarity_reduction <= 90 for s in suggestions)

    def test_failed_passage_is_reported_next_to_successes(self):
        async def complete(messages, **kwargs):
            if "broken" in messages[0]["content"]:
                raise ValueError("bad payload")
            return _OK

        llm = MagicMock()
        llm.complete = complete

        suggestions = _run(smart_rewrite(
            llm, "text", RewriteOptions(), flagged_texts=["fine", "broken"], sleep=AsyncMock(),
        ))

        assert suggestions[0].error is False
        assert suggestions[1].error is True
        assert suggestions[1].error_type == "execution_error"
        assert suggestions[1].hint

    def test_configuration_error_fails_whole_call(self):
        llm = _llm(ConfigurationError("LLM API key not configured"))
        with pytest.raises(ConfigurationError):
            _run(smart_rewrite(llm, "text", RewriteOptions(), flagged_texts=["a"]))

    def test_options_shape_the_prompt(self):
        llm = _llm(_OK)
        _run(smart_rewrite(
            llm, "text",
            RewriteOptions(
                style="technical",
                purpose="clarity",
                preserve_key_terms=False,
                academic_discipline="biology",
                target_reading_level="expert",
            ),
            flagged_texts=["passage"],
        ))

        kwargs = llm.complete.await_args.kwargs
        prompt = llm.complete.await_args.args[0][0]["content"]
        assert "biology" in kwargs["system"]
        assert "technical language" in prompt
        assert "clarity" in prompt
        assert "experts" in prompt
        assert "synonyms" in prompt


class TestParaphraseAndAcademic:
    def test_paraphrase_includes_context_and_instructions(self):
        llm = _llm(_OK)
        result = _run(paraphrase(
            llm, "Original sentence about climate models.",
            severity="high", style="simple", context="A lecture handout",
        ))

        prompt = llm.complete.await_args.args[0][0]["content"]
        assert prompt.startswith("Context: A lecture handout")
        assert "Completely rewrite" in prompt
        assert "plain words" in prompt
        assert result.rewritten == "Fresh wording here."
        assert result.original == "Original sentence about climate models."

    def test_academic_rewrite_uses_discipline_instructions(self):
        llm = _llm(_OK)
        result = _run(academic_rewrite(llm, "Some text to improve.", discipline="Science"))

        system = llm.complete.await_args.kwargs["system"]
        assert "scientific terminology" in system
        assert result.explanation == "Reworded."

    def test_unknown_discipline_falls_back_to_general(self):
        llm = _llm(_OK)
        _run(academic_rewrite(llm, "Some text.", discipline="astrology"))
        assert "standard academic conventions" in llm.complete.await_args.kwargs["system"]
