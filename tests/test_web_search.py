# =============================================================================
# Unit Tests — Web Source Discovery
# =============================================================================
#
# The requests session is a MagicMock; no network access is needed.
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
import requests

from app.services.errors import ConfigurationError, UpstreamError, UpstreamQuotaError
from app.services.web_search import GoogleSearchClient, build_query, lexical_overlap


def _response(status_code: int = 200, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.reason = "Error"
    response.text = ""
    return response


def _client(response=None, side_effect=None) -> tuple[GoogleSearchClient, MagicMock]:
    session = MagicMock()
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = response
    return GoogleSearchClient(session=session), session


@pytest.fixture
def credentials():
    with patch("app.services.web_search.settings") as mock_settings:
        mock_settings.google_cse_api_key = "key"
        mock_settings.google_cse_id = "engine"
        mock_settings.google_cse_url = "https://search.example/customsearch"
        mock_settings.web_search_timeout_seconds = 5
        yield mock_settings


class TestHelpers:
    def test_lexical_overlap(self):
        # Significant words (>3 chars): quick, brown, jumps, over → 3 of 4 shared
        assert lexical_overlap("The quick brown fox jumps over", "quick brown jumps") == 75

    def test_lexical_overlap_empty_snippet(self):
        assert lexical_overlap("a an it", "anything") == 0

    def test_build_query_uses_opening_words(self):
        assert build_query("one two three four", max_words=2) == "one two"
        assert build_query("  spaced   out  ") == "spaced out"


class TestGoogleSearchClient:
    def test_results_are_classified_and_ranked(self, credentials):
        client, session = _client(_response(payload={"items": [
            {"link": "https://blog.example.com/post", "title": "Blog", "snippet": "unrelated words entirely"},
            {"link": "https://arxiv.org/abs/42", "title": "Paper", "snippet": "photosynthesis converts sunlight"},
            {"title": "No link"},
        ]}))

        sources = client.search("photosynthesis converts sunlight into energy")

        assert [s.url for s in sources] == ["https://arxiv.org/abs/42", "https://blog.example.com/post"]
        assert sources[0].type == "academic"
        assert sources[0].match_percentage == 100
        assert sources[1].type == "blog"
        assert sources[1].match_percentage == 0

        params = session.get.call_args.kwargs["params"]
        assert params["key"] == "key"
        assert params["cx"] == "engine"

    def test_reference_text_is_scoring_basis(self, credentials):
        client, _ = _client(_response(payload={"items": [
            {"link": "https://x.org", "title": "", "snippet": "mitochondria powerhouse"},
        ]}))
        sources = client.search("short query", reference_text="mitochondria powerhouse cell")
        assert sources[0].match_percentage == 100

    def test_no_items(self, credentials):
        client, _ = _client(_response(payload={}))
        assert client.search("query") == []

    def test_missing_credentials(self):
        client, session = _client(_response())
        with patch("app.services.web_search.settings") as mock_settings:
            mock_settings.google_cse_api_key = ""
            mock_settings.google_cse_id = "engine"
            with pytest.raises(ConfigurationError):
                client.search("query")
        session.get.assert_not_called()

    def test_429_is_quota_error(self, credentials):
        client, _ = _client(_response(429, {"error": {"message": "Daily limit exceeded"}}))
        with pytest.raises(UpstreamQuotaError) as exc_info:
            client.search("query")
        assert "Daily limit exceeded" in exc_info.value.message

    def test_other_status_is_forwarded(self, credentials):
        client, _ = _client(_response(403, {"error": {"message": "API key invalid"}}))
        with pytest.raises(UpstreamError) as exc_info:
            client.search("query")
        assert exc_info.value.status_code == 403

    def test_network_failure(self, credentials):
        client, _ = _client(side_effect=requests.ConnectionError("unreachable"))
        with pytest.raises(UpstreamError) as exc_info:
            client.search("query")
        assert exc_info.value.status_code == 500
