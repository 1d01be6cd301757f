"""
Tests for research provider adapters.

HTTP sessions are replaced with MagicMock; no network access.
"""

from unittest.mock import MagicMock

import pytest
import requests

from scout.research.providers.base import (
    REMOTE_COMPLETED,
    REMOTE_FAILED,
    REMOTE_IN_PROGRESS,
    REMOTE_PENDING,
    StageRequest,
    check_response,
)
from scout.research.providers.grok import GrokProvider, extract_citations, handle_from_x_url
from scout.research.providers.perplexity import PerplexityProvider, parse_completion, recency_filter
from scout.research.providers.youtube import (
    YouTubeTranscriptProvider,
    construct_product_urls,
    extract_product_urls,
    extract_revenue_matches,
    is_relevant_video,
)
from scout.research.retry import ProviderError


def mock_response(payload=None, status_code=200, text=""):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


def session_returning(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    session.post.side_effect = list(responses)
    session.get.side_effect = list(responses)
    return session


# ======================================================================
# check_response
# ======================================================================

class TestCheckResponse:
    """Tests for HTTP response classification."""

    def test_ok_returns_payload(self):
        assert check_response(mock_response({"id": "1"}), "p", "call") == {"id": "1"}

    @pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (401, False), (400, False)])
    def test_error_retryability(self, status, retryable):
        """Rate limits and 5xx are retryable; other client errors are not."""
        with pytest.raises(ProviderError) as exc_info:
            check_response(mock_response(status_code=status, text="nope"), "p", "call")
        assert exc_info.value.retryable is retryable
        assert str(status) in str(exc_info.value)

    def test_invalid_json(self):
        """An unparseable body is a non-retryable error."""
        response = mock_response()
        response.json.side_effect = ValueError("bad json")

        with pytest.raises(ProviderError) as exc_info:
            check_response(response, "p", "call")
        assert exc_info.value.retryable is False

    def test_non_object_payload(self):
        """A JSON list where an object is expected is rejected."""
        with pytest.raises(ProviderError):
            check_response(mock_response([1, 2]), "p", "call")


# ======================================================================
# Perplexity
# ======================================================================

class TestPerplexity:
    """Tests for the Perplexity adapter."""

    REQUEST = StageRequest(stage_id="hackathon", query="find stuff", query_focus="hackathon winners")

    def test_recency_filter(self):
        assert recency_filter(1) == "day"
        assert recency_filter(7) == "week"
        assert recency_filter(30) == "month"
        assert recency_filter(60) == "year"

    def test_start_returns_request_id(self):
        """Starting a deep-research request returns its id as the handle."""
        session = session_returning(mock_response({"id": "req-1", "status": "CREATED"}))
        provider = PerplexityProvider("key", session=session)

        assert provider.start_async(self.REQUEST) == "req-1"
        method, url = session.request.call_args[0][:2]
        assert method == "POST"
        assert url.endswith("/async/chat/completions")
        body = session.request.call_args[1]["json"]
        assert "hackathon winners" in body["request"]["messages"][1]["content"]

    def test_start_without_id(self):
        """A start response without an id is a hard failure."""
        provider = PerplexityProvider("key", session=session_returning(mock_response({})))

        with pytest.raises(ProviderError) as exc_info:
            provider.start_async(self.REQUEST)
        assert exc_info.value.retryable is False

    def test_transport_error_wrapped(self):
        """Connection errors become retryable ProviderErrors."""
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("reset")
        provider = PerplexityProvider("key", session=session)

        with pytest.raises(ProviderError) as exc_info:
            provider.start_async(self.REQUEST)
        assert exc_info.value.retryable is True

    @pytest.mark.parametrize("remote,expected", [
        ("CREATED", REMOTE_PENDING),
        ("PENDING", REMOTE_PENDING),
        ("IN_PROGRESS", REMOTE_IN_PROGRESS),
    ])
    def test_poll_running_states(self, remote, expected):
        """Remote states map onto stage states."""
        provider = PerplexityProvider("key", session=session_returning(mock_response({"status": remote})))

        assert provider.poll_async("req-1", "hackathon").status == expected

    def test_poll_completed(self):
        """A completed job yields its search results."""
        payload = {
            "status": "COMPLETED",
            "response": {
                "choices": [{"message": {"content": "Found one."}}],
                "search_results": [
                    {"title": "Winner", "url": "https://devpost.com/a", "date": "2026-01-02", "snippet": "won $5,000"},
                ],
            },
        }
        provider = PerplexityProvider("key", session=session_returning(mock_response(payload)))

        result = provider.poll_async("req-1", "hackathon")

        assert result.status == REMOTE_COMPLETED
        assert result.result.summary == "Found one."
        source = result.result.sources[0]
        assert source.url == "https://devpost.com/a"
        assert source.stage_id == "hackathon"
        assert source.snippet == "won $5,000"

    def test_poll_completed_without_response(self):
        """COMPLETED with no response body counts as failed."""
        provider = PerplexityProvider("key", session=session_returning(mock_response({"status": "COMPLETED"})))

        assert provider.poll_async("req-1", "hackathon").status == REMOTE_FAILED

    def test_poll_failed_carries_error(self):
        provider = PerplexityProvider(
            "key", session=session_returning(mock_response({"status": "FAILED", "error_message": "quota"}))
        )

        result = provider.poll_async("req-1", "hackathon")

        assert result.status == REMOTE_FAILED
        assert result.error == "quota"

    def test_poll_unknown_status(self):
        """Unrecognized remote states raise."""
        provider = PerplexityProvider("key", session=session_returning(mock_response({"status": "PAUSED"})))

        with pytest.raises(ProviderError):
            provider.poll_async("req-1", "hackathon")

    def test_citations_fallback(self):
        """Bare citations are used when there are no search results."""
        result = parse_completion({"citations": ["https://a.com", ""]}, "news-roundup")

        assert [(s.title, s.url) for s in result.sources] == [("https://a.com", "https://a.com")]

    def test_run_sync_limits_sources(self):
        """The synchronous search respects the source limit."""
        payload = {"search_results": [{"url": f"https://s{i}.com"} for i in range(30)]}
        provider = PerplexityProvider("key", session=session_returning(mock_response(payload)))

        result = provider.run_sync(StageRequest(stage_id="fallback-search", query="q", search_limit=10))

        assert len(result.sources) == 10


# ======================================================================
# Grok
# ======================================================================

GROK_PAYLOAD = {
    "output": [
        {"type": "reasoning"},
        {
            "type": "message",
            "content": [{
                "type": "output_text",
                "text": "Maker hit $5k MRR with a support agent [[1]](https://x.com/maker/status/1).\n"
                        "Another bot won $2,000 [[2]](https://x.com/i/status/2).",
                "annotations": [
                    {"type": "url_citation", "url": "https://x.com/maker/status/1", "title": "1"},
                    {"type": "url_citation", "url": "https://x.com/i/status/2", "title": "2"},
                    {"type": "url_citation", "url": "https://x.com/maker/status/1", "title": "1"},
                ],
            }],
        },
    ],
}


class TestGrok:
    """Tests for the Grok X search adapter."""

    def test_handle_from_url(self):
        assert handle_from_x_url("https://x.com/maker/status/1") == "@maker"
        assert handle_from_x_url("https://twitter.com/i/status/2") is None
        assert handle_from_x_url("https://github.com/maker") is None

    def test_citations_become_sources(self):
        """Each distinct cited URL becomes one source with its sentence as snippet."""
        sources = extract_citations(GROK_PAYLOAD, "grok-x-search", "2026-01-05")

        assert [s.url for s in sources] == ["https://x.com/maker/status/1", "https://x.com/i/status/2"]
        assert sources[0].title == "X Post by @maker"
        assert sources[1].title == "X Post"
        assert "$5k MRR" in sources[0].snippet
        assert "[[1]]" not in sources[0].snippet
        assert sources[0].date == "2026-01-05"

    def test_run_sync(self):
        """run_sync posts an x_search request and returns cited posts."""
        session = session_returning(mock_response(GROK_PAYLOAD))
        provider = GrokProvider("key", session=session, excluded_handles=["spam"])

        result = provider.run_sync(StageRequest(stage_id="grok-x-search", query="q", within_days=7))

        assert len(result.sources) == 2
        assert "Maker hit $5k MRR" in result.summary
        tool = session.post.call_args[1]["json"]["tools"][0]
        assert tool["type"] == "x_search"
        assert tool["x_search"]["excluded_x_handles"] == ["spam"]

    def test_run_sync_http_error(self):
        provider = GrokProvider("key", session=session_returning(mock_response(status_code=401, text="bad key")))

        with pytest.raises(ProviderError):
            provider.run_sync(StageRequest(stage_id="grok-x-search", query="q"))


# ======================================================================
# YouTube
# ======================================================================

TRANSCRIPT = (
    "so tell me about the business. Well we launched Replyfast last spring and honestly it was slow at first "
    "but by December we hit $12,000 MRR with basically just me and the agent handling support tickets "
    "and that was when I quit my job. Later on we talked about hiring."
)


def search_payload(*videos):
    return {"items": [
        {
            "id": {"videoId": vid},
            "snippet": {
                "title": title,
                "channelTitle": "Weekly Talks",
                "publishedAt": "2026-01-02T10:00:00Z",
                "description": "Try it at https://replyfast.io and follow https://x.com/maker",
            },
        }
        for vid, title in videos
    ]}


class TestYouTube:
    """Tests for the transcript miner."""

    def test_relevance(self):
        assert is_relevant_video({"title": "Solo founder story", "channel": "X"})
        assert not is_relevant_video({"title": "Cooking pasta", "channel": "Kitchen"})

    def test_revenue_matches_with_context(self):
        """Revenue mentions come back with surrounding context."""
        matches = extract_revenue_matches(TRANSCRIPT)

        assert matches
        assert "$12,000" in matches[0]["match"]
        assert "Replyfast" in matches[0]["context"]

    def test_close_matches_collapsed(self):
        """Overlapping pattern hits on the same amount count once."""
        matches = extract_revenue_matches("we hit $5k MRR", max_matches=5)
        assert len(matches) == 1

    def test_product_urls_skip_social(self):
        urls = extract_product_urls("see https://replyfast.io, https://x.com/a and https://youtu.be/b")
        assert urls == ["https://replyfast.io"]

    def test_construct_product_urls(self):
        assert construct_product_urls(["Photo AI", "Google", "Replyfast.io"]) == [
            "https://photoai.com", "https://replyfast.io",
        ]

    def test_run_sync_builds_sources(self):
        """Videos with revenue mentions become sources with enriched snippets."""
        session = session_returning(
            mock_response(search_payload(("vid1", "Indie founder interview"), ("vid2", "Cooking pasta"))),
            mock_response(search_payload(("vid1", "Indie founder interview"))),
        )
        fetched = []

        def fetcher(video_id):
            fetched.append(video_id)
            return TRANSCRIPT

        provider = YouTubeTranscriptProvider("key", session=session, transcript_fetcher=fetcher)
        result = provider.run_sync(StageRequest(stage_id="youtube-podcasts", query="q1 | q2"))

        assert fetched == ["vid1"]
        assert len(result.sources) == 1
        source = result.sources[0]
        assert source.url == "https://www.youtube.com/watch?v=vid1"
        assert source.date == "2026-01-02"
        assert source.snippet.startswith("[")
        assert "Product links: https://replyfast.io" in source.snippet
        assert "Processed 1 videos" in result.summary

    def test_partial_query_failure_tolerated(self):
        """One failing search does not fail the stage."""
        session = session_returning(
            mock_response(status_code=403, text="quota"),
            mock_response(search_payload(("vid1", "Indie founder interview"))),
        )
        provider = YouTubeTranscriptProvider("key", session=session, transcript_fetcher=lambda v: TRANSCRIPT)

        result = provider.run_sync(StageRequest(stage_id="youtube-podcasts", query="q1 | q2"))

        assert len(result.sources) == 1

    def test_all_queries_failing_raises(self):
        session = session_returning(mock_response(status_code=403), mock_response(status_code=403))
        provider = YouTubeTranscriptProvider("key", session=session, transcript_fetcher=lambda v: None)

        with pytest.raises(ProviderError):
            provider.run_sync(StageRequest(stage_id="youtube-podcasts", query="q1 | q2"))
