"""
Tests for the LLM candidate extractor.
"""

import json
from unittest.mock import MagicMock

import pytest

from scout.pipeline.extractor import (
    MAX_SUMMARY_CHARS,
    ClaudeExtractor,
    ExtractionError,
    build_system_prompt,
    build_user_prompt,
    extract_json_array,
)
from scout.research.models import SourceRecord
from scout.research.retry import ProviderError

SOURCES = [
    SourceRecord(title="Winner", url="https://devpost.com/a", stage_id="hackathon", snippet="won $5,000"),
    SourceRecord(title="X Post by @maker", url="https://x.com/maker/status/1", stage_id="grok-x-search"),
]


def mock_response(payload, status_code=200):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.text = ""
    response.json.return_value = payload
    return response


class TestPrompts:
    """Tests for prompt construction."""

    def test_strict_prompt_demands_verbatim_excerpt(self):
        prompt = build_system_prompt("strict")
        assert "STRICT RULES" in prompt
        assert "verbatim" in prompt

    def test_speculative_prompt(self):
        assert "SPECULATIVE MODE" in build_system_prompt("speculative")

    def test_user_prompt_groups_stages(self):
        """Sources from several stages are grouped under stage headings."""
        prompt = build_user_prompt(SOURCES, "summary", 5, "strict")

        assert "--- Stage: hackathon ---" in prompt
        assert "--- Stage: grok-x-search ---" in prompt
        assert "up to 5 CaseStudy" in prompt

    def test_single_stage_is_flat_list(self):
        prompt = build_user_prompt(SOURCES[:1], "summary", 3, "speculative")

        assert "--- Stage:" not in prompt
        assert "https://devpost.com/a" in prompt

    def test_summary_truncated(self):
        prompt = build_user_prompt(SOURCES, "x" * (MAX_SUMMARY_CHARS + 500), 3, "strict")
        assert "x" * MAX_SUMMARY_CHARS in prompt
        assert "x" * (MAX_SUMMARY_CHARS + 1) not in prompt


class TestExtractJsonArray:
    """Tests for parsing model output."""

    def test_array_with_surrounding_prose(self):
        assert extract_json_array('Here you go:\n[{"title": "a"}]\nThanks') == [{"title": "a"}]

    def test_no_array(self):
        with pytest.raises(ValueError):
            extract_json_array("no results")

    def test_broken_json(self):
        with pytest.raises(ValueError):
            extract_json_array("[{broken]")


class TestClaudeExtractor:
    """Tests for the extractor API call."""

    def test_extract_returns_candidates(self):
        """Text blocks are joined and parsed as a JSON array."""
        candidates = [{"title": "Acme hits $5k MRR"}]
        session = MagicMock()
        session.post.return_value = mock_response({
            "content": [{"type": "text", "text": json.dumps(candidates)}],
        })
        extractor = ClaudeExtractor("key", session=session, max_tokens=1000)

        assert extractor.extract(SOURCES, "summary", 5, "strict") == candidates
        kwargs = session.post.call_args[1]
        assert kwargs["headers"]["x-api-key"] == "key"
        assert kwargs["json"]["max_tokens"] == 1000

    def test_unparseable_output(self):
        session = MagicMock()
        session.post.return_value = mock_response({"content": [{"type": "text", "text": "sorry"}]})

        with pytest.raises(ExtractionError):
            ClaudeExtractor("key", session=session).extract(SOURCES, "", 5, "strict")

    def test_api_error(self):
        session = MagicMock()
        session.post.return_value = mock_response({}, status_code=529)

        with pytest.raises(ProviderError):
            ClaudeExtractor("key", session=session).extract(SOURCES, "", 5, "strict")
