"""
Perplexity research provider.

Deep-research stages use the asynchronous chat completions API: a start call
returns a request id that is polled until the remote job completes. The
synchronous chat completions endpoint backs the fallback search stage.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from scout.config.settings import ProviderSettings
from scout.research.models import SourceRecord
from scout.research.providers.base import (
    REMOTE_COMPLETED,
    REMOTE_FAILED,
    REMOTE_IN_PROGRESS,
    REMOTE_PENDING,
    AsyncProvider,
    PollResult,
    SearchResult,
    StageRequest,
    SyncProvider,
    build_session,
    check_response,
)
from scout.research.retry import ProviderError

logger = logging.getLogger(__name__)

API_BASE = "https://api.perplexity.ai"

_session = build_session()

# Remote status -> stage status
_STATUS_MAP = {
    "CREATED": REMOTE_PENDING,
    "PENDING": REMOTE_PENDING,
    "IN_PROGRESS": REMOTE_IN_PROGRESS,
    "COMPLETED": REMOTE_COMPLETED,
    "FAILED": REMOTE_FAILED,
}

RESEARCH_SYSTEM_PROMPT = " ".join([
    "You are a research agent. Prefer primary sources and reputable reporting.",
    "Avoid social media sources (Facebook, LinkedIn, TikTok, Instagram, Discord, Telegram).",
    "YouTube and X/Twitter indie maker posts are allowed.",
])


def recency_filter(within_days: int) -> str:
    if within_days <= 1:
        return "day"
    if within_days <= 7:
        return "week"
    if within_days <= 31:
        return "month"
    return "year"


def _source_count(search_limit: int) -> int:
    return max(5, min(25, search_limit))


def _research_user_prompt(request: StageRequest) -> str:
    lines = [
        "Find publicly verifiable examples of AI agents/agentic workflows that made money with explicit $ amounts.",
        "Exclude fundraising/valuations/grants.",
    ]
    if request.query_focus:
        lines.append(f"Focus: {request.query_focus}")
    lines.extend([
        f"Return up to {_source_count(request.search_limit)} sources with title, url, date, snippet "
        "(include a verbatim quote containing the $ amount when possible).",
        "",
        f"Query: {request.query}",
    ])
    return "\n".join(lines)


def parse_completion(payload: Dict[str, Any], stage_id: str) -> SearchResult:
    """
    Turn a chat completion payload into sources and a summary.

    Structured ``search_results`` are preferred; bare ``citations`` URLs are
    used when no search results are present.
    """
    choices = payload.get("choices") or []
    content = ""
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        if isinstance(message.get("content"), str):
            content = message["content"]

    sources: List[SourceRecord] = []
    for item in payload.get("search_results") or []:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        sources.append(SourceRecord(
            title=str(item.get("title") or url),
            url=url,
            stage_id=stage_id,
            date=item.get("date") or None,
            snippet=item.get("snippet") or None,
        ))

    if not sources:
        for citation in payload.get("citations") or []:
            url = str(citation or "").strip()
            if url:
                sources.append(SourceRecord(title=url, url=url, stage_id=stage_id))

    return SearchResult(sources=sources, summary=content, raw=payload)


class PerplexityProvider(AsyncProvider, SyncProvider):
    """Deep research (async) and chat search (sync) against Perplexity."""

    name = "perplexity"

    def __init__(self, api_key: str, settings: Optional[ProviderSettings] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.session = session or _session

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, url: str, action: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.settings.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderError(self.name, f"{action} request error: {e}", e) from e
        return check_response(response, self.name, action)

    def start_async(self, request: StageRequest) -> str:
        body = {
            "request": {
                "model": self.settings.perplexity_async_model,
                "search_mode": "web",
                "reasoning_effort": "low",
                "temperature": 0.2,
                "max_tokens": 2400,
                "search_recency_filter": recency_filter(request.within_days),
                "messages": [
                    {"role": "system", "content": RESEARCH_SYSTEM_PROMPT},
                    {"role": "user", "content": _research_user_prompt(request)},
                ],
                "web_search_options": {"search_context_size": "high"},
            }
        }
        payload = self._request(
            "POST", f"{API_BASE}/async/chat/completions", f"async start for {request.stage_id}", json=body
        )
        request_id = str(payload.get("id") or "").strip()
        if not request_id:
            raise ProviderError(
                self.name, f"async start returned no request id for {request.stage_id}", retryable=False
            )
        logger.info(f"Started deep research for {request.stage_id}: {request_id}")
        return request_id

    def poll_async(self, handle: str, stage_id: str) -> PollResult:
        payload = self._request(
            "GET", f"{API_BASE}/async/chat/completions/{quote(handle, safe='')}",
            f"async poll for {stage_id}",
        )
        raw_status = str(payload.get("status") or "").strip().upper()
        status = _STATUS_MAP.get(raw_status)
        if status is None:
            raise ProviderError(self.name, f"unrecognized async status {raw_status!r} for {stage_id}",
                                retryable=False)

        if status == REMOTE_FAILED:
            return PollResult(status=status, error=str(payload.get("error_message") or "remote job failed"))

        if status == REMOTE_COMPLETED:
            response = payload.get("response")
            if not isinstance(response, dict):
                return PollResult(status=REMOTE_FAILED, error="completed job has no response payload")
            return PollResult(status=status, result=parse_completion(response, stage_id))

        return PollResult(status=status)

    def run_sync(self, request: StageRequest) -> SearchResult:
        body = {
            "model": self.settings.perplexity_sync_model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": RESEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": _research_user_prompt(request)},
            ],
            "web_search_options": {
                "search_context_size": "low",
                "search_recency_filter": recency_filter(request.within_days),
            },
        }
        payload = self._request("POST", f"{API_BASE}/chat/completions", f"search for {request.stage_id}", json=body)
        result = parse_completion(payload, request.stage_id)
        result.sources = result.sources[:_source_count(request.search_limit)]
        return result
