"""
Grok X search provider.

Searches X/Twitter posts through xAI's responses API with the ``x_search``
tool. Sources come from the ``url_citation`` annotations on the output text;
each gets the sentence around its citation marker as a snippet.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from scout.config.settings import ProviderSettings
from scout.research.models import SourceRecord, utc_now
from scout.research.providers.base import SearchResult, StageRequest, SyncProvider, build_session, check_response
from scout.research.retry import ProviderError

logger = logging.getLogger(__name__)

API_URL = "https://api.x.ai/v1/responses"

_session = build_session()

X_HOSTS = ("x.com", "twitter.com")

# Characters searched on each side of a citation marker for its sentence
SNIPPET_WINDOW = 300

SYSTEM_PROMPT = "\n".join([
    "You are a research assistant finding AI agent success stories on X/Twitter.",
    "Focus on indie makers, solo founders, and small teams sharing revenue milestones.",
    "Look for posts mentioning specific dollar amounts: MRR, revenue, prizes, bounties.",
    "Prioritize posts from individual creators, not large companies or news outlets.",
    "Return the most relevant posts with their URLs and key excerpts.",
    "IMPORTANT: Include specific dollar amounts in your summary when mentioned in posts.",
])

_MARKER_RE = re.compile(r"\[\[\d+\]\](\([^)]+\))?")


def handle_from_x_url(url: str) -> Optional[str]:
    """Return '@handle' for x.com/twitter.com post URLs, None otherwise."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()
    if not any(host == h or host.endswith("." + h) for h in X_HOSTS):
        return None
    parts = [p for p in parsed.path.split("/") if p]
    # /i/status/<id> URLs carry no handle
    if not parts or parts[0] == "i":
        return None
    return f"@{parts[0]}"


def _output_texts(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    parts = []
    for item in payload.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "output_text":
                parts.append(part)
    return parts


def extract_summary(payload: Dict[str, Any]) -> str:
    return "".join(str(p.get("text") or "") for p in _output_texts(payload))


def _snippet_around(text: str, start: int, end: int) -> str:
    """The sentence or bullet containing text[start:end]."""
    lo = start
    for i in range(start - 1, max(-1, start - SNIPPET_WINDOW), -1):
        if text[i] in "\n.-•":
            lo = i + 1
            break
        lo = i

    hi = end
    for i in range(end, min(len(text), end + SNIPPET_WINDOW)):
        ch = text[i]
        nxt = text[i + 1] if i + 1 < len(text) else ""
        if ch == "\n" or (ch == "." and nxt in (" ", "\n", "")):
            hi = i + 1
            break
        hi = i + 1

    return _MARKER_RE.sub("", text[lo:hi]).strip()


def extract_citations(payload: Dict[str, Any], stage_id: str, today: str) -> List[SourceRecord]:
    """Build one source per distinct cited URL."""
    sources: List[SourceRecord] = []
    seen = set()

    for part in _output_texts(payload):
        text = str(part.get("text") or "")
        for ann in part.get("annotations") or []:
            if not isinstance(ann, dict) or ann.get("type") != "url_citation":
                continue
            url = str(ann.get("url") or "").strip()
            if not url or url in seen:
                continue
            seen.add(url)

            snippet = None
            marker = f"[[{ann.get('title') or ''}]]"
            idx = text.find(marker)
            if idx != -1:
                snippet = _snippet_around(text, idx, idx + len(marker)) or None

            handle = handle_from_x_url(url)
            sources.append(SourceRecord(
                title=f"X Post by {handle}" if handle else "X Post",
                url=url,
                stage_id=stage_id,
                # Annotations carry no post date
                date=today,
                snippet=snippet,
            ))

    return sources


class GrokProvider(SyncProvider):
    """Native X/Twitter search."""

    name = "grok"

    def __init__(self, api_key: str, settings: Optional[ProviderSettings] = None,
                 session: Optional[requests.Session] = None, excluded_handles: Optional[List[str]] = None):
        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.session = session or _session
        self.excluded_handles = excluded_handles or []

    def run_sync(self, request: StageRequest) -> SearchResult:
        now = utc_now()
        to_date = now.strftime("%Y-%m-%d")
        from_date = (now - timedelta(days=max(1, request.within_days))).strftime("%Y-%m-%d")

        x_search: Dict[str, Any] = {"from_date": from_date, "to_date": to_date}
        if self.excluded_handles:
            x_search["excluded_x_handles"] = self.excluded_handles

        user_prompt = "\n".join([
            request.query,
            "",
            f"Find up to {request.search_limit} relevant X/Twitter posts from {from_date} to {to_date}.",
            "For each relevant post, include the URL and any dollar amounts mentioned.",
            "Focus on indie makers/solo founders sharing revenue milestones for AI agents or AI-powered products.",
        ])

        body = {
            "model": self.settings.grok_model,
            "input": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            "tools": [{"type": "x_search", "x_search": x_search}],
        }

        try:
            response = self.session.post(
                API_URL,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                timeout=self.settings.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(self.name, f"X search request error: {e}", e) from e

        payload = check_response(response, self.name, "X search")
        sources = extract_citations(payload, request.stage_id, to_date)[:request.search_limit]
        logger.info(f"X search returned {len(sources)} cited posts")
        return SearchResult(sources=sources, summary=extract_summary(payload), raw=payload)
