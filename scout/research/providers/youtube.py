"""
YouTube podcast transcript miner.

Searches the YouTube Data API for long-form interviews, downloads transcripts
and extracts revenue mentions locally with regexes, so only short context
windows reach the extractor. Each mention becomes a source whose snippet
carries the matched amount plus any product names and links found nearby.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from scout.config.settings import ProviderSettings
from scout.research.models import SourceRecord, utc_now
from scout.research.providers.base import SearchResult, StageRequest, SyncProvider, build_session, check_response
from scout.research.retry import ProviderError

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"

_session = build_session()

REVENUE_PATTERNS = [
    # $X, $X.XX, $Xk, $X thousand, $X million
    re.compile(r"\$[\d,]+(?:\.\d+)?(?:\s*(?:k|thousand|million|m|mil)\b)?", re.IGNORECASE),
    # Xk MRR, X thousand per month
    re.compile(
        r"[\d,]+(?:\.\d+)?(?:\s*(?:k|thousand|million|m|mil))?"
        r"\s*(?:MRR|ARR|/month|per month|monthly|a month)",
        re.IGNORECASE,
    ),
    # made $X, hit $X, reached $X
    re.compile(
        r"(?:made|earned|hit|reached|generating|doing|at)\s+\$[\d,]+(?:\.\d+)?"
        r"(?:\s*(?:k|thousand|million|m)\b)?",
        re.IGNORECASE,
    ),
]

# Videos whose title/channel mention none of these are skipped
CONTEXT_KEYWORDS = [
    "ai agent", "autonomous", "indie", "solo", "saas", "mrr", "revenue", "profit",
    "startup", "founder", "maker", "side project", "bootstrap", "money", "income", "business",
]

SKIP_LINK_DOMAINS = [
    "youtube.com", "youtu.be", "twitter.com", "x.com",
    "facebook.com", "instagram.com", "tiktok.com", "linkedin.com",
    "discord.gg", "discord.com", "t.me", "telegram.me",
    "bit.ly", "goo.gl", "tinyurl.com", "ow.ly",
    "patreon.com", "ko-fi.com", "buymeacoffee.com",
    "spotify.com", "podcasts.apple.com",
]

COMMON_WORDS = {
    "The", "And", "For", "With", "This", "That", "From", "They", "Have", "Been",
    "Were", "What", "When", "Where", "Which", "About", "Into", "Through", "During",
    "Before", "After", "Then", "Once", "Here", "There", "Some", "Such", "Only",
    "Than", "Very", "Just", "Over", "Also", "Back", "Well", "Even", "Want", "Because",
    "These", "Make", "Like", "Know", "Take", "Come", "Could", "Would", "Should",
    "Being", "Their", "Your", "Yeah", "Okay", "Really", "Think", "Going", "First",
    "Last", "Next", "Still", "Episode", "Podcast", "Interview", "Show", "Channel",
    "Video", "Watch", "Listen", "Subscribe", "Follow", "Share", "Comment", "Check",
    "Today", "Week", "Month", "Year", "Time", "Part", "Full", "Clip",
}

# Big companies and frequent false positives; never turned into product URLs
SKIP_PRODUCT_NAMES = {
    "Amazon", "Microsoft", "Google", "Meta", "Apple", "Nvidia", "OpenAI",
    "Facebook", "Twitter", "LinkedIn", "YouTube", "Netflix", "Spotify", "Notion",
}

CONTEXT_CHARS = 100
MIN_MATCH_DISTANCE = 50
MAX_MATCHES_PER_VIDEO = 2
MAX_SUMMARY_LINES = 20

TranscriptFetcher = Callable[[str], Optional[str]]


def fetch_transcript(video_id: str) -> Optional[str]:
    """Full transcript text, or None when the video has none."""
    try:
        fetched = YouTubeTranscriptApi().fetch(video_id)
    except (CouldNotRetrieveTranscript, requests.RequestException) as e:
        logger.debug(f"No transcript for {video_id}: {e}")
        return None
    text = " ".join(snippet.text for snippet in fetched)
    return text or None


def is_relevant_video(video: Dict[str, str]) -> bool:
    text = f"{video.get('title', '')} {video.get('channel', '')}".lower()
    return any(keyword in text for keyword in CONTEXT_KEYWORDS)


def extract_revenue_matches(transcript: str, max_matches: int = MAX_MATCHES_PER_VIDEO) -> List[Dict[str, str]]:
    """
    Find revenue mentions with roughly 100 characters of context each side.

    Matches closer than 50 characters to an earlier one are skipped; the
    earliest ``max_matches`` by position are returned.
    """
    found = []
    positions: List[int] = []

    for pattern in REVENUE_PATTERNS:
        for m in pattern.finditer(transcript):
            pos = m.start()
            if any(abs(p - pos) < MIN_MATCH_DISTANCE for p in positions):
                continue
            positions.append(pos)

            start = max(0, pos - CONTEXT_CHARS)
            end = min(len(transcript), m.end() + CONTEXT_CHARS)
            context = transcript[start:end].strip()

            # Trim partial words at the window edges
            if start > 0:
                first_space = context.find(" ")
                if 0 < first_space < 20:
                    context = "..." + context[first_space + 1:]
            if end < len(transcript):
                last_space = context.rfind(" ")
                if last_space > len(context) - 20:
                    context = context[:last_space] + "..."

            found.append({"match": m.group(0).strip(), "context": context, "position": pos})

    found.sort(key=lambda f: f["position"])
    return [{"match": f["match"], "context": f["context"]} for f in found[:max_matches]]


def extract_product_urls(text: str, limit: int = 5) -> List[str]:
    """Non-social links in text, one per host."""
    urls = []
    seen_hosts = set()
    for raw in re.findall(r"https?://[^\s<>\[\](),\"']+", text or ""):
        url = re.sub(r"[.,;:!?)]+$", "", raw)
        try:
            host = (urlparse(url).hostname or "").lower()
        except ValueError:
            continue
        if host.startswith("www."):
            host = host[4:]
        if not host or any(d in host for d in SKIP_LINK_DOMAINS):
            continue
        if host in seen_hosts:
            continue
        seen_hosts.add(host)
        urls.append(url)
    return urls[:limit]


def extract_product_names(context: str, limit: int = 5) -> List[str]:
    """Domain-like mentions, quoted names and capitalized words near a match."""
    names: List[str] = []

    def add(name: str) -> None:
        if name and name.lower() not in {n.lower() for n in names}:
            names.append(name)

    for m in re.finditer(r"\b[a-zA-Z][a-zA-Z0-9-]+\.(?:ai|io|com|co|app|dev|so|xyz)\b", context, re.IGNORECASE):
        add(m.group(0))

    for m in re.finditer(r"[\"']([A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)?)[\"']", context):
        add(m.group(1))

    for m in re.finditer(r"\b[A-Z][a-zA-Z0-9]{2,}(?:\s+[A-Z][a-zA-Z0-9]+)?\b", context):
        word = m.group(0)
        if word in COMMON_WORDS or word.split(" ")[0] in COMMON_WORDS:
            continue
        if len(word) < 4:
            continue
        add(word)

    return names[:limit]


def construct_product_urls(names: List[str], limit: int = 3) -> List[str]:
    """Guess a homepage for each product name ('Photo AI' -> https://photoai.com)."""
    urls = []
    seen = set()
    for name in names:
        if name in SKIP_PRODUCT_NAMES or len(name) < 5:
            continue
        if re.search(r"\.(ai|io|com|co|app|dev)$", name, re.IGNORECASE):
            host = name.lower()
        else:
            slug = re.sub(r"[^a-z0-9]", "", name.lower())
            if len(slug) < 3:
                continue
            host = f"{slug}.com"
        if host in seen:
            continue
        seen.add(host)
        urls.append(f"https://{host}")
    return urls[:limit]


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class YouTubeTranscriptProvider(SyncProvider):
    """Local transcript mining over YouTube search results."""

    name = "youtube"

    def __init__(self, api_key: str, settings: Optional[ProviderSettings] = None,
                 session: Optional[requests.Session] = None,
                 transcript_fetcher: Optional[TranscriptFetcher] = None):
        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.session = session or _session
        self.transcript_fetcher = transcript_fetcher or fetch_transcript

    def search_videos(self, query: str, published_after: str) -> List[Dict[str, str]]:
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": str(self.settings.youtube_max_results_per_query),
            "order": "date",
            "videoDuration": "long",
            "publishedAfter": published_after,
            "key": self.api_key,
        }
        try:
            response = self.session.get(SEARCH_URL, params=params, timeout=self.settings.timeout)
        except requests.RequestException as e:
            raise ProviderError(self.name, f"search request error: {e}", e) from e
        payload = check_response(response, self.name, "video search")

        videos = []
        for item in payload.get("items") or []:
            video_id = ((item or {}).get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet: Dict[str, Any] = item.get("snippet") or {}
            videos.append({
                "video_id": video_id,
                "title": snippet.get("title") or "Unknown Title",
                "channel": snippet.get("channelTitle") or "Unknown Channel",
                "published_at": snippet.get("publishedAt") or "",
                "description": snippet.get("description") or "",
                "url": f"https://www.youtube.com/watch?v={video_id}",
            })
        return videos

    def run_sync(self, request: StageRequest) -> SearchResult:
        """
        Mine every query's videos for revenue mentions.

        A failing query is logged and skipped; the stage fails only when
        every query fails.
        """
        queries = [q.strip() for q in request.query.split("|") if q.strip()]
        published_after = (utc_now() - timedelta(days=self.settings.youtube_within_days)).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

        sources: List[SourceRecord] = []
        seen_urls = set()
        seen_videos = set()
        summary_lines: List[str] = []
        processed = 0
        with_matches = 0
        errors: List[str] = []

        for query in queries:
            try:
                videos = self.search_videos(query, published_after)
            except ProviderError as e:
                logger.warning(f"YouTube search failed for {query!r}: {e}")
                errors.append(str(e))
                continue

            for video in videos:
                if video["video_id"] in seen_videos:
                    continue
                seen_videos.add(video["video_id"])
                if not is_relevant_video(video):
                    continue
                processed += 1

                transcript = self.transcript_fetcher(video["video_id"])
                if not transcript:
                    continue
                matches = extract_revenue_matches(transcript)
                if not matches:
                    continue
                with_matches += 1

                product_urls = _unique(
                    extract_product_urls(video["description"]) + extract_product_urls(transcript)
                )[:3]
                names: List[str] = []
                for m in matches:
                    names.extend(extract_product_names(m["context"]))
                names = _unique(names)[:5]
                links = _unique(product_urls + construct_product_urls(names))[:5]

                extra = ""
                if names:
                    extra += f" | Mentioned: {', '.join(names)}"
                if links:
                    extra += f" | Product links: {', '.join(links)}"

                # One source per video URL; the first match carries the snippet
                if video["url"] not in seen_urls:
                    seen_urls.add(video["url"])
                    first = matches[0]
                    sources.append(SourceRecord(
                        title=f"{video['title']} ({video['channel']})",
                        url=video["url"],
                        stage_id=request.stage_id,
                        date=video["published_at"][:10] or None,
                        snippet=f"[{first['match']}] {first['context']}{extra}",
                    ))

                summary_lines.append(
                    f"- {video['title']}: Found {len(matches)} revenue mention(s) - "
                    f"{', '.join(m['match'] for m in matches)}"
                )

        if queries and len(errors) == len(queries):
            raise ProviderError(self.name, f"all {len(queries)} searches failed: {errors[-1]}")

        summary = "\n".join([
            "YouTube podcast transcript search completed.",
            f"Processed {processed} videos, found revenue mentions in {with_matches}.",
            "",
            *summary_lines[:MAX_SUMMARY_LINES],
        ])
        return SearchResult(sources=sources[:request.search_limit], summary=summary)
