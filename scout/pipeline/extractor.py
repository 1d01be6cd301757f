"""
Candidate extraction with an LLM.

The prompts carry the editorial policy (money made, not money raised;
proof URLs only from the provided sources; excerpts verbatim). The model's
output is untrusted and goes through the validator.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from scout.config.settings import ProviderSettings
from scout.research.models import SourceRecord
from scout.research.providers.base import build_session, check_response
from scout.research.retry import ProviderError

logger = logging.getLogger(__name__)

API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

MAX_SUMMARY_CHARS = 6000

_session = build_session()

CASE_STUDY_SCHEMA_LINE = (
    "{ id, date(YYYY-MM-DD), title, summary, description, profitMechanisms[], tags[], "
    "proofSources[{label,url,kind?,excerpt?}], status('verified'|'speculative') }"
)

_EXTRACTION_HINTS = [
    "",
    "INDIE PROJECT SIGNALS (prioritize these):",
    '- Phrases: "I built", "my AI agent", "solo founder", "indie maker", "side project"',
    "- Product Hunt launches, IndieHackers milestones",
    "- Twitter/X threads from individual accounts (not companies)",
    "- GitHub repos with sponsor/donation income",
    "",
    "MONEY EXTRACTION PATTERNS:",
    '- MRR: "$X/month MRR", "$Xk MRR", "monthly recurring revenue of $X"',
    '- Prize: "won $X", "prize of $X", "$X bounty"',
    '- Revenue: "generated $X", "made $X", "earned $X", "sold for $X"',
    '- Milestone: "hit $Xk", "crossed $X", "reached $X MRR"',
    "",
    "PRODUCT LINK EXTRACTION:",
    "- Look for product/project URLs in the source snippets (e.g., myproduct.com, myapp.ai)",
    "- If a product name is mentioned, include it in the title and description",
    "- Add the product website as a proofSource with kind='website' when found",
    "- Describe what the AI product/agent actually DOES in the description",
    "",
    "X/TWITTER SOURCES:",
    "- X/Twitter posts from the X search stage are allowed as proof sources",
    "- Individual creator posts are more valuable than company announcements",
    "- Extract product URLs mentioned in posts and add them as separate proofSources",
    "",
    "YOUTUBE PODCAST SOURCES:",
    "- Snippets may contain '| Mentioned: Name1, Name2' with extracted product names",
    "- Snippets may contain '| Product links: url1, url2' with extracted URLs",
    "- Add product websites as proofSources with kind='website' when product names are mentioned",
    "- The description MUST explain what each mentioned product does",
]

_COMMON_RULES = [
    "- Output must be a single JSON array ONLY (no markdown, no prose).",
    "- Each entry MUST describe an AI agent or agentic workflow making money/profit with a specific $ amount.",
    "- EXCLUDE fundraising/valuations/grants; those do NOT count as 'making money'.",
    "- Every proofSources.url MUST be taken EXACTLY from the provided sources list (do not invent links).",
]

_SOCIAL_RULE = (
    "- Do NOT use social media links (Facebook, LinkedIn, TikTok, Instagram, Discord, Telegram) "
    "as the only proof source. YouTube and X/Twitter (from X search) are allowed."
)


def build_system_prompt(mode: str) -> str:
    """System prompt; strict mode demands verbatim $ excerpts and $ titles."""
    if mode == "strict":
        rules = [
            "STRICT RULES:",
            *_COMMON_RULES,
            "- Prefer VERIFIED entries with 2+ proofSources.",
            "- Speculative entries may have 1 proofSource (only if you cannot find a second credible source).",
            "- At least one proofSources.excerpt MUST contain the $ amount and MUST be copied verbatim "
            "from a provided snippet (no paraphrasing in excerpts).",
            "- Title MUST include a $ amount (include '$' character).",
            "- If the sources are too thin to be confident, set status to 'speculative' and state the "
            "proof gap in the description.",
        ]
    else:
        rules = [
            "RULES (SPECULATIVE MODE):",
            *_COMMON_RULES,
            "- Prefer 2+ proofSources when possible; 1 proofSource is allowed when you cannot find a "
            "second credible source.",
            "- If you cannot include a verbatim proofSources.excerpt containing the $ amount, still include "
            "the best available excerpt and clearly state the proof gap in the description.",
            "- Title SHOULD include a $ amount when the sources indicate one.",
        ]

    return "\n".join([
        "You are an editor for AgentProfit.ai.",
        "",
        *rules,
        _SOCIAL_RULE,
        *_EXTRACTION_HINTS,
        "",
        "CaseStudy schema:",
        CASE_STUDY_SCHEMA_LINE,
        "",
        "Use short, neutral writing. Don't fabricate details not present in sources/snippets.",
    ])


def _sources_text(sources: List[SourceRecord]) -> str:
    """Sources as JSON, grouped under stage headings when several stages contributed."""
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for s in sources:
        groups.setdefault(s.stage_id or "unknown", []).append(s.to_dict())

    if len(groups) <= 1:
        return json.dumps([s.to_dict() for s in sources], indent=2, ensure_ascii=False)

    return "\n".join(
        f"\n--- Stage: {stage_id} ---\n{json.dumps(items, indent=2, ensure_ascii=False)}"
        for stage_id, items in groups.items()
    )


def build_user_prompt(sources: List[SourceRecord], summary: str, max_items: int, mode: str) -> str:
    if mode == "strict":
        mode_hint = "- Ensure each entry has 2+ proofSources unless truly impossible (otherwise set status to 'speculative')."
    else:
        mode_hint = "- You MAY output speculative entries with 1 proofSource if you cannot find a second credible source."

    return "\n".join([
        "Research summary (may contain extra context; treat as secondary):",
        (summary or "")[:MAX_SUMMARY_CHARS],
        "",
        "Allowed sources (ONLY use these URLs, plus any product URLs mentioned in snippets):",
        _sources_text(sources),
        "",
        "Task:",
        f"- Produce up to {max_items} CaseStudy JSON objects that meet the rules.",
        mode_hint,
        "- Prioritize indie/solo maker stories with clear $ amounts.",
        "- X/Twitter sources from the X search stage are allowed as proof.",
        "",
        "Product links:",
        "- If a product URL is mentioned in any snippet, add it as a proofSource with kind='website'",
        "- In the description, explain what the product/AI agent actually DOES",
        "- Include the product name in the title when known",
    ])


def extract_json_array(text: str) -> List[Any]:
    """
    Parse the JSON array spanning the first '[' to the last ']'.

    Raises:
        ValueError: If there is no array or it does not parse
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise ValueError("model output contains no JSON array")
    parsed = json.loads(text[start:end + 1])
    if not isinstance(parsed, list):
        raise ValueError("model output JSON is not an array")
    return parsed


class ExtractionError(Exception):
    """Raised when candidates cannot be obtained from the model."""
    pass


class ClaudeExtractor:
    """Turns aggregated sources into raw case-study candidates."""

    def __init__(self, api_key: str, settings: Optional[ProviderSettings] = None,
                 max_tokens: int = 4000, temperature: float = 0.2,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.session = session or _session

    def extract(self, sources: List[SourceRecord], summary: str, max_items: int, mode: str) -> List[Any]:
        """
        Ask the model for up to max_items candidates.

        Raises:
            ProviderError: The API call failed
            ExtractionError: The response held no parseable JSON array
        """
        body = {
            "model": self.settings.anthropic_model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": build_system_prompt(mode),
            "messages": [{"role": "user", "content": build_user_prompt(sources, summary, max_items, mode)}],
        }
        try:
            response = self.session.post(
                API_URL,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "anthropic-version": ANTHROPIC_VERSION,
                    "x-api-key": self.api_key,
                },
                timeout=self.settings.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError("anthropic", f"messages request error: {e}", e) from e

        payload = check_response(response, "anthropic", "messages")
        text = "".join(
            str(block.get("text") or "")
            for block in payload.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        try:
            candidates = extract_json_array(text)
        except ValueError as e:
            raise ExtractionError(f"Could not parse candidates: {e}") from e

        logger.info(f"Extractor returned {len(candidates)} candidates")
        return candidates
